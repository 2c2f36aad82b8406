"""Tests for Faucet Issuer."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import FakeLedger
from prometheus_client import REGISTRY
from solders.keypair import Keypair

from passgate.errors import ClaimStoreError, ConfigMissingError
from passgate.faucet.issuer import ClaimResult, ClaimStatus, FaucetIssuer
from passgate.faucet.provisioner import TokenAccountProvisioner
from passgate.faucet.rate_limiter import ClaimRateLimiter
from passgate.ledger import derive_token_account, parse_identity


@pytest.fixture
def rate_limiter():
    return ClaimRateLimiter(cooldown_hours=24)


@pytest.fixture
def make_issuer(token_config, network, rate_limiter):
    def _make(ledger) -> FaucetIssuer:
        return FaucetIssuer(
            gateway=ledger,
            provisioner=TokenAccountProvisioner(ledger, token_config),
            rate_limiter=rate_limiter,
            token_config=token_config,
            network=network,
            claim_amount=100,
            confirm_timeout=1.0,
        )

    return _make


@pytest.fixture
def issuer(make_issuer, fake_ledger):
    return make_issuer(fake_ledger)


def _account(wallet, token_config):
    return derive_token_account(parse_identity(wallet), token_config.mint, token_config.program_id)


class TestClaimResult:
    """Tests for ClaimResult helpers."""

    def test_retry_after_hours(self):
        """Cooldown seconds round up to hours."""
        result = ClaimResult(
            success=False,
            status=ClaimStatus.COOLDOWN_ACTIVE,
            amount=Decimal(100),
            message="wait",
            retry_after_seconds=3601,
        )
        assert result.retry_after_hours == 2
        assert result.retryable is False

    def test_retryable_only_when_certain(self):
        """Uncertain submissions must not be retried blindly."""
        failed = ClaimResult(
            success=False, status=ClaimStatus.SUBMISSION_FAILED, amount=Decimal(1), message="x"
        )
        uncertain = ClaimResult(
            success=False,
            status=ClaimStatus.SUBMISSION_FAILED,
            amount=Decimal(1),
            message="x",
            uncertain=True,
        )
        assert failed.retryable is True
        assert uncertain.retryable is False


class TestFaucetIssuerClaims:
    """Tests for FaucetIssuer.issue."""

    @pytest.mark.asyncio
    async def test_first_claim_mints(self, issuer, fake_ledger, token_config, wallet):
        """A first claim creates the account and mints the claim amount."""
        result = await issuer.issue(wallet)

        assert result.success is True
        assert result.status == ClaimStatus.SUCCESS
        assert result.amount == Decimal(100)
        assert result.base_units == 100 * 10**9
        assert result.token_account == str(_account(wallet, token_config))
        assert result.explorer_url == (
            f"https://explorer.solana.com/tx/{result.signature}?cluster=devnet"
        )
        assert result.message == "Successfully claimed 100 tokens"
        assert len(fake_ledger.submitted) == 1
        assert len(fake_ledger.submitted[0].instructions) == 2
        assert fake_ledger.balances[_account(wallet, token_config)] == 100 * 10**9

    @pytest.mark.asyncio
    async def test_existing_account_only_mints(self, issuer, fake_ledger, token_config, wallet):
        """No creation instruction for an existing account."""
        fake_ledger.balances[_account(wallet, token_config)] = 5

        result = await issuer.issue(wallet)

        assert result.success is True
        assert len(fake_ledger.submitted[0].instructions) == 1
        assert fake_ledger.balances[_account(wallet, token_config)] == 5 + 100 * 10**9

    @pytest.mark.asyncio
    async def test_second_claim_within_cooldown(self, issuer, fake_ledger, wallet):
        """A second claim is denied and nothing is submitted."""
        await issuer.issue(wallet)

        result = await issuer.issue(wallet)

        assert result.success is False
        assert result.status == ClaimStatus.COOLDOWN_ACTIVE
        assert result.retry_after_seconds > 0
        assert result.retry_after_hours == 24
        assert result.next_claim_at is not None
        assert result.message == "You can claim again in 24 hours"
        assert len(fake_ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_invalid_address(self, issuer, fake_ledger):
        """Malformed addresses are rejected before any ledger work."""
        result = await issuer.issue("not-a-wallet")

        assert result.status == ClaimStatus.INVALID_ADDRESS
        assert "Invalid wallet address" in result.message
        assert fake_ledger.submitted == []

    @pytest.mark.asyncio
    async def test_empty_address(self, issuer):
        """Empty addresses are rejected."""
        result = await issuer.issue("")

        assert result.status == ClaimStatus.INVALID_ADDRESS
        assert result.message == "Wallet address required"

    @pytest.mark.asyncio
    async def test_submission_failure_not_recorded(
        self, issuer, fake_ledger, rate_limiter, wallet
    ):
        """A failed submission leaves the wallet immediately claimable."""
        fake_ledger.fail_submit = True

        result = await issuer.issue(wallet)

        assert result.status == ClaimStatus.SUBMISSION_FAILED
        assert result.retryable is True
        assert "Transaction failed" in result.message
        assert (await rate_limiter.try_claim(wallet)).allowed is True

        fake_ledger.fail_submit = False
        retry = await issuer.issue(wallet)
        assert retry.success is True

    @pytest.mark.asyncio
    async def test_failed_transaction_not_recorded(
        self, issuer, fake_ledger, rate_limiter, wallet
    ):
        """A transaction that fails on chain is not recorded."""
        fake_ledger.fail_confirm = True

        result = await issuer.issue(wallet)

        assert result.status == ClaimStatus.SUBMISSION_FAILED
        assert result.signature is not None
        assert result.uncertain is False
        assert (await rate_limiter.try_claim(wallet)).allowed is True

    @pytest.mark.asyncio
    async def test_confirmation_timeout_is_uncertain(
        self, issuer, fake_ledger, rate_limiter, wallet
    ):
        """A confirmation timeout is reported as uncertain and not recorded."""
        fake_ledger.timeout_confirm = True

        result = await issuer.issue(wallet)

        assert result.status == ClaimStatus.SUBMISSION_FAILED
        assert result.uncertain is True
        assert result.retryable is False
        assert result.signature in result.message
        assert "uncertain" in result.message
        assert result.explorer_url.endswith("?cluster=devnet")
        assert (await rate_limiter.try_claim(wallet)).allowed is True

    @pytest.mark.asyncio
    async def test_send_timeout_is_uncertain(self, issuer, fake_ledger, rate_limiter, wallet):
        """A send that times out may still land, so it is uncertain, not retryable."""
        fake_ledger.timeout_submit = True

        result = await issuer.issue(wallet)

        assert result.status == ClaimStatus.SUBMISSION_FAILED
        assert result.uncertain is True
        assert result.retryable is False
        assert result.signature is not None
        assert result.signature in result.explorer_url
        assert "uncertain" in result.message
        assert (await rate_limiter.try_claim(wallet)).allowed is True

    @pytest.mark.asyncio
    async def test_missing_mint_authority(self, make_issuer, monkeypatch, wallet):
        """Without a mint authority the claim fails as configuration error."""

        def _no_authority(self):
            raise ConfigMissingError("Mint authority not found")

        monkeypatch.setattr(FakeLedger, "authority", property(_no_authority))
        ledger = FakeLedger()
        result = await make_issuer(ledger).issue(wallet)

        assert result.status == ClaimStatus.CONFIG_MISSING
        assert result.message == "Mint authority not found"
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_record_failure_still_success(self, issuer, rate_limiter, wallet):
        """Confirmed tokens are reported even if the record cannot be written."""
        rate_limiter.record_claim = AsyncMock(side_effect=ClaimStoreError("redis down"))

        result = await issuer.issue(wallet)

        assert result.success is True
        rate_limiter.record_claim.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_claim_store_unavailable(self, issuer, fake_ledger, rate_limiter, wallet):
        """If cooldowns cannot be checked nothing is minted."""
        rate_limiter.try_claim = AsyncMock(side_effect=ClaimStoreError("redis down"))

        result = await issuer.issue(wallet)

        assert result.status == ClaimStatus.SUBMISSION_FAILED
        assert "redis down" in result.message
        assert fake_ledger.submitted == []

    @pytest.mark.asyncio
    async def test_concurrent_claims_single_mint(self, issuer, fake_ledger, wallet):
        """Concurrent claims for one wallet mint exactly once."""
        results = await asyncio.gather(issuer.issue(wallet), issuer.issue(wallet))

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["cooldown_active", "success"]
        assert len(fake_ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_claim_metrics(self, issuer, wallet):
        """Each claim is counted by status."""
        before = (
            REGISTRY.get_sample_value("passgate_claims_total", {"status": "success"}) or 0
        )

        await issuer.issue(wallet)

        after = REGISTRY.get_sample_value("passgate_claims_total", {"status": "success"})
        assert after == before + 1


class TestFaucetIssuerAirdrop:
    """Tests for FaucetIssuer.airdrop."""

    @pytest.mark.asyncio
    async def test_airdrop_ignores_cooldown(self, issuer, fake_ledger, wallet):
        """Operator airdrops can repeat without waiting."""
        first = await issuer.airdrop(wallet, Decimal("25"))
        second = await issuer.airdrop(wallet, Decimal("0.5"))

        assert first.success is True
        assert second.success is True
        assert first.base_units == 25 * 10**9
        assert second.base_units == 5 * 10**8
        assert len(fake_ledger.submitted) == 2

    @pytest.mark.asyncio
    async def test_airdrop_does_not_record_claim(self, issuer, rate_limiter, wallet):
        """Airdrops leave the faucet cooldown alone."""
        await issuer.airdrop(wallet, Decimal("25"))

        assert (await rate_limiter.try_claim(wallet)).allowed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("1e-12")])
    async def test_airdrop_invalid_amount(self, issuer, fake_ledger, wallet, amount):
        """Non-positive or sub-unit amounts are rejected."""
        result = await issuer.airdrop(wallet, amount)

        assert result.status == ClaimStatus.INVALID_AMOUNT
        assert fake_ledger.submitted == []

    @pytest.mark.asyncio
    async def test_airdrop_invalid_address(self, issuer):
        """Airdrops validate the recipient."""
        result = await issuer.airdrop(str(Keypair().pubkey())[:10], Decimal(1))

        assert result.status == ClaimStatus.INVALID_ADDRESS

    @pytest.mark.asyncio
    async def test_airdrop_above_u64_limit(self, issuer, fake_ledger, wallet):
        """Amounts that overflow a u64 are rejected before any ledger call."""
        fake_ledger.account_exists = AsyncMock(return_value=False)

        result = await issuer.airdrop(wallet, Decimal("1e20"))

        assert result.status == ClaimStatus.INVALID_AMOUNT
        assert "maximum" in result.message
        fake_ledger.account_exists.assert_not_awaited()
        assert fake_ledger.submitted == []
