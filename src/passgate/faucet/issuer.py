"""Faucet Issuer for PASSGATE.

Mints demo tokens to a wallet:
- Rate limiter gate (one claim per cooldown window)
- Associated token account creation when missing
- MintTo signed by the mint authority, submitted as one atomic transaction
- Claim recorded only after the ledger confirms the transaction
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from solders.pubkey import Pubkey

from passgate.config import TokenConfig
from passgate.errors import (
    ClaimStoreError,
    ConfigMissingError,
    InputError,
    LedgerTimeoutError,
    LedgerUnavailableError,
)
from passgate.ledger import LedgerGateway, NetworkInfo, PendingTransaction, parse_identity
from passgate.ledger.accounts import MAX_BASE_UNITS, mint_to_instruction
from passgate.observability.metrics import (
    CLAIM_DURATION,
    CLAIMS,
    TOKENS_MINTED,
    TRANSACTION_DURATION,
)

from .provisioner import TokenAccountProvisioner
from .rate_limiter import ClaimRateLimiter, round_up_hours

logger = logging.getLogger(__name__)

PUBLIC_BALANCE_NOTE = (
    "Tokens minted to public balance. Use deposit/apply in wallet for confidential transfers."
)


class ClaimStatus(str, Enum):
    """Claim result status."""

    SUCCESS = "success"
    INVALID_ADDRESS = "invalid_address"
    INVALID_AMOUNT = "invalid_amount"
    COOLDOWN_ACTIVE = "cooldown_active"
    CONFIG_MISSING = "config_missing"
    SUBMISSION_FAILED = "submission_failed"


@dataclass
class ClaimResult:
    """Result of a claim or airdrop attempt."""

    success: bool
    status: ClaimStatus
    amount: Decimal
    message: str
    signature: str | None = None
    base_units: int | None = None
    token_account: str | None = None
    explorer_url: str | None = None
    next_claim_at: float | None = None  # Epoch seconds, cooldown only
    retry_after_seconds: float | None = None
    uncertain: bool = False  # Signed and sent, outcome unknown

    @property
    def retry_after_hours(self) -> int | None:
        """Cooldown rounded up to whole hours, for display."""
        if self.retry_after_seconds is None:
            return None
        return round_up_hours(self.retry_after_seconds)

    @property
    def retryable(self) -> bool:
        """Whether the caller may retry immediately."""
        return self.status == ClaimStatus.SUBMISSION_FAILED and not self.uncertain


class FaucetIssuer:
    """Issues faucet claims by minting tokens to the recipient.

    Parameters
    ----------
    gateway : LedgerGateway
        Ledger gateway holding the mint authority.
    provisioner : TokenAccountProvisioner
        Prepares the recipient token account.
    rate_limiter : ClaimRateLimiter
        Per-identity cooldown tracking.
    token_config : TokenConfig
        Mint, token program and decimals.
    network : NetworkInfo
        Used for explorer links.
    claim_amount : int
        Whole tokens minted per claim.
    confirm_timeout : float
        Seconds to wait for transaction confirmation.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        provisioner: TokenAccountProvisioner,
        rate_limiter: ClaimRateLimiter,
        token_config: TokenConfig,
        network: NetworkInfo,
        claim_amount: int = 100,
        confirm_timeout: float = 60.0,
    ):
        self._gateway = gateway
        self._provisioner = provisioner
        self._rate_limiter = rate_limiter
        self._token_config = token_config
        self._network = network
        self._claim_amount = Decimal(claim_amount)
        self._confirm_timeout = confirm_timeout

    @property
    def claim_amount(self) -> Decimal:
        """Whole tokens minted per claim."""
        return self._claim_amount

    async def issue(self, recipient: str) -> ClaimResult:
        """Handle a faucet claim for ``recipient``.

        Parameters
        ----------
        recipient : str
            Base58 wallet address.

        Returns
        -------
        ClaimResult
            Receipt on success; cooldown, input or submission failure otherwise.
        """
        start = time.monotonic()
        result = await self._issue(recipient)
        CLAIMS.labels(status=result.status.value).inc()
        CLAIM_DURATION.observe(time.monotonic() - start)
        return result

    async def _issue(self, recipient: str) -> ClaimResult:
        try:
            owner = parse_identity(recipient)
        except InputError as e:
            return ClaimResult(
                success=False,
                status=ClaimStatus.INVALID_ADDRESS,
                amount=self._claim_amount,
                message=str(e),
            )

        identity = str(owner)
        try:
            async with self._rate_limiter.claim_lock(identity):
                rate = await self._rate_limiter.try_claim(identity)
                if not rate.allowed:
                    logger.info(
                        "Claim denied by cooldown",
                        extra={"identity": identity, "retry_after": rate.retry_after_seconds},
                    )
                    return ClaimResult(
                        success=False,
                        status=ClaimStatus.COOLDOWN_ACTIVE,
                        amount=self._claim_amount,
                        message=rate.reason or "Claim cooldown active",
                        next_claim_at=rate.next_claim_at,
                        retry_after_seconds=rate.retry_after_seconds,
                    )

                result = await self._mint(owner, self._claim_amount)

                # Last mutation, only once the ledger has confirmed the mint
                if result.success:
                    await self._record(identity)
                return result
        except ClaimStoreError as e:
            logger.error("Claim store unavailable", extra={"identity": identity, "error": str(e)})
            return ClaimResult(
                success=False,
                status=ClaimStatus.SUBMISSION_FAILED,
                amount=self._claim_amount,
                message=f"Failed to process claim: {e}",
            )

    async def _record(self, identity: str) -> None:
        try:
            await self._rate_limiter.record_claim(identity)
        except ClaimStoreError as e:
            # Tokens are already minted; report success and leave the record missing.
            logger.error(
                "Claim confirmed but not recorded",
                extra={"identity": identity, "error": str(e)},
            )

    async def airdrop(self, recipient: str, amount: Decimal) -> ClaimResult:
        """Mint ``amount`` tokens to ``recipient`` without a cooldown.

        Operator path used by the CLI. Shares the transaction pipeline
        with ``issue``.
        """
        try:
            owner = parse_identity(recipient)
        except InputError as e:
            return ClaimResult(
                success=False,
                status=ClaimStatus.INVALID_ADDRESS,
                amount=amount,
                message=str(e),
            )
        if amount <= 0 or self._token_config.to_base_units(amount) <= 0:
            return ClaimResult(
                success=False,
                status=ClaimStatus.INVALID_AMOUNT,
                amount=amount,
                message="Amount must be a positive number",
            )
        return await self._mint(owner, amount)

    async def _mint(self, owner: Pubkey, amount: Decimal) -> ClaimResult:
        """Provision, mint, submit and confirm."""
        base_units = self._token_config.to_base_units(amount)
        if base_units > MAX_BASE_UNITS:
            return ClaimResult(
                success=False,
                status=ClaimStatus.INVALID_AMOUNT,
                amount=amount,
                message="Amount exceeds the maximum mintable supply",
            )
        pending = PendingTransaction()
        signature: str | None = None
        token_account: str | None = None

        try:
            account = await self._provisioner.ensure_account(owner, pending)
            token_account = str(account.address)
            pending.add(
                mint_to_instruction(
                    mint=self._token_config.mint,
                    account=account.address,
                    authority=self._gateway.authority,
                    base_units=base_units,
                    token_program=self._token_config.program_id,
                )
            )

            with TRANSACTION_DURATION.labels(operation="mint").time():
                signature = await self._gateway.submit(pending)
                await self._gateway.wait_for_confirmation(
                    signature, timeout=self._confirm_timeout
                )
        except ConfigMissingError as e:
            logger.error("Faucet not configured", extra={"error": str(e)})
            return ClaimResult(
                success=False,
                status=ClaimStatus.CONFIG_MISSING,
                amount=amount,
                message=str(e),
            )
        except LedgerTimeoutError as e:
            signature = signature or e.signature
            uncertain = signature is not None
            logger.warning(
                "Mint timed out",
                extra={"owner": str(owner), "signature": signature, "error": str(e)},
            )
            message = f"Transaction failed: {e}"
            if uncertain:
                message = (
                    f"Transaction {signature} was submitted but not confirmed in time. "
                    "Its status is uncertain; check the explorer before retrying."
                )
            return ClaimResult(
                success=False,
                status=ClaimStatus.SUBMISSION_FAILED,
                amount=amount,
                message=message,
                signature=signature,
                base_units=base_units,
                token_account=token_account,
                explorer_url=self._network.get_tx_url(signature) if signature else None,
                uncertain=uncertain,
            )
        except (LedgerUnavailableError, InputError) as e:
            logger.error(
                "Mint failed",
                extra={"owner": str(owner), "amount": str(amount), "error": str(e)},
            )
            return ClaimResult(
                success=False,
                status=ClaimStatus.SUBMISSION_FAILED,
                amount=amount,
                message=f"Transaction failed: {e}",
                signature=signature,
                base_units=base_units,
                token_account=token_account,
            )

        TOKENS_MINTED.inc(float(amount))
        logger.info(
            "Tokens minted",
            extra={
                "signature": signature,
                "recipient": str(owner),
                "token_account": token_account,
                "amount": str(amount),
                "base_units": base_units,
            },
        )
        return ClaimResult(
            success=True,
            status=ClaimStatus.SUCCESS,
            amount=amount,
            message=f"Successfully claimed {amount} tokens",
            signature=signature,
            base_units=base_units,
            token_account=token_account,
            explorer_url=self._network.get_tx_url(signature),
        )
