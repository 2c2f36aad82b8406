"""Tests for Proof Engine."""

import time
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from passgate.eligibility.evaluator import EligibilityEvaluator, Evaluation
from passgate.eligibility.proof import (
    EligibilityProof,
    ProofBackend,
    ProofEngine,
    SimulatedProofBackend,
)
from passgate.errors import InsufficientBalanceError, LedgerUnavailableError


def _evaluator(balance: int | None, threshold: int = 100) -> EligibilityEvaluator:
    evaluator = AsyncMock(spec=EligibilityEvaluator)
    evaluator.evaluate.return_value = Evaluation(
        identity="wallet-1", balance=balance, threshold=threshold
    )
    return evaluator


@pytest.fixture
def backend():
    return SimulatedProofBackend(delay=0)


class TestSimulatedProofBackend:
    """Tests for SimulatedProofBackend."""

    @pytest.mark.asyncio
    async def test_assertion_shape(self, backend):
        """Assertions are 0x followed by 256 hex characters."""
        assertion = await backend.create_assertion("wallet-1", 100)

        assert assertion.startswith("0x")
        assert len(assertion) == 258
        assert backend.check_assertion(assertion) is True

    @pytest.mark.asyncio
    async def test_assertions_are_random(self, backend):
        """Two assertions differ."""
        first = await backend.create_assertion("wallet-1", 100)
        second = await backend.create_assertion("wallet-1", 100)

        assert first != second

    @pytest.mark.parametrize(
        "assertion",
        ["", "0x", "0x" + "g" * 256, "ab" * 129, "0x" + "a" * 255],
    )
    def test_malformed_assertions_rejected(self, backend, assertion):
        """Wrong prefix, alphabet or length fails the check."""
        assert backend.check_assertion(assertion) is False

    @pytest.mark.asyncio
    async def test_delay(self):
        """The configured delay is spent before returning."""
        backend = SimulatedProofBackend(delay=0.05)
        start = time.monotonic()

        await backend.create_assertion("wallet-1", 100)

        assert time.monotonic() - start >= 0.05


class TestGenerateProof:
    """Tests for ProofEngine.generate_proof."""

    @pytest.mark.asyncio
    async def test_generates_for_eligible_wallet(self, backend):
        """An eligible wallet gets a stamped proof."""
        engine = ProofEngine(_evaluator(150), backend)
        before = time.time()

        proof = await engine.generate_proof("wallet-1", 100)

        assert proof.subject == "wallet-1"
        assert proof.threshold == 100
        assert backend.check_assertion(proof.assertion)
        assert proof.issued_at >= before

    @pytest.mark.asyncio
    async def test_re_evaluates_balance(self, backend):
        """The balance is checked again at generation time."""
        evaluator = _evaluator(150)
        engine = ProofEngine(evaluator, backend)

        await engine.generate_proof("wallet-1", 100)

        evaluator.evaluate.assert_awaited_once_with("wallet-1", 100)

    @pytest.mark.asyncio
    async def test_balance_dropped_since_last_check(self, backend):
        """A stale eligible state cannot be turned into a proof."""
        engine = ProofEngine(_evaluator(50), backend)

        with pytest.raises(InsufficientBalanceError):
            await engine.generate_proof("wallet-1", 100)

    @pytest.mark.asyncio
    async def test_unknown_balance(self, backend):
        """An unknown balance is a ledger failure, not a rejection."""
        engine = ProofEngine(_evaluator(None), backend)

        with pytest.raises(LedgerUnavailableError, match="Unable to determine balance"):
            await engine.generate_proof("wallet-1", 100)

    @pytest.mark.asyncio
    async def test_backend_not_called_when_ineligible(self):
        """No assertion is requested for an ineligible wallet."""
        backend = AsyncMock(spec=ProofBackend)
        engine = ProofEngine(_evaluator(0), backend)

        with pytest.raises(InsufficientBalanceError):
            await engine.generate_proof("wallet-1", 100)

        backend.create_assertion.assert_not_awaited()


class TestVerifyProof:
    """Tests for ProofEngine.verify_proof."""

    @pytest.fixture
    async def proof(self, backend):
        engine = ProofEngine(_evaluator(150), backend)
        return await engine.generate_proof("wallet-1", 100)

    @pytest.mark.asyncio
    async def test_fresh_proof_verifies(self, backend, proof):
        """A freshly generated proof is accepted."""
        assert ProofEngine(_evaluator(150), backend).verify_proof(proof) is True

    @pytest.mark.asyncio
    async def test_expired_proof_rejected(self, backend, proof):
        """Proofs are not accepted after the validity window."""
        engine = ProofEngine(_evaluator(150), backend, validity_seconds=300)

        assert engine.verify_proof(proof, now=proof.issued_at + 300) is True
        assert engine.verify_proof(proof, now=proof.issued_at + 301) is False

    @pytest.mark.parametrize(
        "changes",
        [{"subject": ""}, {"threshold": 0}, {"assertion": "0xnothex"}],
    )
    @pytest.mark.asyncio
    async def test_malformed_proof_rejected(self, backend, proof, changes):
        """Empty subject, non-positive threshold or bad assertion fail."""
        engine = ProofEngine(_evaluator(150), backend)

        assert engine.verify_proof(replace(proof, **changes)) is False

    @pytest.mark.asyncio
    async def test_custom_backend_decides(self, proof):
        """The backend's check is the gate."""
        backend = AsyncMock(spec=ProofBackend)
        backend.check_assertion = lambda assertion: False
        engine = ProofEngine(_evaluator(150), backend)

        assert engine.verify_proof(proof) is False

    @pytest.mark.asyncio
    async def test_proof_is_immutable(self, proof):
        """Proofs cannot be altered after generation."""
        with pytest.raises(AttributeError):
            proof.threshold = 1  # type: ignore[misc]

    @pytest.mark.asyncio
    async def test_proof_fields(self):
        """EligibilityProof carries no balance."""
        proof = EligibilityProof(subject="w", threshold=1, assertion="0x", issued_at=0.0)
        assert not hasattr(proof, "balance")
