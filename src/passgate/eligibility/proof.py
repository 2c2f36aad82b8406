"""Proof Engine for PASSGATE.

Turns a fresh eligibility check into a proof that a wallet holds at
least a threshold balance, and verifies such proofs before access is
granted. The assertion itself comes from a pluggable ``ProofBackend``.
"""

import asyncio
import logging
import re
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from passgate.errors import InsufficientBalanceError, LedgerUnavailableError
from passgate.observability.metrics import PROOFS

from .evaluator import EligibilityEvaluator

logger = logging.getLogger(__name__)

ASSERTION_HEX_LENGTH = 256
_ASSERTION_PATTERN = re.compile(rf"^0x[0-9a-f]{{{ASSERTION_HEX_LENGTH}}}$")


@dataclass(frozen=True)
class EligibilityProof:
    """Attestation that ``subject`` held at least ``threshold`` whole tokens."""

    subject: str
    threshold: int
    assertion: str
    issued_at: float  # Epoch seconds


class ProofBackend(ABC):
    """Produces and checks threshold assertions."""

    @abstractmethod
    async def create_assertion(self, subject: str, threshold: int) -> str:
        """Create an assertion that ``subject`` meets ``threshold``."""
        ...

    @abstractmethod
    def check_assertion(self, assertion: str) -> bool:
        """Return True if ``assertion`` is acceptable."""
        ...


class SimulatedProofBackend(ProofBackend):
    """Stand-in backend: a fixed delay and a random hex assertion.

    Performs no cryptography. Verification is a shape check only.

    Parameters
    ----------
    delay : float
        Seconds spent "computing" each assertion.
    """

    def __init__(self, delay: float = 2.0):
        self._delay = delay

    async def create_assertion(self, subject: str, threshold: int) -> str:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        return "0x" + secrets.token_hex(ASSERTION_HEX_LENGTH // 2)

    def check_assertion(self, assertion: str) -> bool:
        return bool(_ASSERTION_PATTERN.match(assertion))


class ProofEngine:
    """Generates and verifies eligibility proofs.

    Parameters
    ----------
    evaluator : EligibilityEvaluator
        Used to re-check the balance right before a proof is produced.
    backend : ProofBackend | None
        Assertion backend. Defaults to ``SimulatedProofBackend``.
    validity_seconds : float
        How long a proof is accepted after ``issued_at``.
    """

    def __init__(
        self,
        evaluator: EligibilityEvaluator,
        backend: ProofBackend | None = None,
        validity_seconds: float = 300,
    ):
        self._evaluator = evaluator
        self._backend = backend or SimulatedProofBackend()
        self._validity_seconds = validity_seconds

    @property
    def validity_seconds(self) -> float:
        return self._validity_seconds

    async def generate_proof(self, identity: str, threshold: int) -> EligibilityProof:
        """Produce a proof that ``identity`` holds at least ``threshold`` tokens.

        The balance is evaluated again here; an earlier "eligible" result
        is never trusted.

        Parameters
        ----------
        identity : str
            Base58 wallet address.
        threshold : int
            Required balance in whole tokens.

        Returns
        -------
        EligibilityProof
            Proof stamped with the generation time.

        Raises
        ------
        InsufficientBalanceError
            If the balance is below the threshold.
        LedgerUnavailableError
            If the balance cannot be determined.
        """
        evaluation = await self._evaluator.evaluate(identity, threshold)
        if evaluation.is_unknown:
            PROOFS.labels(result="balance_unknown").inc()
            raise LedgerUnavailableError("Unable to determine balance")
        if not evaluation.is_eligible:
            PROOFS.labels(result="insufficient_balance").inc()
            raise InsufficientBalanceError(
                f"Balance below threshold of {threshold} tokens"
            )

        assertion = await self._backend.create_assertion(identity, threshold)
        proof = EligibilityProof(
            subject=identity,
            threshold=threshold,
            assertion=assertion,
            issued_at=time.time(),
        )
        PROOFS.labels(result="generated").inc()
        logger.info("Eligibility proof generated", extra={"identity": identity})
        return proof

    def verify_proof(self, proof: EligibilityProof, now: float | None = None) -> bool:
        """Check a proof before granting access.

        Parameters
        ----------
        proof : EligibilityProof
            Proof to check.
        now : float | None
            Current epoch seconds; defaults to ``time.time()``.

        Returns
        -------
        bool
            True if the proof is well formed, accepted by the backend and
            still within its validity window.
        """
        now = time.time() if now is None else now
        if not proof.subject or proof.threshold <= 0:
            reason = "malformed"
        elif not self._backend.check_assertion(proof.assertion):
            reason = "bad_assertion"
        elif now - proof.issued_at > self._validity_seconds:
            reason = "expired"
        else:
            PROOFS.labels(result="verified").inc()
            return True

        PROOFS.labels(result="rejected").inc()
        logger.warning(
            "Eligibility proof rejected",
            extra={"identity": proof.subject, "reason": reason},
        )
        return False
