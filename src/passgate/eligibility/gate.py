"""Access State Machine for PASSGATE.

Drives one wallet session through the token gate:

    DISCONNECTED -> CONNECTED -> EVALUATING -> ELIGIBLE -> PROOF_PENDING -> GRANTED
                                     |  ^
                                     v  |
                           BELOW_THRESHOLD <-> CLAIMING

Fail-closed: only the transitions listed in ``_TRANSITIONS`` are
applied; anything else raises ``TransitionError``. ``disconnect`` is
accepted from every state and invalidates results that are still in
flight for the session.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from passgate.errors import (
    InsufficientBalanceError,
    LedgerUnavailableError,
    TransitionError,
)
from passgate.faucet.issuer import ClaimResult, FaucetIssuer
from passgate.ledger import parse_identity
from passgate.observability.metrics import GATE_TRANSITIONS

from .evaluator import EligibilityEvaluator, Evaluation
from .proof import EligibilityProof, ProofEngine

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    """Access gate session states."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    EVALUATING = "evaluating"
    BELOW_THRESHOLD = "below_threshold"
    CLAIMING = "claiming"
    ELIGIBLE = "eligible"
    PROOF_PENDING = "proof_pending"
    GRANTED = "granted"


# Valid transitions: {from_state: {allowed_to_states}}. DISCONNECTED is
# reachable from everywhere through disconnect() and is not listed.
_TRANSITIONS: dict[GateState, set[GateState]] = {
    GateState.DISCONNECTED: {GateState.CONNECTED},
    GateState.CONNECTED: {GateState.EVALUATING},
    GateState.EVALUATING: {
        GateState.ELIGIBLE,
        GateState.BELOW_THRESHOLD,
        GateState.CONNECTED,
    },
    GateState.BELOW_THRESHOLD: {GateState.CLAIMING},
    GateState.CLAIMING: {GateState.EVALUATING, GateState.BELOW_THRESHOLD},
    GateState.ELIGIBLE: {GateState.PROOF_PENDING},
    GateState.PROOF_PENDING: {GateState.GRANTED, GateState.ELIGIBLE},
    # Terminal
    GateState.GRANTED: set(),
}


@dataclass
class GateOutcome:
    """State reached by a gate step, with whatever that step produced."""

    state: GateState
    message: str
    evaluation: Evaluation | None = None
    claim: ClaimResult | None = None
    proof: EligibilityProof | None = None
    retry_after_hours: int | None = None
    next_claim_at: float | None = None  # Epoch seconds


class AccessStateMachine:
    """Token gate for a single wallet session.

    Parameters
    ----------
    evaluator : EligibilityEvaluator
        Balance checks.
    issuer : FaucetIssuer
        Faucet used when the balance is below the threshold.
    proof_engine : ProofEngine
        Generates and verifies eligibility proofs.
    threshold : int
        Required balance in whole tokens.
    """

    def __init__(
        self,
        evaluator: EligibilityEvaluator,
        issuer: FaucetIssuer,
        proof_engine: ProofEngine,
        threshold: int = 100,
    ):
        self._evaluator = evaluator
        self._issuer = issuer
        self._proof_engine = proof_engine
        self._threshold = threshold

        self._state = GateState.DISCONNECTED
        self._identity: str | None = None
        self._evaluation: Evaluation | None = None
        self._proof: EligibilityProof | None = None
        # Bumped on disconnect; results from an older epoch are dropped
        self._epoch = 0
        self.history: list[GateState] = [GateState.DISCONNECTED]

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def identity(self) -> str | None:
        return self._identity

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def evaluation(self) -> Evaluation | None:
        """Latest evaluation of this session."""
        return self._evaluation

    @property
    def proof(self) -> EligibilityProof | None:
        """Verified proof, once access is granted."""
        return self._proof

    @staticmethod
    def valid_transitions(state: GateState) -> set[GateState]:
        """Return the set of valid target states from the given state."""
        return set(_TRANSITIONS.get(state, set()))

    def _transition(self, target: GateState) -> None:
        current = self._state
        allowed = _TRANSITIONS.get(current, set())
        if target not in allowed:
            allowed_str = ", ".join(sorted(s.value for s in allowed))
            raise TransitionError(
                f"Invalid gate transition: {current.value} -> {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            )
        self._enter(target)

    def _enter(self, target: GateState) -> None:
        self._state = target
        self.history.append(target)
        GATE_TRANSITIONS.labels(state=target.value).inc()
        logger.debug(
            "Gate transition",
            extra={"identity": self._identity, "state": target.value},
        )

    def _discarded(self) -> GateOutcome:
        return GateOutcome(state=self._state, message="Session ended; result discarded")

    def connect(self, identity: str) -> GateOutcome:
        """Attach a wallet to the session.

        Raises
        ------
        InputError
            If ``identity`` is not a valid wallet address.
        TransitionError
            If a wallet is already connected.
        """
        owner = parse_identity(identity)
        self._transition(GateState.CONNECTED)
        self._identity = str(owner)
        logger.info("Wallet connected", extra={"identity": self._identity})
        return GateOutcome(state=self._state, message="Wallet connected")

    def disconnect(self) -> GateOutcome:
        """End the session from any state.

        Pending evaluation, claim or proof results are discarded when they
        arrive. Claim records are keyed by wallet and are not touched.
        """
        self._epoch += 1
        identity = self._identity
        self._identity = None
        self._evaluation = None
        self._proof = None
        if self._state != GateState.DISCONNECTED:
            self._enter(GateState.DISCONNECTED)
            logger.info("Wallet disconnected", extra={"identity": identity})
        return GateOutcome(state=self._state, message="Wallet disconnected")

    async def evaluate(self) -> GateOutcome:
        """Check the connected wallet's balance against the threshold."""
        self._transition(GateState.EVALUATING)
        return await self._run_evaluation()

    async def _run_evaluation(self) -> GateOutcome:
        epoch = self._epoch
        evaluation = await self._evaluator.evaluate(self._identity, self._threshold)
        if epoch != self._epoch:
            return self._discarded()

        self._evaluation = evaluation
        if evaluation.is_unknown:
            self._transition(GateState.CONNECTED)
            return GateOutcome(
                state=self._state,
                message="Unable to determine balance. Please try again.",
                evaluation=evaluation,
            )
        if evaluation.is_eligible:
            self._transition(GateState.ELIGIBLE)
            return GateOutcome(
                state=self._state,
                message="You're eligible! Proceed to generate proof.",
                evaluation=evaluation,
            )

        self._transition(GateState.BELOW_THRESHOLD)
        return GateOutcome(
            state=self._state,
            message=f"You need at least {self._threshold} tokens to access.",
            evaluation=evaluation,
        )

    async def request_claim(self) -> GateOutcome:
        """Claim faucet tokens, then re-evaluate on success.

        A cooldown or failed claim returns to BELOW_THRESHOLD with the
        claim result and, for cooldowns, when to retry.
        """
        self._transition(GateState.CLAIMING)
        epoch = self._epoch
        claim = await self._issuer.issue(self._identity)
        if epoch != self._epoch:
            return self._discarded()

        if not claim.success:
            self._transition(GateState.BELOW_THRESHOLD)
            return GateOutcome(
                state=self._state,
                message=claim.message,
                evaluation=self._evaluation,
                claim=claim,
                retry_after_hours=claim.retry_after_hours,
                next_claim_at=claim.next_claim_at,
            )

        self._transition(GateState.EVALUATING)
        outcome = await self._run_evaluation()
        outcome.claim = claim
        return outcome

    async def request_proof(self) -> GateOutcome:
        """Generate and verify an eligibility proof.

        Access is granted only if verification passes. Any failure
        returns to ELIGIBLE.
        """
        self._transition(GateState.PROOF_PENDING)
        epoch = self._epoch
        try:
            proof = await self._proof_engine.generate_proof(self._identity, self._threshold)
        except InsufficientBalanceError as e:
            if epoch != self._epoch:
                return self._discarded()
            self._transition(GateState.ELIGIBLE)
            return GateOutcome(state=self._state, message=str(e), evaluation=self._evaluation)
        except LedgerUnavailableError as e:
            if epoch != self._epoch:
                return self._discarded()
            self._transition(GateState.ELIGIBLE)
            return GateOutcome(
                state=self._state,
                message=f"Proof generation failed: {e}",
                evaluation=self._evaluation,
            )
        if epoch != self._epoch:
            return self._discarded()

        if not self._proof_engine.verify_proof(proof):
            self._transition(GateState.ELIGIBLE)
            return GateOutcome(
                state=self._state,
                message="Proof verification failed",
                evaluation=self._evaluation,
            )

        self._proof = proof
        self._transition(GateState.GRANTED)
        logger.info("Access granted", extra={"identity": self._identity})
        return GateOutcome(
            state=self._state,
            message="Access granted. Proof verified; your balance remains private.",
            evaluation=self._evaluation,
            proof=proof,
        )
