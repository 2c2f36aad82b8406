"""Eligibility checks, proofs and the access gate for PASSGATE."""

from .evaluator import EligibilityEvaluator, Evaluation
from .gate import AccessStateMachine, GateOutcome, GateState
from .proof import EligibilityProof, ProofBackend, ProofEngine, SimulatedProofBackend

__all__ = [
    "AccessStateMachine",
    "EligibilityEvaluator",
    "EligibilityProof",
    "Evaluation",
    "GateOutcome",
    "GateState",
    "ProofBackend",
    "ProofEngine",
    "SimulatedProofBackend",
]
