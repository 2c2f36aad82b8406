"""Observability module for PASSGATE."""

from .health import (
    ClaimStoreHealthCheck,
    HealthCheck,
    HealthServer,
    HealthStatus,
    LedgerHealthCheck,
)
from .logging import clear_request_id, configure_logging, set_request_id
from .metrics import (
    CLAIM_DURATION,
    CLAIMS,
    GATE_TRANSITIONS,
    PROOFS,
    TOKENS_MINTED,
    TRANSACTION_DURATION,
)

__all__ = [
    # Health
    "ClaimStoreHealthCheck",
    "HealthCheck",
    "HealthServer",
    "HealthStatus",
    "LedgerHealthCheck",
    # Logging
    "clear_request_id",
    "configure_logging",
    "set_request_id",
    # Metrics
    "CLAIM_DURATION",
    "CLAIMS",
    "GATE_TRANSITIONS",
    "PROOFS",
    "TOKENS_MINTED",
    "TRANSACTION_DURATION",
]
