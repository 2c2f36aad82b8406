"""Prometheus metrics for PASSGATE.

Metrics:
- passgate_claims_total: Counter of faucet claims by status
- passgate_tokens_minted_total: Counter of whole tokens minted
- passgate_proofs_total: Counter of eligibility proofs by result
- passgate_gate_transitions_total: Counter of access gate transitions by target state
- passgate_claim_duration_seconds: Histogram of claim handling duration
- passgate_transaction_duration_seconds: Histogram of ledger transaction duration
"""

from prometheus_client import Counter, Histogram

# Counters
CLAIMS = Counter(
    "passgate_claims_total",
    "Total number of faucet claims",
    ["status"],
)

TOKENS_MINTED = Counter(
    "passgate_tokens_minted_total",
    "Total tokens minted by the faucet",
)

PROOFS = Counter(
    "passgate_proofs_total",
    "Total eligibility proofs by result",
    ["result"],
)

GATE_TRANSITIONS = Counter(
    "passgate_gate_transitions_total",
    "Total access gate transitions",
    ["state"],
)

# Histograms
CLAIM_DURATION = Histogram(
    "passgate_claim_duration_seconds",
    "Claim processing duration",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

TRANSACTION_DURATION = Histogram(
    "passgate_transaction_duration_seconds",
    "Ledger transaction duration",
    ["operation"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
