"""Faucet components for PASSGATE."""

from .issuer import ClaimResult, ClaimStatus, FaucetIssuer
from .provisioner import AccountRef, TokenAccountProvisioner
from .rate_limiter import ClaimRateLimiter, RateLimitResult

__all__ = [
    "AccountRef",
    "ClaimRateLimiter",
    "ClaimResult",
    "ClaimStatus",
    "FaucetIssuer",
    "RateLimitResult",
    "TokenAccountProvisioner",
]
