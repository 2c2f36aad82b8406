"""HTTP API for PASSGATE."""

from .server import ApiServer, ClaimRequest, claim_response

__all__ = ["ApiServer", "ClaimRequest", "claim_response"]
