"""Ledger integration for PASSGATE."""

from .accounts import PendingTransaction, derive_token_account, parse_identity
from .client import LedgerGateway
from .networks import NetworkInfo

__all__ = [
    "LedgerGateway",
    "NetworkInfo",
    "PendingTransaction",
    "derive_token_account",
    "parse_identity",
]
