"""Error taxonomy for PASSGATE.

Ledger and network failures are raised by the gateway as
``LedgerUnavailableError`` and converted into typed results by the
components that call it. Cooldowns are not errors; see
``passgate.faucet.rate_limiter.RateLimitResult``.
"""


class PassgateError(Exception):
    """Base class for all PASSGATE errors."""


class InputError(PassgateError):
    """Invalid identity or amount supplied by the caller."""


class ConfigMissingError(PassgateError):
    """Token configuration or mint authority key is not provisioned."""


class LedgerUnavailableError(PassgateError):
    """A ledger query or submission failed. Safe to retry."""


class LedgerTimeoutError(LedgerUnavailableError):
    """A ledger call did not finish within its time bound.

    For submitted transactions the final state is unknown: the
    transaction may still land after the timeout. ``signature`` is set
    once the transaction has been signed.
    """

    def __init__(self, message: str, signature: str | None = None):
        super().__init__(message)
        self.signature = signature


class InsufficientBalanceError(PassgateError):
    """Balance is below the threshold required for an eligibility proof."""


class TransitionError(PassgateError):
    """Raised when an access gate transition is not allowed."""


class ClaimStoreError(PassgateError):
    """The shared claim record store could not be read or updated."""
