"""Eligibility Evaluator for PASSGATE.

Reads the token balance of a wallet and compares it with a threshold.
An absent token account is a zero balance; any other query failure is
an unknown balance and must not be shown as zero.
"""

import logging
from dataclasses import dataclass

from solders.pubkey import Pubkey

from passgate.config import TokenConfig
from passgate.errors import LedgerUnavailableError
from passgate.ledger import LedgerGateway, derive_token_account, parse_identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Evaluation:
    """Balance check outcome. Amounts are in base units."""

    identity: str
    balance: int | None  # None when the balance could not be determined
    threshold: int

    @property
    def is_unknown(self) -> bool:
        return self.balance is None

    @property
    def is_eligible(self) -> bool:
        return self.balance is not None and self.balance >= self.threshold


class EligibilityEvaluator:
    """Evaluates wallet balances against an eligibility threshold.

    Parameters
    ----------
    gateway : LedgerGateway
        Ledger gateway used for balance queries.
    token_config : TokenConfig
        Mint, token program and decimals.
    """

    def __init__(self, gateway: LedgerGateway, token_config: TokenConfig):
        self._gateway = gateway
        self._token_config = token_config

    @property
    def token_config(self) -> TokenConfig:
        return self._token_config

    def account_for(self, owner: Pubkey) -> Pubkey:
        """Derive the associated token account of ``owner``."""
        return derive_token_account(
            owner, self._token_config.mint, self._token_config.program_id
        )

    async def evaluate(self, identity: str, threshold: int) -> Evaluation:
        """Check the balance of ``identity`` against ``threshold``.

        Parameters
        ----------
        identity : str
            Base58 wallet address.
        threshold : int
            Required balance in whole tokens.

        Returns
        -------
        Evaluation
            ``balance`` is 0 for a missing token account and None when
            the ledger query failed.

        Raises
        ------
        InputError
            If ``identity`` is not a valid wallet address.
        """
        owner = parse_identity(identity)
        required = self._token_config.to_base_units(threshold)
        account = self.account_for(owner)

        try:
            balance = await self._gateway.get_token_balance(account)
        except LedgerUnavailableError as e:
            logger.warning(
                "Balance unknown",
                extra={"identity": identity, "account": str(account), "error": str(e)},
            )
            return Evaluation(identity=identity, balance=None, threshold=required)

        if balance is None:
            balance = 0

        logger.debug(
            "Balance evaluated",
            extra={"identity": identity, "balance": balance, "threshold": required},
        )
        return Evaluation(identity=identity, balance=balance, threshold=required)
