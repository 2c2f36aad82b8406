"""Token Account Provisioner for PASSGATE faucet.

Makes sure the recipient has an associated token account before minting
by adding a creation instruction to the pending transaction when needed.
"""

import logging
from dataclasses import dataclass

from solders.pubkey import Pubkey

from passgate.config import TokenConfig
from passgate.ledger import LedgerGateway, PendingTransaction, derive_token_account
from passgate.ledger.accounts import create_associated_account_instruction

logger = logging.getLogger(__name__)


@dataclass
class AccountRef:
    """Associated token account prepared for minting."""

    address: Pubkey
    created: bool  # True if a creation instruction was added


class TokenAccountProvisioner:
    """Ensures wallets hold an associated token account for the mint.

    Parameters
    ----------
    gateway : LedgerGateway
        Ledger gateway used for the existence query.
    token_config : TokenConfig
        Mint address and token program.
    """

    def __init__(self, gateway: LedgerGateway, token_config: TokenConfig):
        self._gateway = gateway
        self._token_config = token_config

    def account_for(self, owner: Pubkey) -> Pubkey:
        """Derive the associated token account of ``owner``."""
        return derive_token_account(
            owner, self._token_config.mint, self._token_config.program_id
        )

    async def ensure_account(self, owner: Pubkey, pending: PendingTransaction) -> AccountRef:
        """Add a create-account instruction to ``pending`` if the account is missing.

        Idempotent: if ``pending`` already creates the account, or the
        account exists on the ledger, nothing is added.

        Parameters
        ----------
        owner : Pubkey
            Wallet that will own the token account.
        pending : PendingTransaction
            Transaction being assembled.

        Returns
        -------
        AccountRef
            The account address and whether creation was scheduled.

        Raises
        ------
        LedgerUnavailableError
            If the existence query fails. No instruction is guessed.
        """
        address = self.account_for(owner)

        if pending.creates_account(address):
            return AccountRef(address=address, created=False)

        if await self._gateway.account_exists(address):
            logger.debug("Token account exists", extra={"account": str(address)})
            return AccountRef(address=address, created=False)

        pending.add(
            create_associated_account_instruction(
                payer=self._gateway.authority,
                account=address,
                owner=owner,
                mint=self._token_config.mint,
                token_program=self._token_config.program_id,
            )
        )
        logger.info(
            "Token account creation scheduled",
            extra={"account": str(address), "owner": str(owner)},
        )
        return AccountRef(address=address, created=True)
