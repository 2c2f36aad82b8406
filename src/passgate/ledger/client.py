"""Solana RPC gateway for PASSGATE ledger operations.

Wraps ``solana.rpc.async_api.AsyncClient``. Every call is bounded by a
timeout and transport failures are converted to ``LedgerUnavailableError``
(or ``LedgerTimeoutError``) so that no raw RPC error escapes this module.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import RPCException
from solana.rpc.models import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from passgate.core.wallet import KeypairProvider
from passgate.errors import ConfigMissingError, LedgerTimeoutError, LedgerUnavailableError

from .accounts import PendingTransaction, parse_token_amount

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONFIRMED_STATUSES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


class LedgerGateway:
    """Thin wrapper around the Solana RPC for faucet and gate operations.

    Parameters
    ----------
    rpc_endpoint : str
        The Solana RPC endpoint URL.
    authority : KeypairProvider | None
        Mint authority used to sign and pay for transactions. Read-only
        operations work without one.
    rpc_timeout : float
        Upper bound in seconds for a single RPC query.
    poll_interval : float
        Seconds between signature status polls while confirming.
    commitment : Commitment
        Commitment level for reads and confirmation.
    client : AsyncClient | None
        Pre-built RPC client, mainly for tests.
    """

    def __init__(
        self,
        rpc_endpoint: str,
        authority: KeypairProvider | None = None,
        rpc_timeout: float = 30.0,
        poll_interval: float = 0.5,
        commitment: Commitment = Confirmed,
        client: AsyncClient | None = None,
    ):
        self._rpc_endpoint = rpc_endpoint
        self._authority = authority
        self._rpc_timeout = rpc_timeout
        self._poll_interval = poll_interval
        self._commitment = commitment
        self._client = client or AsyncClient(rpc_endpoint, commitment=commitment)

    @property
    def rpc_endpoint(self) -> str:
        """The RPC endpoint URL."""
        return self._rpc_endpoint

    @property
    def authority(self) -> Pubkey:
        """Public key of the mint authority (fee payer).

        Raises
        ------
        ConfigMissingError
            If no mint authority is configured.
        """
        if self._authority is None:
            raise ConfigMissingError("Mint authority not found")
        return self._authority.pubkey

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self._client.close()

    async def _call(self, operation: str, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        """Await an RPC call with a time bound and typed errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout or self._rpc_timeout)
        except asyncio.TimeoutError:
            raise LedgerTimeoutError(f"{operation} timed out") from None
        except (SolanaRpcException, RPCException, OSError) as e:
            logger.warning(
                "Ledger call failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise LedgerUnavailableError(f"{operation} failed: {e}") from e

    async def is_connected(self) -> bool:
        """Check whether the RPC node answers health checks."""
        try:
            return await self._call("getHealth", self._client.is_connected())
        except LedgerUnavailableError:
            return False

    async def get_account_data(self, address: Pubkey) -> bytes | None:
        """Fetch raw account data.

        Parameters
        ----------
        address : Pubkey
            The account to query.

        Returns
        -------
        bytes | None
            Account data, or None if the account does not exist.
        """
        resp = await self._call(
            "getAccountInfo",
            self._client.get_account_info(address, commitment=self._commitment),
        )
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def account_exists(self, address: Pubkey) -> bool:
        """Check whether an account exists on the ledger."""
        return await self.get_account_data(address) is not None

    async def get_token_balance(self, account: Pubkey) -> int | None:
        """Get the raw (base unit) balance of a token account.

        Returns
        -------
        int | None
            Balance in base units, or None if the account does not exist.

        Raises
        ------
        LedgerUnavailableError
            If the query fails or the account is not a token account.
        """
        data = await self.get_account_data(account)
        if data is None:
            return None
        try:
            return parse_token_amount(data)
        except ValueError as e:
            raise LedgerUnavailableError(f"Account {account} is not a token account") from e

    async def get_latest_blockhash(self) -> Hash:
        """Fetch a recent blockhash to anchor a transaction."""
        resp = await self._call(
            "getLatestBlockhash",
            self._client.get_latest_blockhash(commitment=self._commitment),
        )
        return resp.value.blockhash

    async def submit(self, pending: PendingTransaction) -> str:
        """Sign ``pending`` with the mint authority and submit it.

        Parameters
        ----------
        pending : PendingTransaction
            Instructions to submit as a single atomic transaction.

        Returns
        -------
        str
            The transaction signature.

        Raises
        ------
        LedgerTimeoutError
            If sending timed out. Carries the signature, since the
            transaction may still land.
        """
        if self._authority is None:
            raise ConfigMissingError("Mint authority not found")
        keypair = self._authority.get_keypair()
        blockhash = await self.get_latest_blockhash()

        tx = Transaction.new_signed_with_payer(
            pending.instructions,
            keypair.pubkey(),
            [keypair],
            blockhash,
        )
        # Known before sending; the transaction may land even if the call times out
        local_signature = str(tx.signatures[0])
        try:
            resp = await self._call(
                "sendTransaction",
                self._client.send_raw_transaction(
                    bytes(tx),
                    opts=TxOpts(skip_preflight=False, preflight_commitment=self._commitment),
                ),
            )
        except LedgerTimeoutError as e:
            raise LedgerTimeoutError(str(e), signature=local_signature) from None
        signature = str(resp.value)

        logger.info(
            "Transaction submitted",
            extra={"signature": signature, "instructions": len(pending.instructions)},
        )
        return signature

    async def wait_for_confirmation(self, signature: str, timeout: float = 60.0) -> None:
        """Wait until a transaction reaches the configured commitment.

        Parameters
        ----------
        signature : str
            The transaction signature to wait for.
        timeout : float, optional
            Maximum time to wait in seconds. Default is 60.

        Raises
        ------
        LedgerTimeoutError
            If the transaction is not confirmed within the timeout. Its
            final state is unknown.
        LedgerUnavailableError
            If the transaction failed on chain or status polling failed.
        """
        sig = Signature.from_string(signature)

        async def _poll() -> None:
            while True:
                resp = await self._client.get_signature_statuses([sig])
                status = resp.value[0]
                if status is not None:
                    if status.err is not None:
                        raise LedgerUnavailableError(
                            f"Transaction {signature} failed: {status.err}"
                        )
                    if status.confirmation_status in _CONFIRMED_STATUSES:
                        return
                await asyncio.sleep(self._poll_interval)

        await self._call("confirmTransaction", _poll(), timeout=timeout)
        logger.info("Transaction confirmed", extra={"signature": signature})
