"""Pytest configuration and fixtures for PASSGATE tests."""

import os

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID

from passgate.config import TOKEN_2022_PROGRAM, TokenConfig
from passgate.errors import LedgerTimeoutError, LedgerUnavailableError
from passgate.ledger import NetworkInfo, PendingTransaction

MINT_TO_TAG = 7


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clear PASSGATE-related environment variables before each test."""
    env_prefixes = ("PASSGATE_", "REDIS_")
    for key in list(os.environ.keys()):
        if key.startswith(env_prefixes):
            monkeypatch.delenv(key, raising=False)


class FakeLedger:
    """In-memory stand-in for ``LedgerGateway``.

    Applies create-account and MintTo instructions from submitted
    transactions to a balance table, so faucet and gate flows can be
    exercised end to end.
    """

    def __init__(self, authority: Pubkey | None = None):
        self._authority = authority or Keypair().pubkey()
        self.balances: dict[Pubkey, int] = {}
        self.submitted: list[PendingTransaction] = []
        self.fail_balance = False
        self.fail_submit = False
        self.timeout_submit = False
        self.fail_confirm = False
        self.timeout_confirm = False
        self.connected = True

    @property
    def rpc_endpoint(self) -> str:
        return "http://fake-ledger"

    @property
    def authority(self) -> Pubkey:
        return self._authority

    async def is_connected(self) -> bool:
        return self.connected

    async def account_exists(self, address: Pubkey) -> bool:
        return address in self.balances

    async def get_token_balance(self, account: Pubkey) -> int | None:
        if self.fail_balance:
            raise LedgerUnavailableError("getAccountInfo failed: connection reset")
        return self.balances.get(account)

    async def submit(self, pending: PendingTransaction) -> str:
        if self.fail_submit:
            raise LedgerUnavailableError("sendTransaction failed: blockhash not found")
        self.submitted.append(pending)
        if self.timeout_submit:
            raise LedgerTimeoutError(
                "sendTransaction timed out", signature=str(Signature.new_unique())
            )
        return str(Signature.new_unique())

    async def wait_for_confirmation(self, signature: str, timeout: float = 60.0) -> None:
        if self.timeout_confirm:
            raise LedgerTimeoutError("confirmTransaction timed out")
        if self.fail_confirm:
            raise LedgerUnavailableError(f"Transaction {signature} failed: InstructionError")
        for ix in self.submitted[-1].instructions:
            if ix.program_id == ASSOCIATED_TOKEN_PROGRAM_ID:
                self.balances.setdefault(ix.accounts[1].pubkey, 0)
            elif ix.data[0] == MINT_TO_TAG:
                account = ix.accounts[1].pubkey
                amount = int.from_bytes(ix.data[1:9], "little")
                self.balances[account] = self.balances.get(account, 0) + amount

    async def close(self) -> None:
        pass


@pytest.fixture
def token_config():
    """Token config for a 9-decimal Token-2022 mint on devnet."""
    return TokenConfig(
        network="devnet",
        mintAddress=str(Keypair().pubkey()),
        mintAuthority=str(Keypair().pubkey()),
        decimals=9,
        tokenProgram=TOKEN_2022_PROGRAM,
        createdAt="2025-01-01T00:00:00.000Z",
    )


@pytest.fixture
def network():
    """Devnet network info."""
    return NetworkInfo.for_cluster("devnet")


@pytest.fixture
def fake_ledger():
    """Stateful in-memory ledger."""
    return FakeLedger()


@pytest.fixture
def wallet():
    """A fresh wallet address."""
    return str(Keypair().pubkey())
