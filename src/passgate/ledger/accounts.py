"""Token account helpers for Token-2022 / SPL Token mints.

Account layout shared by classic SPL Token and Token-2022:
Mint(0-32) | Owner(32-64) | Amount(64-72)
"""

import struct
from dataclasses import dataclass, field

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID
from spl.token.instructions import mint_to
from spl.token.models import MintToParams

from passgate.errors import InputError

TOKEN_ACCOUNT_MIN_SIZE = 72

# Token amounts are u64 on chain
MAX_BASE_UNITS = 2**64 - 1

# Associated token account program instruction tag for "Create"
_CREATE_ASSOCIATED_ACCOUNT = bytes([0])


def parse_identity(address: str) -> Pubkey:
    """Parse a wallet address into a public key.

    Parameters
    ----------
    address : str
        Base58-encoded public key.

    Returns
    -------
    Pubkey
        The parsed identity.

    Raises
    ------
    InputError
        If the address is empty or not a valid 32-byte public key.
    """
    if not address or not isinstance(address, str):
        raise InputError("Wallet address required")
    try:
        return Pubkey.from_string(address.strip())
    except ValueError:
        raise InputError(f"Invalid wallet address: {address}") from None


def derive_token_account(owner: Pubkey, mint: Pubkey, token_program: Pubkey) -> Pubkey:
    """Derive the associated token account for ``(mint, owner)``.

    Pure function of its inputs; nothing is queried or cached.
    """
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_associated_account_instruction(
    payer: Pubkey,
    account: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
) -> Instruction:
    """Build the instruction that creates an associated token account."""
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, _CREATE_ASSOCIATED_ACCOUNT, accounts)


def mint_to_instruction(
    mint: Pubkey,
    account: Pubkey,
    authority: Pubkey,
    base_units: int,
    token_program: Pubkey,
) -> Instruction:
    """Build a MintTo instruction for ``base_units`` of ``mint``."""
    if base_units <= 0:
        raise InputError("Mint amount must be positive")
    if base_units > MAX_BASE_UNITS:
        raise InputError("Mint amount exceeds the u64 token limit")
    return mint_to(
        MintToParams(
            program_id=token_program,
            mint=mint,
            dest=account,
            mint_authority=authority,
            amount=base_units,
        )
    )


def parse_token_amount(account_data: bytes) -> int:
    """Read the raw token amount from token account data.

    Raises
    ------
    ValueError
        If the data is too short to be a token account.
    """
    if len(account_data) < TOKEN_ACCOUNT_MIN_SIZE:
        raise ValueError(f"Token account data too short: {len(account_data)} bytes")
    return struct.unpack("<Q", account_data[64:72])[0]


def is_create_account_for(instruction: Instruction, account: Pubkey) -> bool:
    """Check whether ``instruction`` creates the associated account ``account``."""
    return (
        instruction.program_id == ASSOCIATED_TOKEN_PROGRAM_ID
        and len(instruction.accounts) > 1
        and instruction.accounts[1].pubkey == account
    )


@dataclass
class PendingTransaction:
    """Ordered instruction set submitted atomically as one transaction."""

    instructions: list[Instruction] = field(default_factory=list)

    def add(self, instruction: Instruction) -> None:
        """Append an instruction."""
        self.instructions.append(instruction)

    def creates_account(self, account: Pubkey) -> bool:
        """Check whether an instruction already creates ``account``."""
        return any(is_create_account_for(ix, account) for ix in self.instructions)
