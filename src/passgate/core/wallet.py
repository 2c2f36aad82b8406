"""Mint authority key provider for signing transactions."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import SecretStr
from solders.keypair import Keypair
from solders.pubkey import Pubkey

if TYPE_CHECKING:
    from passgate.config import PassgateConfig

logger = logging.getLogger(__name__)


def parse_keypair(content: str) -> Keypair:
    """Parse secret key material.

    Accepts the Solana CLI format (JSON array of 64 integers) or a
    base58-encoded 64-byte secret key.

    Raises
    ------
    ValueError
        If the content is not a valid keypair.
    """
    content = content.strip()
    if content.startswith("["):
        try:
            secret = bytes(json.loads(content))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid keypair JSON: {e}") from None
        return Keypair.from_bytes(secret)
    return Keypair.from_base58_string(content)


class KeypairProvider(ABC):
    """Abstract provider of the mint authority keypair."""

    @abstractmethod
    def get_keypair(self) -> Keypair:
        """Get the keypair for transaction signing.

        Returns
        -------
        Keypair
            The mint authority keypair.
        """
        ...

    @property
    def pubkey(self) -> Pubkey:
        """Public key of the mint authority."""
        return self.get_keypair().pubkey()


class FileKeypair(KeypairProvider):
    """Load the mint authority from a secret value or a keypair file.

    Parameters
    ----------
    secret_key : SecretStr, optional
        The keypair as a SecretStr (from env var).
    secret_key_file : str, optional
        Path to a Solana CLI keypair file.

    Raises
    ------
    ValueError
        If neither secret_key nor secret_key_file is provided.
    FileNotFoundError
        If secret_key_file does not exist.
    """

    def __init__(
        self,
        secret_key: SecretStr | None = None,
        secret_key_file: str | None = None,
    ):
        if secret_key is not None:
            self._keypair = parse_keypair(secret_key.get_secret_value())
        elif secret_key_file is not None:
            key_path = Path(secret_key_file).expanduser()
            if not key_path.exists():
                raise FileNotFoundError(f"Mint authority not found: {secret_key_file}")
            self._keypair = parse_keypair(key_path.read_text())
        else:
            raise ValueError("Either secret_key or secret_key_file must be provided")

    def get_keypair(self) -> Keypair:
        """Get the keypair for transaction signing."""
        return self._keypair


def load_mint_authority(config: "PassgateConfig") -> FileKeypair | None:
    """Load the mint authority configured in the environment.

    ``PASSGATE_MINT_AUTHORITY_KEY`` takes precedence over the keypair file.

    Returns
    -------
    FileKeypair | None
        The mint authority, or None if no key material is available.
        Read-only operations still work without one.

    Raises
    ------
    ValueError
        If the key material is present but malformed.
    """
    if config.mint_authority_key is not None:
        return FileKeypair(secret_key=config.mint_authority_key)
    try:
        return FileKeypair(secret_key_file=config.mint_authority_file)
    except FileNotFoundError:
        logger.warning(
            "Mint authority not found",
            extra={"path": config.mint_authority_file},
        )
        return None
