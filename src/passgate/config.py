"""Configuration management for PASSGATE using Pydantic Settings."""

import json
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

from passgate.errors import ConfigMissingError

TOKEN_2022_PROGRAM = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

# RPC calls made while a claim lock is held: account lookup, blockhash, send
CLAIM_RPC_CALLS = 3
CLAIM_LOCK_MARGIN_SECONDS = 30.0


class PassgateConfig(BaseSettings):
    """PASSGATE service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # Ledger
    token_config_file: str = Field(default="token-config.json", alias="PASSGATE_TOKEN_CONFIG_FILE")
    rpc_endpoint: str | None = Field(default=None, alias="PASSGATE_RPC_ENDPOINT")
    rpc_timeout_seconds: float = Field(default=30.0, alias="PASSGATE_RPC_TIMEOUT_SECONDS", gt=0)
    confirm_timeout_seconds: float = Field(
        default=60.0, alias="PASSGATE_CONFIRM_TIMEOUT_SECONDS", gt=0
    )

    # Mint authority
    mint_authority_file: str = Field(
        default=".keys/mint-authority.json", alias="PASSGATE_MINT_AUTHORITY_FILE"
    )
    mint_authority_key: SecretStr | None = Field(default=None, alias="PASSGATE_MINT_AUTHORITY_KEY")

    # Faucet and gate policy
    claim_amount: int = Field(default=100, alias="PASSGATE_CLAIM_AMOUNT", gt=0)
    cooldown_hours: float = Field(default=24.0, alias="PASSGATE_COOLDOWN_HOURS", gt=0)
    eligibility_threshold: int = Field(default=100, alias="PASSGATE_ELIGIBILITY_THRESHOLD", gt=0)
    proof_validity_seconds: int = Field(default=300, alias="PASSGATE_PROOF_VALIDITY_SECONDS", gt=0)
    proof_delay_seconds: float = Field(default=2.0, alias="PASSGATE_PROOF_DELAY_SECONDS", ge=0)

    # Redis
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # HTTP API
    api_host: str = Field(default="0.0.0.0", alias="PASSGATE_API_HOST")  # noqa: S104
    api_port: int = Field(default=3000, alias="PASSGATE_API_PORT", ge=1, le=65535)

    # Observability
    metrics_port: int = Field(default=8080, alias="PASSGATE_METRICS_PORT", ge=1, le=65535)
    log_level: str = Field(default="INFO", alias="PASSGATE_LOG_LEVEL")
    log_format: str = Field(default="json", alias="PASSGATE_LOG_FORMAT")

    @property
    def claim_lock_seconds(self) -> float:
        """Time a claim lock must outlive: every RPC bound plus confirmation."""
        return (
            CLAIM_RPC_CALLS * self.rpc_timeout_seconds
            + self.confirm_timeout_seconds
            + CLAIM_LOCK_MARGIN_SECONDS
        )


class TokenConfig(BaseModel):
    """Token mint settings written once by the provisioning script.

    Read-only for the lifetime of the process. Keys are camelCase on disk.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    network: str
    mint_address: str = Field(alias="mintAddress")
    mint_authority: str | None = Field(default=None, alias="mintAuthority")
    decimals: int = Field(ge=0, le=18)
    token_program: str = Field(default=TOKEN_2022_PROGRAM, alias="tokenProgram")
    created_at: str | None = Field(default=None, alias="createdAt")

    @field_validator("mint_address", "token_program")
    @classmethod
    def _check_pubkey(cls, value: str) -> str:
        Pubkey.from_string(value)
        return value

    @property
    def mint(self) -> Pubkey:
        """Mint address as a public key."""
        return Pubkey.from_string(self.mint_address)

    @property
    def program_id(self) -> Pubkey:
        """Token program that owns the mint."""
        return Pubkey.from_string(self.token_program)

    def to_base_units(self, amount: int | Decimal) -> int:
        """Scale a whole-token amount by ``10**decimals``."""
        return int(Decimal(amount) * 10**self.decimals)

    def from_base_units(self, base_units: int) -> Decimal:
        """Convert a base-unit amount back to whole tokens."""
        return Decimal(base_units).scaleb(-self.decimals)

    def public_view(self) -> dict:
        """Fields that may be shown to clients. Never includes key material."""
        return {
            "mintAddress": self.mint_address,
            "network": self.network,
            "decimals": self.decimals,
        }


def load_token_config(path: str | Path) -> TokenConfig:
    """Load the persisted token configuration.

    Parameters
    ----------
    path : str | Path
        Path to ``token-config.json``.

    Returns
    -------
    TokenConfig
        The parsed configuration.

    Raises
    ------
    ConfigMissingError
        If the file does not exist or is malformed.
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigMissingError(f"Token not configured. Run setup first ({config_path} missing)")
    try:
        return TokenConfig.model_validate(json.loads(config_path.read_text()))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigMissingError(f"Token config at {config_path} is invalid: {e}") from e
