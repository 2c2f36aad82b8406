"""CLI subcommands for PASSGATE operations.

Provides command-line interface for:
- Token configuration (config)
- Balance and gate checks (balance, check)
- Operator airdrops and cooldown admin (airdrop, cooldown)
"""

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation

from passgate.config import PassgateConfig, TokenConfig, load_token_config
from passgate.core.wallet import FileKeypair, load_mint_authority
from passgate.eligibility import (
    AccessStateMachine,
    EligibilityEvaluator,
    GateState,
    ProofEngine,
    SimulatedProofBackend,
)
from passgate.errors import InputError, PassgateError
from passgate.faucet import ClaimRateLimiter, FaucetIssuer, TokenAccountProvisioner
from passgate.faucet.rate_limiter import round_up_hours
from passgate.ledger import LedgerGateway, NetworkInfo, parse_identity
from passgate.ledger.accounts import MAX_BASE_UNITS


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="passgate",
        description="PASSGATE - Token-gated access with a demo token faucet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global flags
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without executing",
    )
    parser.add_argument(
        "--generate-keypair",
        metavar="FILE",
        help="Generate a new mint authority keypair and save it to FILE, then exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Start the PASSGATE service")
    subparsers.add_parser("config", help="Show the token configuration")

    balance_parser = subparsers.add_parser("balance", help="Show a wallet's token balance")
    balance_parser.add_argument("wallet_address", type=str, help="Wallet address")

    check_parser = subparsers.add_parser("check", help="Run a wallet through the access gate")
    check_parser.add_argument("wallet_address", type=str, help="Wallet address")
    check_parser.add_argument(
        "--claim",
        action="store_true",
        help="Claim faucet tokens if the balance is below the threshold",
    )

    cooldown_parser = subparsers.add_parser("cooldown", help="Show a wallet's claim cooldown")
    cooldown_parser.add_argument("wallet_address", type=str, help="Wallet address")
    cooldown_parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear the claim record so the wallet can claim again",
    )

    airdrop_parser = subparsers.add_parser("airdrop", help="Mint tokens to a wallet")
    airdrop_parser.add_argument("wallet_address", type=str, help="Recipient wallet address")
    airdrop_parser.add_argument("amount", type=str, help="Amount of whole tokens to mint")

    return parser


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, config: PassgateConfig, dry_run: bool = False, json_output: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.json_output = json_output
        self._token_config: TokenConfig | None = None
        self._authority: FileKeypair | None = None
        self._authority_loaded = False
        self._gateway: LedgerGateway | None = None
        self._rate_limiter: ClaimRateLimiter | None = None

    @property
    def token_config(self) -> TokenConfig:
        """Get token config (lazy loaded)."""
        if self._token_config is None:
            self._token_config = load_token_config(self.config.token_config_file)
        return self._token_config

    @property
    def network(self) -> NetworkInfo:
        return NetworkInfo.for_cluster(self.token_config.network, self.config.rpc_endpoint)

    @property
    def authority(self) -> FileKeypair | None:
        """Get mint authority (lazy loaded, None if not provisioned)."""
        if not self._authority_loaded:
            self._authority = load_mint_authority(self.config)
            self._authority_loaded = True
        return self._authority

    @property
    def gateway(self) -> LedgerGateway:
        """Get ledger gateway (lazy loaded)."""
        if self._gateway is None:
            self._gateway = LedgerGateway(
                self.network.rpc_endpoint,
                authority=self.authority,
                rpc_timeout=self.config.rpc_timeout_seconds,
            )
        return self._gateway

    @property
    def evaluator(self) -> EligibilityEvaluator:
        return EligibilityEvaluator(self.gateway, self.token_config)

    async def get_rate_limiter(self) -> ClaimRateLimiter:
        """Get the claim record store shared with the service (lazy connected)."""
        if self._rate_limiter is None:
            self._rate_limiter = ClaimRateLimiter(
                cooldown_hours=self.config.cooldown_hours,
                redis_url=self.config.redis_url,
                lock_timeout=self.config.claim_lock_seconds,
            )
            await self._rate_limiter.connect()
        return self._rate_limiter

    async def get_issuer(self) -> FaucetIssuer:
        """Build a faucet issuer sharing the service's claim records."""
        return FaucetIssuer(
            gateway=self.gateway,
            provisioner=TokenAccountProvisioner(self.gateway, self.token_config),
            rate_limiter=await self.get_rate_limiter(),
            token_config=self.token_config,
            network=self.network,
            claim_amount=self.config.claim_amount,
            confirm_timeout=self.config.confirm_timeout_seconds,
        )

    async def close(self) -> None:
        """Release network resources."""
        if self._gateway is not None:
            await self._gateway.close()
        if self._rate_limiter is not None:
            await self._rate_limiter.close()

    def output(self, data: dict) -> None:
        """Output data in the appropriate format."""
        if self.json_output:
            # Convert Decimal to string for JSON serialization
            def decimal_default(obj):
                if isinstance(obj, Decimal):
                    return str(obj)
                raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

            print(json.dumps(data, default=decimal_default, indent=2))
        else:
            self._print_formatted(data)

    def _print_formatted(self, data: dict, indent: int = 0) -> None:
        """Print data in human-readable format."""
        prefix = "  " * indent
        for key, value in data.items():
            if isinstance(value, dict):
                print(f"{prefix}{key}:")
                self._print_formatted(value, indent + 1)
            else:
                print(f"{prefix}{key}: {value}")


def parse_amount(amount_str: str) -> Decimal:
    """Parse a whole-token amount given on the command line.

    Raises
    ------
    InputError
        If the amount is not a positive number.
    """
    try:
        amount = Decimal(amount_str)
    except InvalidOperation:
        raise InputError(f"Invalid amount: {amount_str}") from None
    if not amount.is_finite() or amount <= 0:
        raise InputError("Amount must be a positive number")
    return amount


async def cmd_config(ctx: CLIContext) -> int:
    """Show the token configuration and faucet policy."""
    try:
        token_config = ctx.token_config
        authority = ctx.authority
        ctx.output(
            {
                **token_config.public_view(),
                "tokenProgram": token_config.token_program,
                "rpc": ctx.network.rpc_endpoint,
                "mintAuthority": str(authority.pubkey) if authority else None,
                "claimAmount": ctx.config.claim_amount,
                "cooldownHours": ctx.config.cooldown_hours,
                "eligibilityThreshold": ctx.config.eligibility_threshold,
            }
        )
        return 0
    except (PassgateError, ValueError) as e:
        ctx.output({"error": str(e)})
        return 1


async def cmd_balance(ctx: CLIContext, wallet_address: str) -> int:
    """Show a wallet's token balance."""
    try:
        threshold = ctx.config.eligibility_threshold
        evaluation = await ctx.evaluator.evaluate(wallet_address, threshold)
        if evaluation.is_unknown:
            ctx.output({"error": "Unable to determine balance", "wallet": wallet_address})
            return 1

        token_config = ctx.token_config
        ctx.output(
            {
                "wallet": wallet_address,
                "token_account": str(ctx.evaluator.account_for(parse_identity(wallet_address))),
                "balance": token_config.from_base_units(evaluation.balance),
                "base_units": evaluation.balance,
                "threshold": threshold,
                "eligible": evaluation.is_eligible,
            }
        )
        return 0
    except (PassgateError, ValueError) as e:
        ctx.output({"error": str(e)})
        return 1


async def cmd_check(ctx: CLIContext, wallet_address: str, claim: bool = False) -> int:
    """Drive a wallet through the access gate.

    Returns 0 only when access is granted, or always with ``--dry-run``.
    """
    try:
        issuer = await ctx.get_issuer()
        proof_engine = ProofEngine(
            ctx.evaluator,
            SimulatedProofBackend(delay=ctx.config.proof_delay_seconds),
            validity_seconds=ctx.config.proof_validity_seconds,
        )
        gate = AccessStateMachine(
            ctx.evaluator,
            issuer,
            proof_engine,
            threshold=ctx.config.eligibility_threshold,
        )

        gate.connect(wallet_address)
        outcome = await gate.evaluate()

        if outcome.state == GateState.BELOW_THRESHOLD and claim and not ctx.dry_run:
            outcome = await gate.request_claim()

        if outcome.state == GateState.ELIGIBLE and not ctx.dry_run:
            outcome = await gate.request_proof()

        data = {
            "wallet": gate.identity,
            "state": outcome.state.value,
            "message": outcome.message,
            "history": [state.value for state in gate.history],
        }
        if outcome.evaluation is not None and not outcome.evaluation.is_unknown:
            data["balance"] = ctx.token_config.from_base_units(outcome.evaluation.balance)
        if outcome.claim is not None and outcome.claim.signature:
            data["claim_signature"] = outcome.claim.signature
        if outcome.retry_after_hours is not None:
            data["retry_after_hours"] = outcome.retry_after_hours
        if ctx.dry_run:
            data["dry_run"] = True
        ctx.output(data)
        return 0 if ctx.dry_run or outcome.state == GateState.GRANTED else 1
    except (PassgateError, ValueError) as e:
        ctx.output({"error": str(e)})
        return 1


async def cmd_airdrop(ctx: CLIContext, wallet_address: str, amount_str: str) -> int:
    """Mint tokens to a wallet without a cooldown."""
    try:
        amount = parse_amount(amount_str)
        parse_identity(wallet_address)
        if ctx.token_config.to_base_units(amount) > MAX_BASE_UNITS:
            raise InputError("Amount exceeds the maximum mintable supply")

        if ctx.dry_run:
            ctx.output(
                {
                    "dry_run": True,
                    "action": "airdrop",
                    "to": wallet_address,
                    "amount": amount,
                    "base_units": ctx.token_config.to_base_units(amount),
                    "message": f"Would mint {amount} tokens to {wallet_address}",
                }
            )
            return 0

        issuer = await ctx.get_issuer()
        result = await issuer.airdrop(wallet_address, amount)
        if not result.success:
            data = {"error": result.message, "retryable": result.retryable}
            if result.uncertain:
                data["uncertain"] = True
                data["explorer"] = result.explorer_url
            ctx.output(data)
            return 1

        ctx.output(
            {
                "success": True,
                "action": "airdrop",
                "to": wallet_address,
                "amount": amount,
                "base_units": result.base_units,
                "token_account": result.token_account,
                "signature": result.signature,
                "explorer": result.explorer_url,
            }
        )
        return 0
    except (PassgateError, ValueError) as e:
        ctx.output({"error": str(e)})
        return 1


async def cmd_cooldown(ctx: CLIContext, wallet_address: str, reset: bool = False) -> int:
    """Show a wallet's claim cooldown, or clear it with ``reset``."""
    try:
        identity = str(parse_identity(wallet_address))
        rate_limiter = await ctx.get_rate_limiter()

        if reset:
            if ctx.dry_run:
                ctx.output(
                    {
                        "dry_run": True,
                        "action": "reset_claim",
                        "wallet": identity,
                        "message": f"Would clear the claim record of {identity}",
                    }
                )
                return 0
            await rate_limiter.reset_claim(identity)
            ctx.output({"success": True, "action": "reset_claim", "wallet": identity})
            return 0

        remaining = await rate_limiter.get_cooldown(identity)
        ctx.output(
            {
                "wallet": identity,
                "cooldown_active": remaining is not None,
                "retry_after_hours": (
                    round_up_hours(remaining.total_seconds()) if remaining else None
                ),
                "cooldown_hours": ctx.config.cooldown_hours,
                "shared_store": rate_limiter.uses_redis,
            }
        )
        return 0
    except (PassgateError, ValueError) as e:
        ctx.output({"error": str(e)})
        return 1


async def run_cli(args: argparse.Namespace) -> int:
    """Execute CLI command based on parsed arguments.

    Returns
    -------
    int
        Exit code: 0 for success, positive for error, -1 signals caller
        to show help (no CLI command specified).
    """
    # Load config
    try:
        config = PassgateConfig()
    except Exception as e:
        if args.json:
            print(json.dumps({"error": f"Configuration error: {e}"}))
        else:
            print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    ctx = CLIContext(config, dry_run=args.dry_run, json_output=args.json)

    # Route to appropriate command
    try:
        if args.command == "config":
            return await cmd_config(ctx)
        elif args.command == "balance":
            return await cmd_balance(ctx, args.wallet_address)
        elif args.command == "check":
            return await cmd_check(ctx, args.wallet_address, claim=args.claim)
        elif args.command == "airdrop":
            return await cmd_airdrop(ctx, args.wallet_address, args.amount)
        elif args.command == "cooldown":
            return await cmd_cooldown(ctx, args.wallet_address, reset=args.reset)
        else:
            # No subcommand - show help
            return -1
    finally:
        await ctx.close()
