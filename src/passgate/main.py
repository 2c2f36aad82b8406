#!/usr/bin/env python3
"""PASSGATE - Token-gated access with a demo token faucet.

Entry point for the PASSGATE service.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
import tempfile
from pathlib import Path

from solders.keypair import Keypair

from passgate.api import ApiServer
from passgate.cli import create_parser, run_cli
from passgate.config import PassgateConfig, load_token_config
from passgate.core.wallet import load_mint_authority
from passgate.errors import ConfigMissingError
from passgate.faucet import ClaimRateLimiter, FaucetIssuer, TokenAccountProvisioner
from passgate.ledger import LedgerGateway, NetworkInfo
from passgate.observability.health import (
    ClaimStoreHealthCheck,
    HealthServer,
    LedgerHealthCheck,
)
from passgate.observability.logging import configure_logging


def generate_keypair(output_path: str) -> Keypair:
    """Generate a new mint authority keypair and save it to a file.

    The file uses the Solana CLI format (JSON array of 64 integers) and
    is only readable by the owner.

    Parameters
    ----------
    output_path : str
        Path to save the keypair file.

    Returns
    -------
    Keypair
        The generated keypair.
    """
    keypair = Keypair()

    key_path = Path(output_path)
    key_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in the same directory so the rename is atomic
    fd, temp_path = tempfile.mkstemp(dir=key_path.parent, prefix=".passgate-key-")
    fd_closed = False
    try:
        os.fchmod(fd, 0o600)  # Set permissions before writing
        os.write(fd, json.dumps(list(bytes(keypair))).encode())
        os.close(fd)
        fd_closed = True
        os.rename(temp_path, key_path)
    except Exception:
        if not fd_closed:
            os.close(fd)
        Path(temp_path).unlink(missing_ok=True)
        raise

    print(f"""
Keypair generated successfully!

  Public Key: {keypair.pubkey()}
  Keypair:    {key_path.absolute()}

Next steps:

  1. Fund this address with SOL for transaction fees on your target cluster

  2. Make it the mint authority of your token and launch PASSGATE:

     export PASSGATE_MINT_AUTHORITY_FILE={key_path.absolute()}
     passgate run

IMPORTANT: Keep this keypair secure. Anyone with access can mint tokens.
""")
    return keypair


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return create_parser().parse_args(argv)


async def run_service() -> None:
    """Run the PASSGATE service (long-running mode).

    Wires up and starts all service components:
    - HealthServer for probes and metrics
    - Ledger gateway with the mint authority
    - ClaimRateLimiter (Redis or in-memory)
    - FaucetIssuer behind the HTTP API
    """
    config = PassgateConfig()
    configure_logging(level=config.log_level, log_format=config.log_format)

    logger = logging.getLogger(__name__)
    logger.info("PASSGATE starting")
    logger.info(
        "Faucet policy: %s tokens per %s hours", config.claim_amount, config.cooldown_hours
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_shutdown_signal(sig_name: str) -> None:
        logger.info("Received signal %s, initiating shutdown", sig_name)
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: on_shutdown_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: on_shutdown_signal("SIGINT"))

    # Start health server first (for probes)
    health_server = HealthServer(port=config.metrics_port)
    await health_server.start()

    rate_limiter = ClaimRateLimiter(
        cooldown_hours=config.cooldown_hours,
        redis_url=config.redis_url,
        lock_timeout=config.claim_lock_seconds,
    )
    await rate_limiter.connect()
    health_server.add_check(
        ClaimStoreHealthCheck(rate_limiter, require_shared=config.redis_url is not None)
    )

    gateway: LedgerGateway | None = None
    issuer: FaucetIssuer | None = None
    token_config = None
    try:
        token_config = load_token_config(config.token_config_file)
    except ConfigMissingError as e:
        # Claims answer 500 and /api/config answers 404 until provisioned
        logger.error("Token not configured: %s", e)

    if token_config is not None:
        try:
            authority = load_mint_authority(config)
            network = NetworkInfo.for_cluster(token_config.network, config.rpc_endpoint)
        except ValueError as e:
            logger.error("Invalid configuration: %s", e)
            await rate_limiter.close()
            await health_server.stop()
            sys.exit(1)

        if authority is not None:
            logger.info("Mint authority loaded: %s", authority.pubkey)
        logger.info("Cluster: %s (%s)", network.cluster, network.rpc_endpoint)

        gateway = LedgerGateway(
            network.rpc_endpoint,
            authority=authority,
            rpc_timeout=config.rpc_timeout_seconds,
        )
        health_server.add_check(LedgerHealthCheck(gateway))

        issuer = FaucetIssuer(
            gateway=gateway,
            provisioner=TokenAccountProvisioner(gateway, token_config),
            rate_limiter=rate_limiter,
            token_config=token_config,
            network=network,
            claim_amount=config.claim_amount,
            confirm_timeout=config.confirm_timeout_seconds,
        )

    api_server = ApiServer(issuer, token_config, host=config.api_host, port=config.api_port)
    await api_server.start()

    logger.info("PASSGATE service ready")

    # Wait for shutdown signal
    await shutdown_event.wait()

    # Graceful shutdown
    logger.info("PASSGATE shutting down...")
    await api_server.stop()
    if gateway is not None:
        await gateway.close()
    await rate_limiter.close()
    await health_server.stop()
    logger.info("PASSGATE shutdown complete")


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for PASSGATE."""
    args = parse_args(argv)

    if args.generate_keypair:
        generate_keypair(args.generate_keypair)
        return

    # Handle CLI subcommands
    if args.command and args.command != "run":
        exit_code = await run_cli(args)
        if exit_code >= 0:
            sys.exit(exit_code)
        create_parser().print_help()
        sys.exit(0)

    # No subcommand or "run" - start service
    await run_service()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
