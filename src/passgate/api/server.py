"""HTTP API for PASSGATE.

Endpoints:
- POST /api/claim: Faucet claim for ``{"walletAddress": ...}``
- GET /api/config: Public token configuration (no key material)
"""

import logging
import uuid

from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from passgate.config import TokenConfig
from passgate.faucet.issuer import PUBLIC_BALANCE_NOTE, ClaimResult, ClaimStatus, FaucetIssuer
from passgate.observability.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Token not configured. Run setup first."


class ClaimRequest(BaseModel):
    """Body of a faucet claim request."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    wallet_address: str = Field(default="", alias="walletAddress")


def claim_response(result: ClaimResult) -> web.Response:
    """Map a claim result to its HTTP response."""
    if result.status == ClaimStatus.SUCCESS:
        return web.json_response(
            {
                "success": True,
                "signature": result.signature,
                "amount": int(result.amount),
                "tokenAccount": result.token_account,
                "explorer": result.explorer_url,
                "note": PUBLIC_BALANCE_NOTE,
            }
        )

    if result.status in (ClaimStatus.INVALID_ADDRESS, ClaimStatus.INVALID_AMOUNT):
        return web.json_response({"error": result.message}, status=400)

    if result.status == ClaimStatus.COOLDOWN_ACTIVE:
        return web.json_response(
            {
                "error": "Claim cooldown active",
                "message": result.message,
                "nextClaimAt": int(result.next_claim_at * 1000),
            },
            status=429,
        )

    if result.status == ClaimStatus.CONFIG_MISSING:
        return web.json_response({"error": result.message}, status=500)

    body: dict = {
        "error": "Failed to process claim",
        "details": result.message,
        "retryable": result.retryable,
    }
    if result.uncertain:
        body["uncertain"] = True
        body["signature"] = result.signature
        body["explorer"] = result.explorer_url
    return web.json_response(body, status=500)


@web.middleware
async def request_id_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Tag log records of one request with a request ID."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_id(request_id)
    try:
        response = await handler(request)
    finally:
        clear_request_id()
    response.headers["X-Request-ID"] = request_id
    return response


class ApiServer:
    """HTTP server for the faucet API.

    Parameters
    ----------
    issuer : FaucetIssuer | None
        Faucet issuer. None when the token is not configured yet, in
        which case claims fail with 500.
    token_config : TokenConfig | None
        Token configuration served by ``/api/config``.
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    """

    def __init__(
        self,
        issuer: FaucetIssuer | None,
        token_config: TokenConfig | None,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 3000,
    ):
        self._issuer = issuer
        self._token_config = token_config
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application(middlewares=[request_id_middleware])
        app.router.add_post("/api/claim", self._handle_claim)
        app.router.add_get("/api/config", self._handle_config)
        return app

    async def start(self) -> None:
        """Start the API server."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info(
            "API server started",
            extra={"host": self._host, "port": self._port},
        )

    async def stop(self) -> None:
        """Stop the API server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("API server stopped")

    async def _handle_claim(self, request: web.Request) -> web.Response:
        """Handle POST /api/claim."""
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"error": "Request body must be JSON"}, status=400)

        try:
            claim = ClaimRequest.model_validate(payload)
        except ValidationError:
            return web.json_response({"error": "Invalid wallet address"}, status=400)

        if not claim.wallet_address:
            return web.json_response({"error": "Wallet address required"}, status=400)

        if self._issuer is None:
            return web.json_response({"error": NOT_CONFIGURED}, status=500)

        result = await self._issuer.issue(claim.wallet_address)
        return claim_response(result)

    async def _handle_config(self, _request: web.Request) -> web.Response:
        """Handle GET /api/config."""
        if self._token_config is None:
            return web.json_response({"error": "Token not configured yet"}, status=404)
        return web.json_response(self._token_config.public_view())
