"""Tests for health check endpoints."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from passgate.faucet.rate_limiter import ClaimRateLimiter
from passgate.observability.health import (
    CheckResult,
    ClaimStoreHealthCheck,
    HealthCheck,
    HealthResult,
    HealthServer,
    HealthStatus,
    LedgerHealthCheck,
)


class TestHealthResult:
    """Tests for HealthResult dataclass."""

    def test_health_result_ok(self):
        """HealthResult to_dict for OK status."""
        assert HealthResult(status=HealthStatus.OK).to_dict() == {"status": "ok"}

    def test_health_result_with_checks(self):
        """HealthResult to_dict includes checks."""
        result = HealthResult(
            status=HealthStatus.NOT_READY,
            checks={"ledger": "ok", "claim_store": "error: timeout"},
        )
        assert result.to_dict() == {
            "status": "not_ready",
            "checks": {"ledger": "ok", "claim_store": "error: timeout"},
        }


class StaticHealthCheck(HealthCheck):
    """Health check with a fixed result."""

    def __init__(self, name: str, status: HealthStatus, message: str | None = None):
        self._name = name
        self._status = status
        self._message = message

    @property
    def name(self) -> str:
        return self._name

    async def check(self) -> CheckResult:
        return CheckResult(name=self._name, status=self._status, message=self._message)


class FailingHealthCheck(HealthCheck):
    """Health check that raises an exception."""

    @property
    def name(self) -> str:
        return "failing"

    async def check(self) -> CheckResult:
        raise RuntimeError("Check failed")


class TestLedgerHealthCheck:
    """Tests for LedgerHealthCheck."""

    @pytest.mark.asyncio
    async def test_ok_when_connected(self, fake_ledger):
        """Reports OK when the RPC node is healthy."""
        result = await LedgerHealthCheck(fake_ledger).check()
        assert result.name == "ledger"
        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_error_when_unreachable(self, fake_ledger):
        """Reports the endpoint when the RPC node is unreachable."""
        fake_ledger.connected = False
        result = await LedgerHealthCheck(fake_ledger).check()
        assert result.status == HealthStatus.ERROR
        assert fake_ledger.rpc_endpoint in result.message


class TestClaimStoreHealthCheck:
    """Tests for ClaimStoreHealthCheck."""

    @pytest.mark.asyncio
    async def test_memory_store_ok_when_not_required(self):
        """In-memory records are fine unless a shared store is required."""
        check = ClaimStoreHealthCheck(ClaimRateLimiter())
        result = await check.check()
        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_memory_store_error_when_shared_required(self):
        """Falling back to memory fails readiness when Redis was configured."""
        check = ClaimStoreHealthCheck(ClaimRateLimiter(), require_shared=True)
        result = await check.check()
        assert result.status == HealthStatus.ERROR
        assert "Redis unavailable" in result.message


class TestHealthServer:
    """Tests for HealthServer endpoints."""

    @pytest.fixture
    async def app_client(self):
        """Create test client with HealthServer handlers."""
        health_server = HealthServer()
        app = web.Application()
        app.router.add_get("/health", health_server._handle_health)
        app.router.add_get("/ready", health_server._handle_ready)
        app.router.add_get("/metrics", health_server._handle_metrics)

        client = TestClient(TestServer(app))
        await client.start_server()
        yield client, health_server
        await client.close()

    @pytest.mark.asyncio
    async def test_health_endpoint_returns_ok(self, app_client):
        """GET /health returns 200 OK."""
        client, _ = app_client
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_no_checks(self, app_client):
        """GET /ready returns 200 when no checks configured."""
        client, _ = app_client
        resp = await client.get("/ready")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_all_checks_pass(self, app_client, fake_ledger):
        """GET /ready returns 200 when all checks pass."""
        client, server = app_client
        server.add_check(LedgerHealthCheck(fake_ledger))
        server.add_check(ClaimStoreHealthCheck(ClaimRateLimiter()))

        resp = await client.get("/ready")
        assert resp.status == 200
        data = await resp.json()
        assert data["checks"] == {"ledger": "ok", "claim_store": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_check_fails(self, app_client):
        """GET /ready returns 503 when a check fails."""
        client, server = app_client
        server.add_check(StaticHealthCheck("ledger", HealthStatus.OK))
        server.add_check(StaticHealthCheck("claim_store", HealthStatus.ERROR, "redis down"))

        resp = await client.get("/ready")
        assert resp.status == 503
        data = await resp.json()
        assert data["status"] == "not_ready"
        assert data["checks"]["claim_store"] == "redis down"

    @pytest.mark.asyncio
    async def test_ready_endpoint_check_raises(self, app_client):
        """GET /ready reports check exceptions with their type."""
        client, server = app_client
        server.add_check(FailingHealthCheck())

        resp = await client.get("/ready")
        assert resp.status == 503
        data = await resp.json()
        assert "RuntimeError" in data["checks"]["failing"]
        assert "Check failed" in data["checks"]["failing"]

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, app_client):
        """GET /metrics returns Prometheus metrics."""
        client, _ = app_client
        resp = await client.get("/metrics")
        assert resp.status == 200
        assert "text/plain" in resp.content_type
        assert len(await resp.text()) > 0


@pytest.mark.asyncio
async def test_health_server_lifecycle(unused_tcp_port):
    """HealthServer start and stop lifecycle."""
    server = HealthServer(host="127.0.0.1", port=unused_tcp_port)

    await server.start()
    assert server._runner is not None

    await server.stop()
    assert server._runner is None
    assert server._site is None
