"""Tests for the health check endpoint."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cleanmatch.main import app


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_healthy(self, client, monkeypatch):
        monkeypatch.setattr(
            "cleanmatch.api.health.check_db_connection", AsyncMock(return_value=True)
        )
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_database_down(self, client, monkeypatch):
        monkeypatch.setattr(
            "cleanmatch.api.health.check_db_connection", AsyncMock(return_value=False)
        )
        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_security_headers(self, client, monkeypatch):
        monkeypatch.setattr(
            "cleanmatch.api.health.check_db_connection", AsyncMock(return_value=True)
        )
        response = await client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
