from __future__ import annotations

import pytest

from api.main import create_app
from stratlab import __version__
from tests.unit._api_test_client import make_client


@pytest.mark.anyio
async def test_health_returns_version(test_config):
    app = create_app(test_config)

    async with make_client(app) as ac:
        r = await ac.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["version"] == __version__
        assert data["uptime_seconds"] >= 0.0
