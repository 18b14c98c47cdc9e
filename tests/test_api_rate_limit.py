"""Rate limiting (slowapi) behaviour and its error envelope.

A throwaway route with a tiny limit keeps the test deterministic without
touching the limits on the real advocate routes.
"""

import httpx
import pytest
from fastapi import Request

import app.main as app_main

PATH = "/_limited"


def _mount_limited_route():
    if any(getattr(r, "path", None) == PATH for r in app_main.app.router.routes):
        return

    @app_main.limiter.limit("2/minute")
    async def limited(request: Request):
        return {"ok": True}

    app_main.app.add_api_route(PATH, limited, methods=["GET"])


def _client_from(ip: str) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app_main.app, client=(ip, 50000))
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


@pytest.mark.asyncio
async def test_limit_is_per_client_and_uses_error_envelope():
    _mount_limited_route()

    async with _client_from("10.0.0.1") as first, _client_from("10.0.0.2") as second:
        statuses = [(await first.get(PATH)).status_code for _ in range(3)]
        assert statuses == [200, 200, 429]

        blocked = await first.get(PATH)
        assert blocked.status_code == 429
        body = blocked.json()
        assert list(body) == ["error"]
        assert body["error"].lower().startswith("rate limit exceeded")

        # a different address has its own budget
        assert (await second.get(PATH)).status_code == 200


def test_public_routes_share_configured_limit():
    assert app_main.settings.RATE_LIMIT == "10000/minute"
    assert app_main.app.state.limiter is app_main.limiter
