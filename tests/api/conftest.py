"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
from httpx import ASGITransport, AsyncClient

import pkgtracker.dashboard as dash_module
from pkgtracker.dashboard import create_app
from pkgtracker.workflow import TrackerContext


@pytest.fixture
def api_ctx(make_ctx: Callable[..., TrackerContext]) -> TrackerContext:
    """Context served by the test app.

    Tests inject failures by mutating ``api_ctx.store.fail`` or
    ``api_ctx.notifier.fail_on`` before making requests.
    """
    return make_ctx()


@pytest.fixture
async def client(api_ctx: TrackerContext) -> AsyncIterator[AsyncClient]:
    dash_module._ctx = api_ctx
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._ctx = None
