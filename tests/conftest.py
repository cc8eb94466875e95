from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from planner_mcp.auth import BearerToken, GraphClient
from planner_mcp.config import Settings

GRAPH_URL = "https://graph.test"


class GraphStub:
    """Stands in for Microsoft Graph behind an ``httpx.MockTransport``.

    Register a response per (method, path); every request is recorded.
    A response body may be a callable taking the ``httpx.Request``.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, Any, dict]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        body: Any = None,
        status: int = 200,
        headers: dict | None = None,
    ) -> None:
        self.routes[(method, path)] = (status, body, headers or {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            raise AssertionError(f"Unexpected Graph request: {request.method} {request.url.path}")
        status, body, headers = self.routes[key]
        if callable(body):
            body = body(request)
        return httpx.Response(status, json=body, headers=headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def find(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        client_id="client-id",
        client_secret="client-secret",
        graph_base_url=GRAPH_URL,
        token_cache_path=tmp_path / "token_cache.json",
    )


@pytest.fixture
def graph_stub() -> GraphStub:
    return GraphStub()


@pytest_asyncio.fixture
async def graph(settings: Settings, graph_stub: GraphStub):
    client = GraphClient.from_settings(
        BearerToken("test-token"), settings, transport=graph_stub.transport
    )
    yield client
    await client.close()


@pytest.fixture
def make_ctx(settings: Settings) -> Callable[..., Any]:
    """Build the FastMCP context shape the tools read their lifespan state from."""

    def build(graph: GraphClient, **overrides: Any) -> Any:
        tool_settings = settings.model_copy(update=overrides) if overrides else settings
        return SimpleNamespace(
            request_context=SimpleNamespace(
                lifespan_context={"graph": graph, "settings": tool_settings}
            )
        )

    return build


@pytest.fixture
def ctx(graph: GraphClient, make_ctx: Callable[..., Any]) -> Any:
    return make_ctx(graph)
