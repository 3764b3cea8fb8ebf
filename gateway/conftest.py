import json as jsonlib
from typing import Any, Callable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.forwarder.config import GatewayConfig
from gateway.forwarder.rewrite import RewriteRule
from gateway.forwarder.route import Forwarder, get_forwarder

TEST_UPSTREAM_HOST = "backend.internal"
TEST_UPSTREAM_PORT = 8080


class ChunkedBody(httpx.AsyncByteStream):
    """Unread upstream body, yielded chunk by chunk like one off the network."""

    def __init__(self, *chunks: bytes):
        self.chunks = [chunk for chunk in chunks if chunk]

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self):
        pass


def upstream_response(
    status_code: int = 200,
    content: bytes = b"",
    json: Any = None,
    headers=None,
) -> httpx.Response:
    """
    Build a mock upstream response whose body has not been read yet.

    ``httpx.Response(content=...)`` reads its body on construction, which a
    raw relay then finds already consumed.
    """
    headers = httpx.Headers(headers)
    if json is not None:
        content = jsonlib.dumps(json).encode("utf-8")
        headers.setdefault("content-type", "application/json")
    if content and "content-length" not in headers:
        headers["content-length"] = str(len(content))
    return httpx.Response(status_code, headers=headers, stream=ChunkedBody(content))


class RecordingUpstream:
    """httpx.MockTransport handler that records requests and answers via ``responder``."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: upstream_response(200, json={"ok": True})
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "upstream was never called"
        return self.requests[-1]

    @property
    def last_target(self) -> bytes:
        """Request target the last request put on the wire."""
        return self.last.extensions.get("target", self.last.url.raw_path)


@pytest.fixture
def gateway_config():
    return GatewayConfig(
        upstream_host=TEST_UPSTREAM_HOST,
        upstream_port=TEST_UPSTREAM_PORT,
        rewrite=RewriteRule(public_prefix="/api/", upstream_prefix="/api/dashboard/"),
    )


@pytest.fixture
def upstream():
    return RecordingUpstream()


@pytest.fixture
def make_gateway_client(gateway_config, upstream):
    """Factory for a TestClient whose forwarder talks to ``upstream``."""
    from gateway.server import app

    def factory(config: Optional[GatewayConfig] = None) -> TestClient:
        forwarder = Forwarder(
            config or gateway_config, transport=httpx.MockTransport(upstream)
        )
        app.dependency_overrides[get_forwarder] = lambda: forwarder
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()


@pytest.fixture
def gateway_client(make_gateway_client):
    return make_gateway_client()
