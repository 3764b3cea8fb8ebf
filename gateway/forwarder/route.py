import asyncio
import logging
from functools import lru_cache
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from gateway.forwarder.body import carries_body, declared_length, limited_stream
from gateway.forwarder.config import GatewayConfig, load_config
from gateway.forwarder.errors import (
    ClientAbort,
    GatewayError,
    RequestBodyTooLarge,
    UpstreamNotConfigured,
    UpstreamStreamAborted,
    classify_transport_error,
    error_response,
)
from gateway.forwarder.headers import build_upstream_headers, merge_response_headers
from gateway.utils.exception_logging import log_exception_with_details

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

SUPPORTED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class UpstreamStreamingResponse(StreamingResponse):
    """
    Relays an open upstream response to the caller chunk by chunk.

    The upstream response and its client are closed when relaying ends,
    whether it completed, failed, or the caller disconnected.
    """

    def __init__(
        self,
        upstream: httpx.Response,
        client: httpx.AsyncClient,
        config: GatewayConfig,
        target_url: str,
    ):
        self.upstream = upstream
        self.client = client
        self.target_url = target_url
        super().__init__(self._relay(), status_code=upstream.status_code)
        self.raw_headers = merge_response_headers(
            upstream.headers.raw, config.cors.as_headers()
        )

    async def _relay(self) -> AsyncIterator[bytes]:
        # Raw bytes: Content-Encoding and Content-Length stay valid as relayed.
        try:
            async for chunk in self.upstream.aiter_raw():
                yield chunk
        except httpx.RequestError as exc:
            error = classify_transport_error(exc)
            log_exception_with_details(
                logger, f"[Gateway] Upstream failed mid-stream for {self.target_url}:", exc
            )
            raise UpstreamStreamAborted(error) from exc

    async def _wait_for_disconnect(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return

    async def _close_upstream(self) -> None:
        await self.upstream.aclose()
        await self.client.aclose()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        relay = asyncio.create_task(self.stream_response(send))
        watcher = asyncio.create_task(self._wait_for_disconnect(receive))
        try:
            done, _ = await asyncio.wait(
                {relay, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
            if relay not in done:
                logger.info(
                    f"[Gateway] Caller disconnected, closing upstream {self.target_url}"
                )
                relay.cancel()
                return
            try:
                relay.result()
            except OSError as exc:
                # Caller socket went away while writing
                log_exception_with_details(
                    logger,
                    f"[Gateway] Caller aborted {self.target_url}:",
                    exc,
                    level=logging.INFO,
                )
        finally:
            for task in (relay, watcher):
                task.cancel()
            await asyncio.gather(relay, watcher, return_exceptions=True)
            await self._close_upstream()


class Forwarder:
    """
    Forwards one inbound request to the configured upstream.

    Holds only the immutable configuration and, for tests, the transport
    every per-request client is built on.
    """

    def __init__(
        self,
        config: GatewayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.transport = transport

    def upstream_target(self, path: str, query: str = "") -> bytes:
        """
        Request target sent upstream, byte for byte.

        ``path`` and ``query`` are the raw request bytes decoded as latin-1, so
        percent escapes and dot segments reach the upstream exactly as the
        caller sent them.
        """
        return self.config.rewrite.rewrite(path, query).encode("latin-1")

    def target_url(self, path: str, query: str = "") -> str:
        """Absolute upstream URL, used for logs and spans."""
        return self.config.upstream_origin + self.config.rewrite.rewrite(path, query)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=False,
            trust_env=False,
        )

    def _failed(self, error: GatewayError, span, target_url: str) -> Response:
        span.set_attribute("proxy.error", error.kind)
        span.set_attribute("proxy.status_code", error.status_code)
        log_exception_with_details(
            logger,
            f"[Gateway] {error.detail} ({error.kind}) for {target_url}:",
            error.__cause__ or error,
        )
        return error_response(error, self.config.cors.as_headers())

    def build_request(self, request: Request, target: bytes) -> httpx.Request:
        # The URL only selects the origin; httpcore sends ``target`` verbatim
        # as the request target, dot segments and escapes included.
        with_body = carries_body(request.method)
        headers = build_upstream_headers(
            request.headers.items(), self.config.upstream_authority, with_body
        )
        content = None
        if with_body:
            content = limited_stream(request.stream(), self.config.body_limit())
        return httpx.Request(
            request.method,
            self.config.upstream_origin,
            headers=headers,
            content=content,
            extensions={"timeout": self.config.timeout().as_dict(), "target": target},
        )

    async def forward(self, request: Request) -> Response:
        """
        Send ``request`` upstream and return the response to relay.

        Failures before the upstream answers become JSON error responses;
        failures after that abort the caller connection.
        """
        raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
        path = raw_path.decode("latin-1").partition("?")[0]
        query = request.scope.get("query_string", b"").decode("latin-1")
        target = self.upstream_target(path, query)
        target_url = self.target_url(path, query)

        with tracer.start_as_current_span("proxy_request") as span:
            span.set_attribute("proxy.target_url", target_url)
            span.set_attribute("proxy.method", request.method)

            if not self.config.is_configured:
                return self._failed(UpstreamNotConfigured(), span, target_url)

            limit = self.config.body_limit()
            if limit is not None and carries_body(request.method):
                length = declared_length(request.headers)
                if length is not None and length > limit:
                    return self._failed(RequestBodyTooLarge(), span, target_url)

            logger.debug(f"[Gateway] {request.method} {path} -> {target_url}")

            client = self._client()
            opened = False
            try:
                upstream = await client.send(
                    self.build_request(request, target), stream=True
                )
                opened = True
            except httpx.RequestError as exc:
                return self._failed(classify_transport_error(exc), span, target_url)
            except RequestBodyTooLarge as error:
                return self._failed(error, span, target_url)
            except ClientDisconnect:
                span.set_attribute("proxy.error", ClientAbort.kind)
                logger.info(f"[Gateway] Caller aborted upload to {target_url}")
                return Response(status_code=ClientAbort.status_code)
            finally:
                if not opened:
                    await client.aclose()

            span.set_attribute("proxy.status_code", upstream.status_code)
            logger.debug(
                f"[Gateway] {upstream.status_code} from {target_url}, relaying"
            )
            return UpstreamStreamingResponse(upstream, client, self.config, target_url)


@lru_cache(maxsize=1)
def get_config() -> GatewayConfig:
    return load_config()


def get_forwarder(config: GatewayConfig = Depends(get_config)) -> Forwarder:
    return Forwarder(config)


@router.api_route(
    "/{path:path}", methods=SUPPORTED_METHODS, include_in_schema=False
)
async def proxy_all(
    request: Request, path: str, forwarder: Forwarder = Depends(get_forwarder)
):
    """Catch-all route that forwards every request to the upstream."""
    return await forwarder.forward(request)
