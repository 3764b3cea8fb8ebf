from typing import Dict, Sequence

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.forwarder.route import get_config, router as forwarder_router
from gateway.vars import INTERNAL_PREFIX, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

app = FastAPI(title=SERVICE_NAME, docs_url=None, redoc_url=None, openapi_url=None)
instrumentator = Instrumentator(excluded_handlers=[f"{INTERNAL_PREFIX}/.*"])

# Must be registered before the catch-all forwarder route
instrumentator.instrument(app).expose(app, endpoint=f"{INTERNAL_PREFIX}/metrics")

internal_router = APIRouter(prefix=INTERNAL_PREFIX)


@internal_router.get("/health")
async def health():
    config = get_config()
    return {
        "status": "ok",
        "upstream": config.upstream_origin if config.is_configured else None,
    }


def parse_otlp_headers(raw: str) -> Dict[str, str]:
    """Parse ``key=value`` pairs separated by commas, as in ``OTLP_HEADERS``."""
    headers = {}
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


class FilteringSpanExporter(SpanExporter):
    """
    Drops the per-chunk ``http.response.body`` spans the ASGI instrumentation
    records while a relayed download streams, keeping one request span and the
    ``proxy_request`` span per forwarded call.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not _is_body_chunk_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def _is_body_chunk_span(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") == "http.response.body"


def configure_tracing() -> TracerProvider:
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    if OTLP_ENDPOINT:
        exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=parse_otlp_headers(OTLP_HEADERS) or None,
        )
        provider.add_span_processor(BatchSpanProcessor(FilteringSpanExporter(exporter)))
    trace.set_tracer_provider(provider)
    return provider


tracer_provider = configure_tracing()

FastAPIInstrumentor.instrument_app(app, excluded_urls=f"{INTERNAL_PREFIX}/.*")

app_info = Info("gateway_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Routing errors (e.g. unsupported methods) use the gateway error envelope."""
    headers = dict(exc.headers or {})
    headers.update(get_config().cors.as_headers())
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.detail}, headers=headers
    )


app.include_router(internal_router)
app.include_router(forwarder_router)
