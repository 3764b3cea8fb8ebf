"""
Failure taxonomy of the gateway and its mapping to caller-visible responses.

Transport errors raised by httpx are classified into ``GatewayError``
subclasses at the forwarder boundary. Each one knows the status code and
message of the JSON envelope (``{"error": "..."}``) sent to the caller when
nothing has been written yet.
"""

from typing import Mapping, Optional

import httpx
from fastapi.responses import JSONResponse


class GatewayError(Exception):
    status_code = 502
    message = "Failed to proxy request"
    # Short tag recorded on spans and in logs
    kind = "gateway_error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail or self.message


class UpstreamConnectError(GatewayError):
    status_code = 502
    message = "Failed to proxy request"
    kind = "connection_failed"


class UpstreamTimeoutError(GatewayError):
    status_code = 504
    message = "Upstream timeout"
    kind = "timeout"


class UpstreamProtocolError(GatewayError):
    status_code = 502
    message = "Invalid response from upstream"
    kind = "protocol_error"


class RequestBodyTooLarge(GatewayError):
    status_code = 413
    message = "Request body too large"
    kind = "body_too_large"


class UpstreamNotConfigured(GatewayError):
    status_code = 503
    message = "Upstream is not configured"
    kind = "not_configured"


class ClientAbort(GatewayError):
    """The caller went away; there is nobody left to answer."""

    # nginx convention for "client closed request"; never reaches a socket
    status_code = 499
    message = "Client closed request"
    kind = "client_abort"


class UpstreamStreamAborted(Exception):
    """
    Upstream failed after the response had started.

    Raised out of the body iterator so the server drops the caller
    connection instead of framing a second response.
    """

    def __init__(self, cause: GatewayError):
        super().__init__(f"Upstream stream aborted: {cause.detail}")
        self.cause = cause


def classify_transport_error(exc: httpx.HTTPError) -> GatewayError:
    """Map an httpx exception onto the gateway taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        error: GatewayError = UpstreamTimeoutError()
    elif isinstance(exc, (httpx.ConnectError, httpx.ProxyError)):
        error = UpstreamConnectError()
    else:
        # ReadError, WriteError, CloseError and anything else at transport level
        error = UpstreamProtocolError()
    error.__cause__ = exc
    return error


def error_response(
    error: GatewayError, cors_headers: Mapping[str, str]
) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"error": error.message},
        headers=dict(cors_headers),
    )
