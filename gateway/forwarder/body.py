from typing import AsyncIterator, Mapping, Optional

from gateway.forwarder.errors import RequestBodyTooLarge

# Methods whose request body is forwarded. Everything else is sent without
# a body and any stray inbound bytes are left unread.
BODY_METHODS = {"POST", "PUT", "PATCH"}


def carries_body(method: str) -> bool:
    return method.upper() in BODY_METHODS


def declared_length(headers: Mapping[str, str]) -> Optional[int]:
    """The inbound Content-Length, or None when absent or unparseable."""
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


async def limited_stream(
    chunks: AsyncIterator[bytes], limit: Optional[int] = None
) -> AsyncIterator[bytes]:
    """
    Pass inbound chunks through one at a time.

    The next chunk is only pulled once the consumer asks for it, so the
    upstream write speed bounds how fast the caller's body is read.
    Crossing ``limit`` raises ``RequestBodyTooLarge`` mid-upload.
    """
    received = 0
    async for chunk in chunks:
        if not chunk:
            continue
        received += len(chunk)
        if limit is not None and received > limit:
            raise RequestBodyTooLarge()
        yield chunk
