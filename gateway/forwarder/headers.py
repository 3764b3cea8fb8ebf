"""
Header merge rules for both directions of the gateway.

Headers are handled as case-insensitive multimaps throughout (``httpx.Headers``
on the way out, raw ``(name, value)`` lists on the way back) so repeated
headers such as ``Set-Cookie`` survive and overrides are exact.
"""

from typing import Iterable, List, Mapping, Tuple

import httpx

# Framing of the inbound message; meaningless once the body is suppressed.
BODY_FRAMING_HEADERS = {"content-length", "transfer-encoding"}

# Describe the upstream socket, not the message. The serving layer frames
# the relayed body on its own connection.
CONNECTION_SCOPED_HEADERS = {"connection", "keep-alive", "transfer-encoding"}

RawHeaders = List[Tuple[bytes, bytes]]


def build_upstream_headers(
    inbound: Iterable[Tuple[str, str]],
    upstream_authority: str,
    with_body: bool = True,
) -> httpx.Headers:
    """
    Copy every inbound header in order and point ``Host`` at the upstream.

    Proxy metadata (``X-Forwarded-*``, ``X-Real-IP``) passes through as-is.
    When ``with_body`` is false the framing headers are dropped as well, so
    the upstream does not wait for bytes that will never be sent.
    """
    items: List[Tuple[str, str]] = []
    host_set = False
    for name, value in inbound:
        name_lower = name.lower()
        if name_lower == "host":
            if not host_set:
                items.append((name, upstream_authority))
                host_set = True
            continue
        if not with_body and name_lower in BODY_FRAMING_HEADERS:
            continue
        items.append((name, value))
    if not host_set:
        items.append(("Host", upstream_authority))
    return httpx.Headers(items)


def merge_response_headers(
    upstream: Iterable[Tuple[bytes, bytes]],
    overrides: Mapping[str, str],
) -> RawHeaders:
    """
    Relay upstream headers with ``overrides`` set on top.

    Every upstream value is kept (including repeats) except connection-scoped
    headers and any header named in ``overrides``; each override then appears
    exactly once.
    """
    override_names = {name.lower() for name in overrides}
    merged: RawHeaders = []
    for raw_name, raw_value in upstream:
        name_lower = raw_name.decode("latin-1").lower()
        if name_lower in CONNECTION_SCOPED_HEADERS or name_lower in override_names:
            continue
        merged.append((raw_name.lower(), raw_value))
    for name, value in overrides.items():
        merged.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    return merged

