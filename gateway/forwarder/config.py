from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from gateway import vars as gateway_vars
from gateway.forwarder.rewrite import RewriteRule

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class CorsPolicy:
    """Response headers that are always set on the way back to the caller."""

    allow_origin: str = "*"
    allow_methods: str = "GET, POST, PUT, DELETE, OPTIONS"
    allow_headers: str = "Content-Type"

    def as_headers(self) -> Dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allow_origin,
            "Access-Control-Allow-Methods": self.allow_methods,
            "Access-Control-Allow-Headers": self.allow_headers,
        }


@dataclass(frozen=True)
class GatewayConfig:
    """
    Immutable per-process configuration of the forwarder.

    Nothing else is shared between requests, so a single instance can be
    handed to every request without locking.
    """

    upstream_host: str
    upstream_port: int = 80
    upstream_scheme: str = "http"
    rewrite: RewriteRule = field(default_factory=RewriteRule)
    cors: CorsPolicy = field(default_factory=CorsPolicy)
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 60.0
    max_body_bytes: int = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.upstream_host)

    @property
    def upstream_authority(self) -> str:
        """Value used for the outbound Host header."""
        if DEFAULT_PORTS.get(self.upstream_scheme) == self.upstream_port:
            return self.upstream_host
        return f"{self.upstream_host}:{self.upstream_port}"

    @property
    def upstream_origin(self) -> str:
        return f"{self.upstream_scheme}://{self.upstream_authority}"

    def timeout(self) -> httpx.Timeout:
        # The pool timeout only matters while waiting for a free connection,
        # which for a per-request client is part of connecting.
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.connect_timeout,
        )

    def body_limit(self) -> Optional[int]:
        return self.max_body_bytes if self.max_body_bytes > 0 else None


def load_config() -> GatewayConfig:
    """Build the configuration from the environment-derived settings."""
    return GatewayConfig(
        upstream_host=gateway_vars.UPSTREAM_HOST,
        upstream_port=gateway_vars.UPSTREAM_PORT,
        upstream_scheme=gateway_vars.UPSTREAM_SCHEME,
        rewrite=RewriteRule(
            public_prefix=gateway_vars.PUBLIC_PREFIX,
            upstream_prefix=gateway_vars.UPSTREAM_PREFIX,
        ),
        cors=CorsPolicy(
            allow_origin=gateway_vars.CORS_ALLOW_ORIGIN,
            allow_methods=gateway_vars.CORS_ALLOW_METHODS,
            allow_headers=gateway_vars.CORS_ALLOW_HEADERS,
        ),
        connect_timeout=gateway_vars.CONNECT_TIMEOUT,
        read_timeout=gateway_vars.READ_TIMEOUT,
        write_timeout=gateway_vars.WRITE_TIMEOUT,
        max_body_bytes=gateway_vars.MAX_BODY_BYTES,
    )
