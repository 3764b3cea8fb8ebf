import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "dashboard-gateway")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

# Upstream origin the gateway relays to
UPSTREAM_SCHEME = os.getenv("GATEWAY_UPSTREAM_SCHEME", "http").lower()
UPSTREAM_HOST = os.getenv("GATEWAY_UPSTREAM_HOST", "")
UPSTREAM_PORT = int(os.getenv("GATEWAY_UPSTREAM_PORT", "80"))

PUBLIC_PREFIX = os.getenv("GATEWAY_PUBLIC_PREFIX", "/api/")
UPSTREAM_PREFIX = os.getenv("GATEWAY_UPSTREAM_PREFIX", "/api/dashboard/")

CORS_ALLOW_ORIGIN = os.getenv("GATEWAY_CORS_ALLOW_ORIGIN", "*")
CORS_ALLOW_METHODS = os.getenv(
    "GATEWAY_CORS_ALLOW_METHODS", "GET, POST, PUT, DELETE, OPTIONS"
)
CORS_ALLOW_HEADERS = os.getenv("GATEWAY_CORS_ALLOW_HEADERS", "Content-Type")

# Seconds
CONNECT_TIMEOUT = float(os.getenv("GATEWAY_CONNECT_TIMEOUT", "10"))
READ_TIMEOUT = float(os.getenv("GATEWAY_READ_TIMEOUT", "60"))
WRITE_TIMEOUT = float(os.getenv("GATEWAY_WRITE_TIMEOUT", "60"))

# 0 disables the limit
MAX_BODY_BYTES = int(os.getenv("GATEWAY_MAX_BODY_BYTES", "0"))

# Endpoints served by the gateway itself and never forwarded
INTERNAL_PREFIX = os.getenv("GATEWAY_INTERNAL_PREFIX", "/_gateway").rstrip("/")
