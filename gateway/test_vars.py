import importlib


def test_gateway_vars_from_environment(monkeypatch):
    monkeypatch.setenv("GATEWAY_UPSTREAM_HOST", "backend.internal")
    monkeypatch.setenv("GATEWAY_UPSTREAM_PORT", "8080")
    monkeypatch.setenv("GATEWAY_INTERNAL_PREFIX", "/-/")
    monkeypatch.setenv("GATEWAY_CONNECT_TIMEOUT", "1.5")
    import gateway.vars as vars_module

    try:
        importlib.reload(vars_module)

        assert vars_module.UPSTREAM_HOST == "backend.internal"
        assert vars_module.UPSTREAM_PORT == 8080
        assert vars_module.INTERNAL_PREFIX == "/-"
        assert vars_module.CONNECT_TIMEOUT == 1.5
    finally:
        monkeypatch.undo()
        importlib.reload(vars_module)


def test_gateway_vars_defaults(monkeypatch):
    for name in (
        "GATEWAY_PUBLIC_PREFIX",
        "GATEWAY_UPSTREAM_PREFIX",
        "GATEWAY_CORS_ALLOW_ORIGIN",
        "GATEWAY_MAX_BODY_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)
    import gateway.vars as vars_module

    try:
        importlib.reload(vars_module)

        assert vars_module.PUBLIC_PREFIX == "/api/"
        assert vars_module.UPSTREAM_PREFIX == "/api/dashboard/"
        assert vars_module.CORS_ALLOW_ORIGIN == "*"
        assert vars_module.MAX_BODY_BYTES == 0
    finally:
        monkeypatch.undo()
        importlib.reload(vars_module)
