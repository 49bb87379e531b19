"""Tests for the HTTP process entry point."""

import socket
from unittest.mock import Mock, patch

import pytest

from openapi_mcp.startup import main, run


class FakeApp:
    """App stand-in that records listen() and fires the callback."""

    def __init__(self, registry, server_config, fail=None):
        self.registry = registry
        self.server_config = server_config
        self.fail = fail
        self.port = None

    def listen(self, port, callback=None):
        if self.fail is not None:
            raise self.fail
        self.port = port
        if callback is not None:
            callback()


@pytest.fixture
def created_apps():
    return []


@pytest.fixture
def app_factory(created_apps):
    """Factory recording every app it builds."""
    def factory(registry, server_config):
        app = FakeApp(registry, server_config)
        created_apps.append(app)
        return app
    return factory


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep tests from reconfiguring the root logger."""
    with patch("openapi_mcp.startup.logging.basicConfig"):
        yield


@pytest.mark.parametrize("environ", [{}, {"ENVIRONMENTS": ""}])
def test_no_environments(environ, app_factory, created_apps, capsys):
    """Test startup fails with the remediation block when nothing is configured."""
    assert main(environ, app_factory) == 1
    captured = capsys.readouterr()
    err_lines = captured.err.splitlines()
    assert err_lines[0] == "ERROR: No API environments configured"
    assert err_lines[1] == ""
    assert "Please configure at least one environment:" in err_lines
    assert "Example - Single environment:" in err_lines
    assert "Example - Multiple environments:" in err_lines
    assert "  API_SPEC_URL_QA=https://qa-api.example.com/openapi/v1.json" in err_lines
    assert "Starting OpenAPI MCP Server..." in captured.out
    assert created_apps == []


def test_no_environments_ignores_default(app_factory, capsys):
    """Test the empty check does not depend on the default or the URLs."""
    environ = {"DEFAULT_ENVIRONMENT": "prod", "API_SPEC_URL_PROD": "https://api.example.com/openapi/v1.json"}
    assert main(environ, app_factory) == 1
    assert "ERROR: No API environments configured" in capsys.readouterr().err


def test_single_environment(app_factory, created_apps, capsys):
    """Test a single environment starts the server on the default port."""
    environ = {
        "ENVIRONMENTS": "prod",
        "API_SPEC_URL_PROD": "https://api.example.com/openapi/v1.json",
        "DEFAULT_ENVIRONMENT": "prod",
    }
    assert main(environ, app_factory) == 0
    out = capsys.readouterr().out.splitlines()
    assert "Configured environments: prod" in out
    assert "Default environment: prod" in out
    assert "  prod: https://api.example.com/openapi/v1.json" in out
    assert "Server name: openapi-mcp-server" in out
    assert created_apps[0].port == 3000
    assert "OpenAPI MCP Server listening on http://localhost:3000" in out
    assert "MCP endpoint: http://localhost:3000/mcp" in out


def test_multiple_environments_in_order(app_factory, capsys):
    """Test URL lines follow declaration order."""
    environ = {
        "ENVIRONMENTS": "dev,qa,prod",
        "DEFAULT_ENVIRONMENT": "dev",
        "API_SPEC_URL_DEV": "https://dev-api.example.com/openapi/v1.json",
        "API_SPEC_URL_QA": "https://qa-api.example.com/openapi/v1.json",
        "API_SPEC_URL_PROD": "https://api.example.com/openapi/v1.json",
    }
    assert main(environ, app_factory) == 0
    out = capsys.readouterr().out.splitlines()
    url_lines = [line for line in out if line.startswith("  ")]
    assert url_lines == [
        "  dev: https://dev-api.example.com/openapi/v1.json",
        "  qa: https://qa-api.example.com/openapi/v1.json",
        "  prod: https://api.example.com/openapi/v1.json",
    ]
    assert "Default environment: dev" in out


def test_port_from_env(app_factory, created_apps, capsys):
    """Test PORT selects the listening port."""
    environ = {"ENVIRONMENTS": "prod", "API_SPEC_URL_PROD": "https://api.example.com/openapi/v1.json", "PORT": "8080"}
    assert main(environ, app_factory) == 0
    assert created_apps[0].port == 8080
    assert "OpenAPI MCP Server listening on http://localhost:8080" in capsys.readouterr().out


def test_invalid_default_environment(app_factory, created_apps, capsys):
    """Test a default outside the configured environments stops startup."""
    environ = {"ENVIRONMENTS": "dev,qa", "DEFAULT_ENVIRONMENT": "prod"}
    assert main(environ, app_factory) == 1
    err = capsys.readouterr().err
    assert "Default environment 'prod' is not configured" in err
    assert created_apps == []


def test_invalid_port(app_factory, created_apps, capsys):
    """Test an unparseable PORT is a fatal error."""
    environ = {"ENVIRONMENTS": "prod", "PORT": "eighty"}
    assert main(environ, app_factory) == 1
    assert capsys.readouterr().err.startswith("Fatal error: Invalid PORT value")
    assert created_apps == []


def test_listen_failure_is_fatal(capsys):
    """Test errors raised while listening exit with status 1."""
    def factory(registry, server_config):
        return FakeApp(registry, server_config, fail=OSError("address already in use"))

    assert main({"ENVIRONMENTS": "prod"}, factory) == 1
    assert "Fatal error: address already in use" in capsys.readouterr().err


def test_factory_failure_is_fatal(capsys):
    """Test app construction errors exit with status 1."""
    factory = Mock(side_effect=RuntimeError("boom"))
    assert main({"ENVIRONMENTS": "prod"}, factory) == 1
    assert "Fatal error: boom" in capsys.readouterr().err


def test_factory_receives_registry(app_factory, created_apps):
    """Test the registry and server config are injected into the factory."""
    assert main({"ENVIRONMENTS": "dev,prod", "SERVER_NAME": "petstore"}, app_factory) == 0
    app = created_apps[0]
    assert app.registry.environments == ("dev", "prod")
    assert app.server_config.name == "petstore"


def test_run_exits_with_status():
    """Test run() exits with main()'s status."""
    with patch("openapi_mcp.startup.main", return_value=1):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 1


def test_port_in_use_is_fatal(capsys):
    """Test a taken port ends startup with a fatal error and status 1."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    port = sock.getsockname()[1]
    try:
        status = main({"ENVIRONMENTS": "prod", "HOST": "127.0.0.1", "PORT": str(port), "LOG_LEVEL": "WARNING"})
    finally:
        sock.close()

    assert status == 1
    captured = capsys.readouterr()
    assert f"Fatal error: Could not start server on 127.0.0.1:{port}" in captured.err
    assert "listening on" not in captured.out
