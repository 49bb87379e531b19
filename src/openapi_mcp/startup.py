"""HTTP server process entry point.

Copyright (C) 2024 OpenAPI MCP

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import logging
import os
import sys
from typing import Callable, List, Mapping, Optional

from .config import (
    EnvironmentRegistry,
    ServerConfig,
    load_environment_registry,
    load_server_config,
    resolve_port,
)
from .server import create_mcp_http_app


def _print_error(lines: List[str]) -> None:
    for line in lines:
        print(line, file=sys.stderr, flush=True)


def main(
    environ: Optional[Mapping[str, str]] = None,
    app_factory: Callable[[EnvironmentRegistry, ServerConfig], object] = create_mcp_http_app,
) -> int:
    """Validate configuration and run the HTTP server.

    Args:
        environ: Variable mapping. Defaults to os.environ.
        app_factory: Builds the app from the registry and server config.
                     The app must expose listen(port, callback).

    Returns:
        Process exit status
    """
    if environ is None:
        environ = os.environ
    try:
        server_config = load_server_config(environ)
        logging.basicConfig(
            level=server_config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        print("Starting OpenAPI MCP Server...", flush=True)
        print(f"Server name: {server_config.name}", flush=True)

        registry = load_environment_registry(environ)

        error = registry.validate_non_empty()
        if error is not None:
            _print_error(error.lines())
            return 1

        error = registry.validate_default()
        if error is not None:
            _print_error(error.lines())
            return 1

        for line in registry.describe():
            print(line, flush=True)

        port = resolve_port(environ, server_config.default_port)
        app = app_factory(registry, server_config)

        def on_listening() -> None:
            print(f"OpenAPI MCP Server listening on http://localhost:{port}", flush=True)
            print(f"MCP endpoint: http://localhost:{port}{server_config.mcp_path}", flush=True)

        app.listen(port, on_listening)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr, flush=True)
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
