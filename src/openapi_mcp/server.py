"""MCP server factory and HTTP listener.

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

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from mcp.server.fastmcp import FastMCP

from .config import EnvironmentRegistry, ServerConfig, load_environment_registry, load_server_config
from .spec_client import OpenAPISpecClient
from .spec_validator import OpenAPISpecValidator
from .tools import (
    OperationCallInput,
    call_operation_tool,
    describe_operation_tool,
    get_spec_tool,
    initialize_tools,
    list_environments_tool,
    list_operations_tool,
    refresh_spec_tool,
)

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Exposes the operations of one or more OpenAPI-described APIs. "
    "Call list_environments to see the configured environments, list_operations to browse an API, "
    "describe_operation to see the parameters of an operation, and call_operation to invoke it."
)


class McpHttpApp:
    """A FastMCP server bound to a streamable HTTP listener."""

    def __init__(self, mcp: FastMCP, server_config: ServerConfig, client: OpenAPISpecClient):
        self.mcp = mcp
        self.server_config = server_config
        self.client = client

    def listen(self, port: int, callback: Optional[Callable[[], None]] = None) -> None:
        """Serve the MCP endpoint until shutdown.

        Args:
            port: Port to bind
            callback: Called once the socket is bound and the server accepts connections
        """
        self.mcp.settings.port = port
        config = uvicorn.Config(
            self.mcp.streamable_http_app(),
            host=self.server_config.host,
            port=port,
            log_level=self.server_config.log_level.lower(),
        )
        server = uvicorn.Server(config)
        try:
            asyncio.run(self._serve(server, callback))
        finally:
            self.client.close()

    async def _serve(self, server: uvicorn.Server, callback: Optional[Callable[[], None]]) -> None:
        address = f"{server.config.host}:{server.config.port}"
        watcher = asyncio.ensure_future(self._notify_started(server, callback))
        try:
            # uvicorn reports bind and lifespan failures with sys.exit()
            await server.serve()
        except SystemExit as e:
            raise OSError(f"Could not start server on {address} (exit status {e.code})") from None
        finally:
            watcher.cancel()
        if not server.started:
            raise OSError(f"Could not start server on {address}")

    async def _notify_started(self, server: uvicorn.Server, callback: Optional[Callable[[], None]]) -> None:
        while not server.started:
            await asyncio.sleep(0.05)
        if callback is not None:
            callback()


def create_mcp_server(
    registry: EnvironmentRegistry,
    server_config: Optional[ServerConfig] = None,
    client: Optional[OpenAPISpecClient] = None,
) -> FastMCP:
    """Build the FastMCP server with all tools and resources registered.

    Args:
        registry: The configured environments
        server_config: Server settings. Loaded from the environment if None.
        client: Spec/API client. Created from the registry if None.

    Returns:
        The FastMCP instance
    """
    if server_config is None:
        server_config = load_server_config()
    if client is None:
        client = OpenAPISpecClient(registry)

    initialize_tools(registry, client, OpenAPISpecValidator())

    mcp = FastMCP(server_config.name, instructions=INSTRUCTIONS)
    mcp.settings.host = server_config.host
    mcp.settings.port = server_config.default_port
    mcp.settings.log_level = server_config.log_level
    mcp.settings.streamable_http_path = server_config.mcp_path
    # Listening on all interfaces; the localhost-only Host header check would reject remote clients
    mcp.settings.transport_security = None

    @mcp.tool()
    def list_environments() -> Dict[str, Any]:
        """List the configured API environments and the default one."""
        return list_environments_tool()

    @mcp.tool()
    def list_operations(environment: Optional[str] = None, tag: Optional[str] = None) -> List[Dict[str, Any]]:
        """List the operations of an environment's API, optionally filtered by tag."""
        return list_operations_tool(environment, tag)

    @mcp.tool()
    def describe_operation(operation_id: str, environment: Optional[str] = None) -> Dict[str, Any]:
        """Describe an operation's parameters and request body schema."""
        return describe_operation_tool(operation_id, environment)

    @mcp.tool()
    def call_operation(input_data: OperationCallInput) -> Dict[str, Any]:
        """Call an API operation.

        Arguments are validated against the operation's schema before the
        request is sent. Use describe_operation first to see what it expects.
        """
        return call_operation_tool(input_data)

    @mcp.tool()
    def refresh_spec(environment: Optional[str] = None) -> Dict[str, Any]:
        """Refetch an environment's OpenAPI document."""
        return refresh_spec_tool(environment)

    @mcp.resource("openapi://{environment}/spec")
    def environment_spec(environment: str) -> str:
        """The raw OpenAPI document of an environment."""
        return get_spec_tool(environment)

    return mcp


def create_mcp_http_app(
    registry: EnvironmentRegistry,
    server_config: Optional[ServerConfig] = None,
    client: Optional[OpenAPISpecClient] = None,
) -> McpHttpApp:
    """Build the HTTP application serving the MCP endpoint.

    Args:
        registry: The configured environments
        server_config: Server settings. Loaded from the environment if None.
        client: Spec/API client. Created from the registry if None.

    Returns:
        McpHttpApp ready to listen()
    """
    if server_config is None:
        server_config = load_server_config()
    if client is None:
        client = OpenAPISpecClient(registry)
    mcp = create_mcp_server(registry, server_config, client)
    return McpHttpApp(mcp, server_config, client)


def main():
    """Run the server over stdio."""
    registry = load_environment_registry()
    error = registry.validate_non_empty() or registry.validate_default()
    if error is not None:
        raise SystemExit(str(error))
    create_mcp_server(registry).run("stdio")


if __name__ == "__main__":
    main()
