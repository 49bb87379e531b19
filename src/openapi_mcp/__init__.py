"""OpenAPI MCP server: exposes OpenAPI-described APIs as MCP tools."""

__version__ = "0.1.0"
