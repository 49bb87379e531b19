"""Entry point for running the MCP server over stdio."""

from openapi_mcp.server import main

if __name__ == "__main__":
    main()
