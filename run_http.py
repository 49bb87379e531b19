"""Run the OpenAPI MCP server over streamable HTTP.

Usage:
    ENVIRONMENTS=prod API_SPEC_URL_PROD=https://api.example.com/openapi/v1.json python run_http.py
"""

from openapi_mcp.startup import run

if __name__ == "__main__":
    run()
