"""MCP tools for browsing and calling OpenAPI operations.

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

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .config import ConfigurationError, EnvironmentRegistry
from .operations import (
    OperationNotFoundError,
    build_request,
    find_operation,
    operation_details,
    operation_summary,
)
from .spec_client import APICallError, OpenAPISpecClient, SpecFetchError
from .spec_validator import OpenAPISpecValidator, SpecValidationError


class OperationCallInput(BaseModel):
    """Input model for calling an operation."""

    operation_id: str = Field(description="Operation ID as returned by list_operations")
    environment: Optional[str] = Field(
        default=None, description="Environment to call. Uses the default environment if omitted."
    )
    arguments: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameter values keyed by parameter name (path, query, header and cookie parameters)",
    )
    body: Optional[Any] = Field(default=None, description="JSON request body, if the operation accepts one")
    body_json: Optional[str] = Field(
        default=None, description="Request body as a JSON string. Alternative to 'body'."
    )


# Global instances (will be initialized in server.py)
_registry: Optional[EnvironmentRegistry] = None
_client: Optional[OpenAPISpecClient] = None
_validator: Optional[OpenAPISpecValidator] = None


def initialize_tools(
    registry: EnvironmentRegistry,
    client: OpenAPISpecClient,
    validator: OpenAPISpecValidator,
) -> None:
    """Initialize tools with the registry, spec client and validator.

    Args:
        registry: The configured environments
        client: The spec/API client
        validator: The document and argument validator
    """
    global _registry, _client, _validator
    _registry = registry
    _client = client
    _validator = validator


def _ensure_initialized() -> None:
    """Ensure tools are initialized."""
    if _registry is None or _client is None or _validator is None:
        raise RuntimeError("Tools not initialized. Call initialize_tools() first.")


def _load_document(environment: Optional[str], refresh: bool = False) -> Dict[str, Any]:
    """Fetch and validate an environment's document.

    Raises:
        Exception: With a readable message if the document is unavailable or invalid
    """
    try:
        document = _client.fetch_spec(environment, refresh=refresh)
        _validator.validate_document_and_raise(document)
    except ConfigurationError as e:
        raise Exception(e.message)
    except SpecFetchError as e:
        raise Exception(str(e))
    except SpecValidationError as e:
        raise Exception(str(e))
    return document


def list_environments_tool() -> Dict[str, Any]:
    """List the configured environments.

    Returns:
        Dictionary with the default environment and one entry per environment
    """
    _ensure_initialized()

    configs = _registry.configs
    return {
        "default_environment": _registry.default_environment,
        "environments": [
            {
                "name": name,
                "spec_url": configs[name].spec_url,
                "base_url": configs[name].base_url,
                "is_default": name == _registry.default_environment,
            }
            for name in _registry.environments
        ],
    }


def list_operations_tool(environment: Optional[str] = None, tag: Optional[str] = None) -> List[Dict[str, Any]]:
    """List the operations of an environment's API.

    Args:
        environment: Environment name (default environment if None)
        tag: Only return operations carrying this tag

    Returns:
        List of operation summaries in document order
    """
    _ensure_initialized()

    _load_document(environment)
    operations = _client.operations(environment)
    return [
        operation_summary(operation)
        for operation in operations
        if tag is None or tag in operation.tags
    ]


def describe_operation_tool(operation_id: str, environment: Optional[str] = None) -> Dict[str, Any]:
    """Describe one operation including parameter and body schemas.

    Args:
        operation_id: Operation ID
        environment: Environment name (default environment if None)

    Returns:
        Dictionary with full operation details
    """
    _ensure_initialized()

    _load_document(environment)
    try:
        operation = find_operation(_client.operations(environment), operation_id)
    except OperationNotFoundError as e:
        raise Exception(f"{e}. Use list_operations to see available operations.")
    return operation_details(operation)


def call_operation_tool(input_data: OperationCallInput) -> Dict[str, Any]:
    """Call an operation against an environment's API.

    Arguments are validated against the operation's schemas before any
    request is sent.

    Args:
        input_data: Operation call input

    Returns:
        Dictionary with environment, operation, status_code, headers and body

    Raises:
        Exception: With detailed validation errors if the call is rejected
    """
    _ensure_initialized()

    environment = input_data.environment
    document = _load_document(environment)
    try:
        operation = find_operation(_client.operations(environment), input_data.operation_id)
    except OperationNotFoundError as e:
        raise Exception(f"{e}. Use list_operations to see available operations.")

    body = input_data.body
    if body is None and input_data.body_json:
        try:
            body = json.loads(input_data.body_json)
        except json.JSONDecodeError as e:
            raise Exception(f"Invalid JSON in body_json: {e}")

    try:
        _validator.validate_arguments_and_raise(operation, input_data.arguments, body, document)
    except SpecValidationError as e:
        raise Exception(str(e) + "\n\nUse describe_operation to see the expected parameters.")

    prepared = build_request(operation, input_data.arguments, body)
    try:
        result = _client.request(
            environment,
            prepared.method,
            prepared.path,
            params=prepared.params,
            headers=prepared.headers,
            cookies=prepared.cookies,
            json_body=prepared.json_body,
        )
    except APICallError as e:
        raise Exception(str(e))

    result.update(
        {
            "environment": _registry.get(environment).name,
            "operation_id": operation.operation_id,
        }
    )
    return result


def refresh_spec_tool(environment: Optional[str] = None) -> Dict[str, Any]:
    """Refetch an environment's document, dropping the cached copy.

    Args:
        environment: Environment name (default environment if None)

    Returns:
        Dictionary with the document title, version and operation count
    """
    _ensure_initialized()

    document = _load_document(environment, refresh=True)
    operations = _client.operations(environment)
    info = document.get("info") or {}
    return {
        "environment": _registry.get(environment).name,
        "title": info.get("title"),
        "version": info.get("version"),
        "operation_count": len(operations),
        "message": "Spec refreshed successfully",
    }


def get_spec_tool(environment: Optional[str] = None) -> str:
    """Get an environment's raw OpenAPI document as JSON text."""
    _ensure_initialized()

    document = _load_document(environment)
    return json.dumps(document, indent=2)
