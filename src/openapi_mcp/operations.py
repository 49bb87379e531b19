"""OpenAPI operation extraction and request building.

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

import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")


class OperationNotFoundError(KeyError):
    """Raised when an operation ID is not present in a document."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Operation not found"


class Parameter(BaseModel):
    """A single operation parameter."""

    name: str = Field(description="Parameter name")
    location: str = Field(description="Where the parameter goes: 'path', 'query', 'header' or 'cookie'")
    required: bool = Field(default=False, description="Whether the parameter must be supplied")
    schema_: Dict[str, Any] = Field(default_factory=dict, alias="schema", description="JSON schema of the value")
    description: Optional[str] = Field(default=None, description="Parameter description")

    model_config = ConfigDict(populate_by_name=True)


class Operation(BaseModel):
    """An HTTP operation described by an OpenAPI document."""

    operation_id: str = Field(description="Operation ID (generated when the document has none)")
    method: str = Field(description="Upper-case HTTP method")
    path: str = Field(description="Path template, e.g. '/pets/{petId}'")
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    parameters: List[Parameter] = Field(default_factory=list)
    request_body_schema: Optional[Dict[str, Any]] = None
    request_body_required: bool = False
    deprecated: bool = False


class PreparedRequest(BaseModel):
    """An operation call ready to be sent."""

    method: str
    path: str
    params: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    cookies: Dict[str, str] = Field(default_factory=dict)
    json_body: Optional[Any] = None


def resolve_ref(document: Dict[str, Any], ref: str) -> Any:
    """Resolve a local JSON reference like '#/components/schemas/Pet'.

    Args:
        document: The OpenAPI document
        ref: The reference string

    Returns:
        The referenced object

    Raises:
        ValueError: If the reference is not local or cannot be resolved
    """
    if not ref.startswith("#/"):
        raise ValueError(f"Only local references are supported: {ref}")
    node: Any = document
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            raise ValueError(f"Unresolvable reference: {ref}")
        node = node[part]
    return node


def _deref(document: Dict[str, Any], node: Any, seen: Optional[tuple] = None) -> Any:
    """Inline local $refs, leaving recursive references in place."""
    seen = seen or ()
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str):
            if ref in seen:
                return node
            return _deref(document, resolve_ref(document, ref), seen + (ref,))
        return {key: _deref(document, value, seen) for key, value in node.items()}
    if isinstance(node, list):
        return [_deref(document, item, seen) for item in node]
    return node


def _slug(path: str) -> str:
    slug = re.sub(r"[^0-9A-Za-z]+", "_", path).strip("_")
    return slug or "root"


def _parse_parameter(document: Dict[str, Any], raw: Dict[str, Any]) -> Optional[Parameter]:
    raw = _deref(document, raw)
    location = raw.get("in")
    if location not in PARAMETER_LOCATIONS or "name" not in raw:
        # Swagger 2 'body' and 'formData' parameters are handled as request bodies
        return None
    schema = raw.get("schema")
    if schema is None:
        # Swagger 2 puts the type on the parameter itself
        schema = {k: raw[k] for k in ("type", "format", "enum", "items", "default") if k in raw}
    return Parameter(
        name=raw["name"],
        location=location,
        required=bool(raw.get("required", location == "path")),
        schema=schema,
        description=raw.get("description"),
    )


def _request_body(document: Dict[str, Any], operation: Dict[str, Any], raw_params: List[Dict[str, Any]]):
    body = operation.get("requestBody")
    if body is not None:
        body = _deref(document, body)
        content = body.get("content") or {}
        media = content.get("application/json")
        if media is None and content:
            media = next(iter(content.values()))
        schema = (media or {}).get("schema") or {}
        return schema, bool(body.get("required", False))

    for raw in raw_params:
        raw = _deref(document, raw)
        if raw.get("in") == "body":
            return raw.get("schema") or {}, bool(raw.get("required", False))
    return None, False


def extract_operations(document: Dict[str, Any]) -> List[Operation]:
    """Extract every operation of an OpenAPI document.

    Operations are returned in document order. Path-level parameters are
    merged into each operation; an operation-level parameter with the same
    name and location replaces the path-level one.

    Args:
        document: Parsed OpenAPI (3.x) or Swagger (2.0) document

    Returns:
        List of Operation objects
    """
    operations = []
    used_ids = set()
    paths = document.get("paths") or {}

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        path_item = _deref(document, path_item) if "$ref" in path_item else path_item
        shared_params = path_item.get("parameters") or []

        for method in HTTP_METHODS:
            raw_op = path_item.get(method)
            if not isinstance(raw_op, dict):
                continue

            raw_params = list(shared_params) + list(raw_op.get("parameters") or [])
            merged: Dict[tuple, Parameter] = {}
            for raw in raw_params:
                param = _parse_parameter(document, raw)
                if param is not None:
                    merged[(param.name, param.location)] = param

            body_schema, body_required = _request_body(document, raw_op, raw_params)

            operation_id = raw_op.get("operationId") or f"{method}_{_slug(path)}"
            base_id, suffix = operation_id, 2
            while operation_id in used_ids:
                operation_id = f"{base_id}_{suffix}"
                suffix += 1
            used_ids.add(operation_id)

            operations.append(
                Operation(
                    operation_id=operation_id,
                    method=method.upper(),
                    path=path,
                    summary=raw_op.get("summary"),
                    description=raw_op.get("description"),
                    tags=list(raw_op.get("tags") or []),
                    parameters=list(merged.values()),
                    request_body_schema=body_schema,
                    request_body_required=body_required,
                    deprecated=bool(raw_op.get("deprecated", False)),
                )
            )

    return operations


def find_operation(operations: List[Operation], operation_id: str) -> Operation:
    """Find an operation by ID.

    Raises:
        OperationNotFoundError: If no operation has that ID
    """
    for operation in operations:
        if operation.operation_id == operation_id:
            return operation
    raise OperationNotFoundError(f"Operation '{operation_id}' not found")


def build_request(
    operation: Operation,
    arguments: Optional[Dict[str, Any]] = None,
    body: Optional[Any] = None,
) -> PreparedRequest:
    """Build the HTTP request for an operation call.

    Args:
        operation: The operation to call
        arguments: Parameter values keyed by parameter name
        body: JSON request body

    Returns:
        PreparedRequest with path parameters substituted

    Raises:
        ValueError: If a path parameter is missing
    """
    arguments = arguments or {}
    path = operation.path
    params: Dict[str, Any] = {}
    headers: Dict[str, str] = {}
    cookies: Dict[str, str] = {}

    for param in operation.parameters:
        if param.name not in arguments:
            if param.location == "path":
                raise ValueError(f"Missing path parameter '{param.name}'")
            continue
        value = arguments[param.name]
        if param.location == "path":
            path = path.replace("{" + param.name + "}", quote(str(value), safe=""))
        elif param.location == "query":
            params[param.name] = value
        elif param.location == "header":
            headers[param.name] = str(value)
        else:
            cookies[param.name] = str(value)

    return PreparedRequest(
        method=operation.method,
        path=path,
        params=params,
        headers=headers,
        cookies=cookies,
        json_body=body,
    )


def operation_summary(operation: Operation) -> Dict[str, Any]:
    """Short dictionary form of an operation for listings."""
    return {
        "operation_id": operation.operation_id,
        "method": operation.method,
        "path": operation.path,
        "summary": operation.summary,
        "tags": operation.tags,
    }


def operation_details(operation: Operation) -> Dict[str, Any]:
    """Full dictionary form of an operation, including its input schemas."""
    details = operation_summary(operation)
    details.update(
        {
            "description": operation.description,
            "deprecated": operation.deprecated,
            "parameters": [
                {
                    "name": p.name,
                    "in": p.location,
                    "required": p.required,
                    "schema": p.schema_,
                    "description": p.description,
                }
                for p in operation.parameters
            ],
            "request_body": (
                {"required": operation.request_body_required, "schema": operation.request_body_schema}
                if operation.request_body_schema is not None
                else None
            ),
        }
    )
    return details
