"""OpenAPI document and operation argument validation using JSON schema.

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

from typing import Any, Dict, List, Optional, Tuple

import jsonschema
from jsonschema import ValidationError

from .operations import Operation

# Minimal structural schema shared by OpenAPI 3.x and Swagger 2.0 documents
DOCUMENT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "openapi": {"type": "string", "pattern": r"^3\."},
        "swagger": {"type": "string", "pattern": r"^2\.0"},
        "info": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "version": {"type": "string"},
            },
        },
        "servers": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["url"],
                "properties": {"url": {"type": "string"}},
            },
        },
        "paths": {"type": "object"},
    },
    "required": ["info", "paths"],
    "oneOf": [
        {"required": ["openapi"]},
        {"required": ["swagger"]},
    ],
}


class SpecValidationError(Exception):
    """Raised when a document or an operation call fails validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        """Initialize validation error.

        Args:
            message: Error message
            errors: List of detailed validation errors
        """
        self.message = message
        self.errors = errors or []

        if self.errors:
            error_lines = [message, ""]
            for i, error in enumerate(self.errors, 1):
                error_lines.append(f"{i}. {error}")
            full_message = "\n".join(error_lines)
        else:
            full_message = message

        super().__init__(full_message)


class OpenAPISpecValidator:
    """Validates OpenAPI documents and operation arguments."""

    def __init__(self, document_schema: Optional[Dict[str, Any]] = None):
        """Initialize the validator.

        Args:
            document_schema: Schema used for documents. Defaults to DOCUMENT_SCHEMA.
        """
        self._document_validator = jsonschema.Draft7Validator(document_schema or DOCUMENT_SCHEMA)

    def validate_document(self, document: Any) -> Tuple[bool, List[str]]:
        """Validate the overall shape of an OpenAPI document.

        Args:
            document: Parsed document

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = [
            self._format_error(error)
            for error in sorted(self._document_validator.iter_errors(document), key=lambda e: list(e.path))
        ]
        return len(errors) == 0, errors

    def validate_document_and_raise(self, document: Any) -> None:
        """Validate a document and raise SpecValidationError if invalid."""
        is_valid, errors = self.validate_document(document)
        if not is_valid:
            raise SpecValidationError(f"OpenAPI document is invalid ({len(errors)} error(s))", errors)

    def validate_arguments(
        self,
        operation: Operation,
        arguments: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None,
        document: Optional[Dict[str, Any]] = None,
    ) -> Tuple[bool, List[str]]:
        """Validate the arguments of an operation call.

        Args:
            operation: The operation being called
            arguments: Parameter values keyed by parameter name
            body: Request body
            document: The source document, used to resolve remaining $refs

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        arguments = arguments or {}
        errors = []

        known = {param.name for param in operation.parameters}
        for name in arguments:
            if name not in known:
                errors.append(f"Unknown parameter '{name}' for operation '{operation.operation_id}'")

        for param in operation.parameters:
            if param.name not in arguments:
                if param.required:
                    errors.append(f"Missing required {param.location} parameter '{param.name}'")
                continue
            if param.schema_:
                for error in self._iter_schema_errors(param.schema_, arguments[param.name], document):
                    errors.append(f"Parameter '{param.name}': {self._format_error(error)}")

        if body is None:
            if operation.request_body_required:
                errors.append(f"Operation '{operation.operation_id}' requires a request body")
        elif operation.request_body_schema is None:
            errors.append(f"Operation '{operation.operation_id}' does not accept a request body")
        elif operation.request_body_schema:
            for error in self._iter_schema_errors(operation.request_body_schema, body, document):
                errors.append(f"Request body: {self._format_error(error)}")

        return len(errors) == 0, errors

    def validate_arguments_and_raise(
        self,
        operation: Operation,
        arguments: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None,
        document: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Validate call arguments and raise SpecValidationError if invalid."""
        is_valid, errors = self.validate_arguments(operation, arguments, body, document)
        if not is_valid:
            raise SpecValidationError(
                f"Invalid arguments for operation '{operation.operation_id}' ({len(errors)} error(s))",
                errors,
            )

    def _iter_schema_errors(self, schema: Dict[str, Any], instance: Any, document: Optional[Dict[str, Any]]):
        if document:
            # Recursive $refs stay in the schema; let them resolve against the document
            schema = dict(schema)
            for key in ("components", "definitions"):
                if key in document and key not in schema:
                    schema[key] = document[key]
        validator = jsonschema.Draft7Validator(schema)
        return sorted(validator.iter_errors(instance), key=lambda e: list(e.path))

    def _format_error(self, error: ValidationError) -> str:
        """Format a validation error into a readable message.

        Args:
            error: The ValidationError instance

        Returns:
            Message prefixed with the location of the failing value
        """
        path = " -> ".join(str(p) for p in error.path)
        if path:
            return f"{path}: {error.message}"
        return error.message
