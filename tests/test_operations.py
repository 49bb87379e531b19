"""Tests for operation extraction and request building."""

import pytest

from openapi_mcp.operations import (
    OperationNotFoundError,
    build_request,
    extract_operations,
    find_operation,
    operation_details,
    operation_summary,
    resolve_ref,
)


def test_extract_operations_in_document_order(petstore):
    """Test operations are listed in document order."""
    operations = extract_operations(petstore)
    assert [op.operation_id for op in operations] == [
        "listPets",
        "createPet",
        "showPetById",
        "delete_pets_petId",
    ]
    assert [op.method for op in operations] == ["GET", "POST", "GET", "DELETE"]


def test_generated_ids_are_stable(petstore):
    """Test generated operation IDs do not change between runs."""
    first = [op.operation_id for op in extract_operations(petstore)]
    second = [op.operation_id for op in extract_operations(petstore)]
    assert first == second


def test_duplicate_operation_ids_are_suffixed():
    """Test colliding operation IDs get a numeric suffix."""
    document = {
        "paths": {
            "/a": {"get": {"operationId": "fetch"}},
            "/b": {"get": {"operationId": "fetch"}},
        },
    }
    assert [op.operation_id for op in extract_operations(document)] == ["fetch", "fetch_2"]


def test_path_parameters_are_merged(petstore):
    """Test path-level parameters apply to every operation on the path."""
    operations = extract_operations(petstore)
    show = find_operation(operations, "showPetById")
    names = [(p.name, p.location) for p in show.parameters]
    assert ("petId", "path") in names
    assert ("X-Trace-Id", "header") in names
    delete = find_operation(operations, "delete_pets_petId")
    assert [p.name for p in delete.parameters] == ["petId"]
    assert delete.parameters[0].required


def test_operation_parameter_overrides_path_parameter():
    """Test an operation-level parameter replaces the path-level one."""
    document = {
        "paths": {
            "/items": {
                "parameters": [{"name": "q", "in": "query", "schema": {"type": "string"}}],
                "get": {
                    "parameters": [{"name": "q", "in": "query", "required": True, "schema": {"type": "integer"}}],
                },
            },
        },
    }
    (operation,) = extract_operations(document)
    assert len(operation.parameters) == 1
    assert operation.parameters[0].required
    assert operation.parameters[0].schema_ == {"type": "integer"}


def test_request_body_ref_is_resolved(petstore):
    """Test request body schemas have local references inlined."""
    create = find_operation(extract_operations(petstore), "createPet")
    assert create.request_body_required
    assert create.request_body_schema["required"] == ["name"]


def test_swagger2_body_and_parameter_types():
    """Test Swagger 2.0 body parameters and inline types."""
    document = {
        "swagger": "2.0",
        "paths": {
            "/users": {
                "post": {
                    "operationId": "createUser",
                    "parameters": [
                        {"name": "body", "in": "body", "required": True, "schema": {"type": "object"}},
                        {"name": "dryRun", "in": "query", "type": "boolean"},
                    ],
                },
            },
        },
    }
    (operation,) = extract_operations(document)
    assert operation.request_body_schema == {"type": "object"}
    assert operation.request_body_required
    assert [p.name for p in operation.parameters] == ["dryRun"]
    assert operation.parameters[0].schema_ == {"type": "boolean"}


def test_recursive_ref_left_in_place():
    """Test self-referencing schemas do not recurse forever."""
    document = {
        "paths": {
            "/nodes": {
                "post": {
                    "requestBody": {
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Node"}}},
                    },
                },
            },
        },
        "components": {
            "schemas": {
                "Node": {
                    "type": "object",
                    "properties": {"child": {"$ref": "#/components/schemas/Node"}},
                },
            },
        },
    }
    (operation,) = extract_operations(document)
    assert operation.request_body_schema["properties"]["child"] == {"$ref": "#/components/schemas/Node"}


def test_resolve_ref(petstore):
    """Test local reference resolution."""
    assert resolve_ref(petstore, "#/components/schemas/NewPet")["type"] == "object"
    with pytest.raises(ValueError):
        resolve_ref(petstore, "#/components/schemas/Missing")
    with pytest.raises(ValueError):
        resolve_ref(petstore, "https://example.com/schema.json")


def test_find_operation_missing(petstore):
    """Test unknown operation IDs raise."""
    with pytest.raises(OperationNotFoundError) as exc_info:
        find_operation(extract_operations(petstore), "nope")
    assert str(exc_info.value) == "Operation 'nope' not found"


def test_build_request(petstore):
    """Test parameters are routed to path, query and headers."""
    show = find_operation(extract_operations(petstore), "showPetById")
    request = build_request(show, {"petId": "a b/c", "X-Trace-Id": 42})
    assert request.method == "GET"
    assert request.path == "/pets/a%20b%2Fc"
    assert request.headers == {"X-Trace-Id": "42"}
    assert request.params == {}


def test_build_request_query_and_body(petstore):
    """Test query parameters and JSON bodies."""
    operations = extract_operations(petstore)
    list_request = build_request(find_operation(operations, "listPets"), {"limit": 10})
    assert list_request.params == {"limit": 10}
    create_request = build_request(find_operation(operations, "createPet"), body={"name": "Rex"})
    assert create_request.json_body == {"name": "Rex"}


def test_build_request_missing_path_parameter(petstore):
    """Test a missing path parameter is rejected."""
    show = find_operation(extract_operations(petstore), "showPetById")
    with pytest.raises(ValueError):
        build_request(show, {})


def test_summaries(petstore):
    """Test summary and details dictionaries."""
    create = find_operation(extract_operations(petstore), "createPet")
    summary = operation_summary(create)
    assert summary == {
        "operation_id": "createPet",
        "method": "POST",
        "path": "/pets",
        "summary": "Create a pet",
        "tags": ["pets"],
    }
    details = operation_details(create)
    assert details["request_body"]["required"] is True
    assert details["parameters"] == []
