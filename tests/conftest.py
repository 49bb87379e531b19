"""Shared fixtures."""

import copy

import pytest

PETSTORE = {
    "openapi": "3.0.3",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "servers": [{"url": "https://petstore.example.com/v1"}],
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List all pets",
                "tags": ["pets"],
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer", "maximum": 100}},
                ],
            },
            "post": {
                "operationId": "createPet",
                "summary": "Create a pet",
                "tags": ["pets"],
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/NewPet"}},
                    },
                },
            },
        },
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {
                "operationId": "showPetById",
                "summary": "Info for a specific pet",
                "tags": ["pets"],
                "parameters": [
                    {"$ref": "#/components/parameters/TraceId"},
                ],
            },
            "delete": {
                "summary": "Delete a pet",
                "tags": ["admin"],
            },
        },
    },
    "components": {
        "parameters": {
            "TraceId": {"name": "X-Trace-Id", "in": "header", "schema": {"type": "string"}},
        },
        "schemas": {
            "NewPet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "tag": {"type": "string"},
                },
            },
        },
    },
}


@pytest.fixture
def petstore():
    """A small OpenAPI 3 document."""
    return copy.deepcopy(PETSTORE)
