# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from typing import Any

from manifold.synthesis import Operation
from manifold.synthesis.openapi import POLICY_EXTENSION
from tests.conftest import library_manifest, make_entity, make_property, offline_handle


def _resolve(document: dict[str, Any], schema: dict[str, Any]) -> dict[str, Any]:
    ref = schema["$ref"]
    assert ref.startswith("#/components/schemas/")
    return document["components"]["schemas"][ref.rsplit("/", 1)[-1]]


def _collect_refs(node: Any) -> list[str]:
    if isinstance(node, dict):
        found = [node["$ref"]] if isinstance(node.get("$ref"), str) else []
        return found + [ref for value in node.values() for ref in _collect_refs(value)]
    if isinstance(node, list):
        return [ref for item in node for ref in _collect_refs(item)]
    return []


class TestDescription:
    def test_info(self) -> None:
        document = offline_handle(library_manifest()).description
        assert document["openapi"] == "3.1.0"
        assert document["info"] == {"title": "Library", "version": "1.0.0"}

    def test_every_descriptor_is_documented(self) -> None:
        handle = offline_handle(library_manifest())
        paths = handle.description["paths"]
        documented = {(method.upper(), path) for path, item in paths.items() for method in item}
        assert documented == {(d.method, d.path) for d in handle.operations}

    def test_policy_matches_descriptor(self) -> None:
        handle = offline_handle(library_manifest())
        paths = handle.description["paths"]
        for descriptor in handle.operations:
            operation = paths[descriptor.path][descriptor.method.lower()]
            assert operation[POLICY_EXTENSION] == descriptor.authorization()

    def test_refs_resolve(self) -> None:
        document = offline_handle(library_manifest()).description
        schemas = document["components"]["schemas"]
        for ref in _collect_refs(document):
            assert ref.rsplit("/", 1)[-1] in schemas

    def test_create_request_body(self) -> None:
        document = offline_handle(library_manifest()).description
        body = document["paths"]["/api/books"]["post"]["requestBody"]
        schema = _resolve(document, body["content"]["application/json"]["schema"])
        assert set(schema["required"]) == {"title"}
        assert schema["additionalProperties"] is False
        assert schema["properties"]["genre"]["default"] == "fiction"

    def test_delete_has_no_content(self) -> None:
        responses = offline_handle(library_manifest()).description["paths"]["/api/books/{id}"]["delete"]["responses"]
        assert responses["204"] == {"description": "No content"}
        assert "409" in responses

    def test_belongs_to_sub_resource_is_nullable(self) -> None:
        operation = offline_handle(library_manifest()).description["paths"]["/api/books/{id}/author"]["get"]
        schema = operation["responses"]["200"]["content"]["application/json"]["schema"]
        assert {"type": "null"} in schema["anyOf"]

    def test_path_id_parameter(self) -> None:
        operation = offline_handle(library_manifest()).description["paths"]["/api/books/{id}"]["get"]
        assert operation["parameters"][0] == {
            "name": "id",
            "in": "path",
            "required": True,
            "schema": {"type": "string", "format": "uuid"},
        }

    def test_list_documents_filters(self) -> None:
        operation = offline_handle(library_manifest()).description["paths"]["/api/books"]["get"]
        names = {p["name"] for p in operation["parameters"]}
        assert {"page", "perPage", "orderBy", "order", "relations", "title_like", "pages_gte", "authorId_eq"} <= names
        assert "genre_like" not in names

    def test_security(self) -> None:
        paths = offline_handle(library_manifest()).description["paths"]
        assert paths["/api/books"]["get"]["security"] == [{}, {"bearerAuth": []}]
        assert paths["/api/notes"]["get"]["security"] == [{"bearerAuth": []}]
        assert paths["/api/tags/{id}"]["patch"]["security"] == [{"bearerAuth": []}]


class TestPasswordsStayPrivate:
    def test_password_only_in_requests(self) -> None:
        raw = {
            "entities": {
                "Reader": make_entity(properties=["name", make_property("secret", "password")]),
            }
        }
        handle = offline_handle(raw)
        schemas = handle.description["components"]["schemas"]
        assert "secret" in schemas["ReaderCreate"]["properties"]
        assert "secret" not in schemas["Reader"]["properties"]
        operation = handle.description["paths"]["/api/readers"]["get"]
        assert not any(p["name"].startswith("secret") for p in operation["parameters"])

    def test_record_model_has_system_fields(self) -> None:
        handle = offline_handle(library_manifest())
        descriptor = handle.operations.find("authors", Operation.GET)
        schema = handle.description["components"]["schemas"][descriptor.response_model.__name__]
        assert {"id", "createdAt", "updatedAt", "name", "bio", "books"} <= set(schema["properties"])
