"""Tests for document loading and location lookup."""

from __future__ import annotations

from pathlib import Path

import pytest

from api_grader.document import (
    DocumentError,
    effective_parameters,
    has_parameter,
    iter_operations,
    load_document,
    lookup,
    operation_location,
    parse_document,
    resolve_ref,
)
from tests.helpers_documents import compliant_document


def test_parse_document_accepts_yaml_and_json() -> None:
    from_yaml = parse_document("openapi: 3.0.3\ninfo:\n  title: T\n")
    from_json = parse_document('{"openapi": "3.0.3", "info": {"title": "T"}}')
    assert from_yaml == from_json


def test_parse_document_rejects_non_mapping_root() -> None:
    with pytest.raises(DocumentError, match="must be a mapping"):
        parse_document("- a\n- b\n")


def test_parse_document_treats_empty_text_as_empty_mapping() -> None:
    assert parse_document("") == {}


def test_load_document_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DocumentError, match="Cannot read document"):
        load_document(tmp_path / "missing.yaml")


def test_load_document_reports_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("openapi: [3.0.3\n", encoding="utf-8")
    with pytest.raises(DocumentError, match="Invalid YAML/JSON"):
        load_document(path)


def test_lookup_resolves_quoted_path_keys() -> None:
    document = compliant_document()
    operation = lookup(document, operation_location("/v1/users", "get"))
    assert operation["operationId"] == "listUsers"
    assert lookup(document, operation_location("/v1/users", "get", "responses", "200")) is not None
    assert lookup(document, "$.paths['/missing'].get") is None


def test_lookup_falls_back_to_integer_status_codes() -> None:
    document = parse_document(
        "paths:\n  /a:\n    get:\n      responses:\n        200:\n          description: ok\n"
    )
    response = lookup(document, operation_location("/a", "get", "responses", "200"))
    assert response == {"description": "ok"}


def test_lookup_rejects_malformed_locations() -> None:
    with pytest.raises(DocumentError):
        lookup({}, "paths.a")


def test_resolve_ref_follows_local_pointers_and_stops_on_loops() -> None:
    document = {
        "components": {
            "parameters": {"A": {"$ref": "#/components/parameters/B"}, "B": {"name": "x"}},
            "schemas": {"Loop": {"$ref": "#/components/schemas/Loop"}},
        }
    }
    assert resolve_ref(document, {"$ref": "#/components/parameters/A"}) == {"name": "x"}
    assert resolve_ref(document, {"$ref": "#/components/schemas/Loop"}) is None
    assert resolve_ref(document, {"$ref": "other.yaml#/x"}) is None


def test_effective_parameters_lets_operation_override_path_level() -> None:
    path_item = {"parameters": [{"name": "Limit", "in": "query", "description": "path"}]}
    operation = {"parameters": [{"name": "limit", "in": "query", "description": "op"}]}
    params = effective_parameters({}, path_item, operation)
    assert len(params) == 1
    assert params[0]["description"] == "op"


def test_has_parameter_matches_headers_case_insensitively() -> None:
    document = compliant_document()
    path_item = document["paths"]["/v1/users"]
    assert has_parameter(document, path_item, path_item["post"], "x-organization-id")
    assert not has_parameter(document, {}, path_item["post"], "X-Organization-ID")


def test_iter_operations_skips_non_method_keys() -> None:
    document = compliant_document()
    found = [(path, method) for path, method, _, _ in iter_operations(document)]
    assert found == [
        ("/v1/users", "get"),
        ("/v1/users", "post"),
        ("/v1/users/{userId}", "get"),
        ("/v1/users/{userId}", "delete"),
    ]
