"""Security rules: tenant isolation, authorization and input validation."""

from __future__ import annotations

from collections.abc import Mapping

from api_grader.document import (
    Document,
    has_parameter,
    iter_operations,
    lookup,
    media_types,
    operation_location,
    path_location,
    resolve_ref,
)
from api_grader.rules.base import Target, ValidationResult
from api_grader.rules.prerequisites import DEFAULT_TENANT_HEADER

_SCHEMA_SHAPE_KEYS = ("type", "properties", "allOf", "oneOf", "anyOf", "items")


class TenantHeaderOnReadsRule:
    """GET operations carry the tenant isolation header."""

    rule_id = "SEC-001"
    category = "security"
    severity = "critical"
    max_points = 7.0
    depends_on: tuple[str, ...] = ("PREREQ-003",)
    effort = "trivial"

    def __init__(self, header: str = DEFAULT_TENANT_HEADER) -> None:
        self.header = header
        self.description = f"{header} on GET operations"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="operation",
                location=operation_location(path, method),
                identifier=f"GET {path}",
                method=method,
                path=path,
            )
            for path, method, _, _ in iter_operations(document, ("get",))
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        operation = lookup(document, target.location)
        path_item = lookup(document, path_location(target.path or ""))
        if not isinstance(operation, Mapping):
            return ValidationResult(passed=False, message="Operation not found")
        if has_parameter(
            document,
            path_item if isinstance(path_item, Mapping) else {},
            operation,
            self.header,
        ):
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message=f"Missing {self.header} header",
            fix_hint="Add parameter: - $ref: '#/components/parameters/OrganizationHeader'",
        )


class OperationSecurityRule:
    """Operations are covered by a security requirement."""

    rule_id = "SEC-003"
    category = "security"
    severity = "major"
    max_points = 5.0
    depends_on: tuple[str, ...] = ("PREREQ-002",)
    description = "Operations declare security requirements"
    effort = "easy"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="security",
                location=operation_location(path, method),
                identifier=f"{method.upper()} {path}",
                method=method,
                path=path,
            )
            for path, method, _, _ in iter_operations(document)
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        operation = lookup(document, target.location)
        if not isinstance(operation, Mapping):
            return ValidationResult(passed=False, message="Operation not found")
        requirements = operation.get("security", document.get("security"))
        if isinstance(requirements, list) and any(
            isinstance(item, Mapping) and item for item in requirements
        ):
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message="No security requirement applies",
            fix_hint="Add a top-level or operation-level 'security' requirement",
        )


class RequestBodySchemaRule:
    """Request bodies declare a schema for every media type."""

    rule_id = "SEC-004"
    category = "security"
    severity = "major"
    max_points = 8.0
    depends_on: tuple[str, ...] = ()
    description = "Request bodies are validated by schemas"
    effort = "medium"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="schema",
                location=operation_location(path, method, "requestBody"),
                identifier=f"{method.upper()} {path}",
                method=method,
                path=path,
            )
            for path, method, operation, _ in iter_operations(document)
            if operation.get("requestBody") is not None
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        media = media_types(document, lookup(document, target.location))
        if not media:
            return ValidationResult(
                passed=False,
                message="Request body declares no content",
                fix_hint="Describe the request body under 'content' with a schema",
            )
        for name, media_object in media.items():
            schema = resolve_ref(document, media_object.get("schema"))
            if not isinstance(schema, Mapping) or not any(
                key in schema for key in _SCHEMA_SHAPE_KEYS
            ):
                return ValidationResult(
                    passed=False,
                    message=f"Request body for {name} has no usable schema",
                    fix_hint="Reference a component schema with explicit types",
                    confidence=0.9,
                )
        return ValidationResult(passed=True, confidence=0.9)
