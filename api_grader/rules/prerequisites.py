"""Gating rules that must pass before any scoring happens."""

from __future__ import annotations

from collections.abc import Mapping

from api_grader.document import (
    MUTATING_METHODS,
    Document,
    has_parameter,
    iter_operations,
    lookup,
    operation_location,
    path_location,
)
from api_grader.rules.base import Target, ValidationResult

DEFAULT_OPENAPI_VERSION = "3.0.3"
DEFAULT_TENANT_HEADER = "X-Organization-ID"


class OpenApiVersionRule:
    """Document must declare the exact supported OpenAPI version."""

    rule_id = "PREREQ-001"
    category = "functionality"
    severity = "prerequisite"
    max_points = 0.0
    depends_on: tuple[str, ...] = ()
    effort = "trivial"

    def __init__(self, required_version: str = DEFAULT_OPENAPI_VERSION) -> None:
        self.required_version = required_version
        self.description = f"OpenAPI version must be {required_version}"

    def detect(self, document: Document) -> list[Target]:
        return [Target(kind="security", location="$.openapi", identifier="OpenAPI version")]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        version = document.get("openapi")
        if version == self.required_version:
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message=f"OpenAPI version is {version}, must be {self.required_version}",
            fix_hint=f"Change 'openapi: {version}' to 'openapi: {self.required_version}'",
        )


class AuthenticationDefinedRule:
    """At least one security scheme must be defined."""

    rule_id = "PREREQ-002"
    category = "security"
    severity = "prerequisite"
    max_points = 0.0
    depends_on: tuple[str, ...] = ()
    description = "Authentication must be defined"
    effort = "easy"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="security",
                location="$.components.securitySchemes",
                identifier="Security schemes",
            )
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        schemes = lookup(document, target.location)
        if isinstance(schemes, Mapping) and schemes:
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message="No security schemes defined",
            fix_hint="Add an OAuth2 or API key scheme to components.securitySchemes",
        )


class TenantHeaderOnWritesRule:
    """Every mutating operation must carry the tenant isolation header."""

    rule_id = "PREREQ-003"
    category = "security"
    severity = "prerequisite"
    max_points = 0.0
    depends_on: tuple[str, ...] = ()
    effort = "trivial"

    def __init__(self, header: str = DEFAULT_TENANT_HEADER) -> None:
        self.header = header
        self.description = f"{header} required on all write operations"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="operation",
                location=operation_location(path, method),
                identifier=f"{method.upper()} {path}",
                method=method,
                path=path,
            )
            for path, method, _, _ in iter_operations(document, MUTATING_METHODS)
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        operation = lookup(document, target.location)
        path_item = lookup(document, path_location(target.path or ""))
        if not isinstance(operation, Mapping):
            return ValidationResult(passed=False, message="Operation not found")
        if not isinstance(path_item, Mapping):
            path_item = {}
        if has_parameter(document, path_item, operation, self.header, "header"):
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message=f"Missing {self.header} header",
            fix_hint="Add parameter: - $ref: '#/components/parameters/OrganizationHeader'",
        )
