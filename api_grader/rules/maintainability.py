"""Maintainability rules: naming, documentation and examples."""

from __future__ import annotations

import re
from collections.abc import Mapping

from api_grader.document import (
    Document,
    has_example,
    iter_operations,
    iter_responses,
    lookup,
    media_types,
    operation_location,
    path_location,
)
from api_grader.rules.base import Target, ValidationResult

_VERSION_SEGMENT = re.compile(r"^v\d+$")


class KebabCasePathsRule:
    """Path segments are lowercase kebab-case."""

    rule_id = "MAINT-001"
    category = "maintainability"
    severity = "minor"
    max_points = 5.0
    depends_on: tuple[str, ...] = ()
    description = "Consistent kebab-case path naming"
    effort = "medium"

    def detect(self, document: Document) -> list[Target]:
        paths = document.get("paths")
        if not isinstance(paths, Mapping):
            return []
        return [
            Target(kind="path", location=path_location(path), identifier=path, path=path)
            for path in map(str, paths)
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        violations: list[str] = []
        for segment in (target.path or "").split("/"):
            if not segment or segment.startswith("{") or _VERSION_SEGMENT.match(segment):
                continue
            if segment != segment.lower():
                violations.append(f"'{segment}' has uppercase characters")
            if "_" in segment:
                violations.append(f"'{segment}' has underscores")
        if not violations:
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message="; ".join(violations[:3]),
            fix_hint="Rename path segments to lowercase kebab-case",
        )


class OperationDocumentationRule:
    """Operations carry an operationId and a summary or description."""

    rule_id = "MAINT-002"
    category = "maintainability"
    severity = "minor"
    max_points = 5.0
    depends_on: tuple[str, ...] = ()
    description = "Operations are documented"
    effort = "easy"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="operation",
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
        missing: list[str] = []
        if not operation.get("operationId"):
            missing.append("operationId")
        if not (operation.get("summary") or operation.get("description")):
            missing.append("summary or description")
        if not missing:
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message=f"Missing {' and '.join(missing)}",
            fix_hint="Add operationId and a one-line summary to every operation",
        )


class ResponseExamplesRule:
    """Success responses with bodies include examples."""

    rule_id = "MAINT-004"
    category = "maintainability"
    severity = "minor"
    max_points = 2.0
    depends_on: tuple[str, ...] = ("MAINT-002",)
    description = "Success responses include examples"
    effort = "easy"

    def detect(self, document: Document) -> list[Target]:
        targets: list[Target] = []
        for path, method, operation, _ in iter_operations(document):
            for status, response in iter_responses(document, operation):
                if status.startswith("2") and media_types(document, response):
                    targets.append(
                        Target(
                            kind="response",
                            location=operation_location(path, method, "responses", status),
                            identifier=f"{method.upper()} {path} {status}",
                            method=method,
                            path=path,
                        )
                    )
        return targets

    def validate(self, target: Target, document: Document) -> ValidationResult:
        media = media_types(document, lookup(document, target.location))
        if media and all(has_example(document, item) for item in media.values()):
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message="Response body has no example",
            fix_hint="Add an 'example' or 'examples' entry to each media type",
        )
