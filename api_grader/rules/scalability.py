"""Scalability rules: pagination and rate limiting."""

from __future__ import annotations

from collections.abc import Mapping

from api_grader.document import (
    Document,
    effective_parameters,
    iter_operations,
    iter_responses,
    lookup,
    operation_location,
    path_location,
)
from api_grader.rules.base import Target, ValidationResult

KEYSET_CURSORS = {"afterkey", "beforekey"}
KEYSET_LIMIT = "limit"
FORBIDDEN_PAGINATION = {"offset", "page", "pagenumber", "page_size"}


class KeysetPaginationRule:
    """Collection GET operations use key-set pagination."""

    rule_id = "SCALE-001"
    category = "scalability"
    severity = "critical"
    max_points = 8.0
    depends_on: tuple[str, ...] = ()
    description = "Key-set pagination for list operations"
    effort = "medium"

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
            if _is_collection_path(path)
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        operation = lookup(document, target.location)
        path_item = lookup(document, path_location(target.path or ""))
        if not isinstance(operation, Mapping):
            return ValidationResult(passed=False, message="Operation not found")
        query_names = {
            str(param["name"]).lower()
            for param in effective_parameters(
                document, path_item if isinstance(path_item, Mapping) else {}, operation
            )
            if str(param["in"]).lower() == "query"
        }
        has_keyset = bool(query_names & KEYSET_CURSORS) and KEYSET_LIMIT in query_names
        uses_offset = bool(query_names & FORBIDDEN_PAGINATION)
        if uses_offset:
            return ValidationResult(
                passed=False,
                message="Uses forbidden offset/page pagination",
                fix_hint="Replace offset/page parameters with AfterKey/BeforeKey and Limit",
                confidence=0.95,
            )
        if not has_keyset:
            return ValidationResult(
                passed=False,
                message="Missing key-set pagination parameters",
                fix_hint="Add AfterKey/BeforeKey and Limit query parameters",
                confidence=0.95,
            )
        return ValidationResult(passed=True, confidence=0.95)


class RateLimitResponseRule:
    """Operations document the 429 Too Many Requests response."""

    rule_id = "SCALE-004"
    category = "scalability"
    severity = "minor"
    max_points = 2.0
    depends_on: tuple[str, ...] = ()
    description = "Rate limiting is documented"
    effort = "easy"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="response",
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
        if any(status == "429" for status, _ in iter_responses(document, operation)):
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message="No 429 response documented",
            fix_hint="Add a 429 response with Retry-After and rate limit headers",
        )


def _is_collection_path(path: str) -> bool:
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return False
    last = segments[-1]
    return not last.startswith("{") and last.endswith("s")
