"""Excellence rules."""

from __future__ import annotations

from api_grader.document import (
    Document,
    has_example,
    iter_operations,
    iter_responses,
    lookup,
    media_types,
    operation_location,
)
from api_grader.rules.base import Target, ValidationResult


class ErrorExamplesRule:
    """Error responses with bodies include examples."""

    rule_id = "EXCEL-001"
    category = "excellence"
    severity = "minor"
    max_points = 3.0
    depends_on: tuple[str, ...] = ("MAINT-004", "FUNC-002")
    description = "Comprehensive examples for error responses"
    effort = "medium"

    def detect(self, document: Document) -> list[Target]:
        targets: list[Target] = []
        for path, method, operation, _ in iter_operations(document):
            for status, response in iter_responses(document, operation):
                if status[:1] in {"4", "5"} and media_types(document, response):
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
            message="Error response has no example",
            fix_hint="Add a problem+json example showing type, title and detail",
        )
