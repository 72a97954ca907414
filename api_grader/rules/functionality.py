"""Functionality rules: response contracts."""

from __future__ import annotations

from api_grader.document import (
    Document,
    iter_operations,
    iter_responses,
    lookup,
    media_types,
    operation_location,
)
from api_grader.rules.base import Target, ValidationResult

ERROR_STATUS_CODES = ("400", "401", "403", "404", "409", "500")
PROBLEM_JSON = "application/problem+json"


class ErrorResponsesRule:
    """Operations document common error responses using problem+json."""

    rule_id = "FUNC-002"
    category = "functionality"
    severity = "major"
    max_points = 8.0
    depends_on: tuple[str, ...] = ()
    description = "Proper error response handling"
    effort = "easy"

    def detect(self, document: Document) -> list[Target]:
        return [
            Target(
                kind="operation",
                location=operation_location(path, method, "responses"),
                identifier=f"{method.upper()} {path}",
                method=method,
                path=path,
            )
            for path, method, operation, _ in iter_operations(document)
            if isinstance(operation.get("responses"), dict)
        ]

    def validate(self, target: Target, document: Document) -> ValidationResult:
        operation = lookup(document, operation_location(target.path or "", target.method or ""))
        if not isinstance(operation, dict):
            return ValidationResult(passed=False, message="Operation not found")

        responses = dict(iter_responses(document, operation))
        present = [code for code in ERROR_STATUS_CODES if code in responses]
        uses_problem_json = any(
            PROBLEM_JSON in media_types(document, response) for response in responses.values()
        )
        ratio = len(present) / len(ERROR_STATUS_CODES)
        if ratio <= 0.5:
            return ValidationResult(
                passed=False,
                message=(
                    f"Missing common error responses "
                    f"({len(present)}/{len(ERROR_STATUS_CODES)} documented)"
                ),
                fix_hint="Add 400/401/403/404/409/500 responses using application/problem+json",
                confidence=0.85,
            )
        if not uses_problem_json:
            return ValidationResult(
                passed=False,
                message=f"Error responses do not use {PROBLEM_JSON}",
                fix_hint=f"Declare error bodies with the {PROBLEM_JSON} media type",
                confidence=0.85,
            )
        return ValidationResult(passed=True, confidence=0.85)


class SuccessResponseRule:
    """Every operation declares at least one 2xx response."""

    rule_id = "FUNC-004"
    category = "functionality"
    severity = "minor"
    max_points = 5.0
    depends_on: tuple[str, ...] = ()
    description = "Operations declare a success response"
    effort = "trivial"

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
        if not isinstance(operation, dict):
            return ValidationResult(passed=False, message="Operation not found")
        statuses = [status for status, _ in iter_responses(document, operation)]
        if any(status.upper().startswith("2") for status in statuses):
            return ValidationResult(passed=True)
        return ValidationResult(
            passed=False,
            message="No 2xx response declared",
            fix_hint="Document the success response (200, 201 or 204)",
        )
