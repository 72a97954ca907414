"""Document builders and stub rules shared by tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from api_grader.rules.base import Target, ValidationResult

ORG_HEADER_REF = {"$ref": "#/components/parameters/OrganizationHeader"}
ERROR_CODES = ("400", "401", "403", "404", "409", "500")


def error_responses() -> dict[str, Any]:
    responses: dict[str, Any] = {
        code: {
            "description": f"Error {code}",
            "content": {
                "application/problem+json": {
                    "schema": {"$ref": "#/components/schemas/Problem"},
                    "example": {"type": "about:blank", "title": "Error", "status": int(code)},
                }
            },
        }
        for code in ERROR_CODES
    }
    responses["429"] = {"description": "Too many requests"}
    return responses


def json_body(example: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": {
            "application/json": {
                "schema": {"$ref": "#/components/schemas/User"},
                "example": example,
            }
        }
    }


def compliant_document() -> dict[str, Any]:
    """A document every default rule accepts."""
    return {
        "openapi": "3.0.3",
        "info": {"title": "Users API", "version": "1.0.0"},
        "security": [{"bearerAuth": []}],
        "paths": {
            "/v1/users": {
                "parameters": [ORG_HEADER_REF],
                "get": {
                    "operationId": "listUsers",
                    "summary": "List users",
                    "parameters": [
                        {"name": "AfterKey", "in": "query", "schema": {"type": "string"}},
                        {"name": "Limit", "in": "query", "schema": {"type": "integer"}},
                    ],
                    "responses": {
                        "200": {"description": "OK", **json_body({"items": []})},
                        **error_responses(),
                    },
                },
                "post": {
                    "operationId": "createUser",
                    "summary": "Create a user",
                    "requestBody": {
                        "content": {
                            "application/json": {"schema": {"$ref": "#/components/schemas/User"}}
                        }
                    },
                    "responses": {
                        "201": {"description": "Created", **json_body({"id": "u1"})},
                        **error_responses(),
                    },
                },
            },
            "/v1/users/{userId}": {
                "parameters": [
                    ORG_HEADER_REF,
                    {"name": "userId", "in": "path", "required": True},
                ],
                "get": {
                    "operationId": "getUser",
                    "summary": "Fetch a user",
                    "responses": {
                        "200": {"description": "OK", **json_body({"id": "u1"})},
                        **error_responses(),
                    },
                },
                "delete": {
                    "operationId": "deleteUser",
                    "description": "Delete a user",
                    "responses": {"204": {"description": "Deleted"}, **error_responses()},
                },
            },
        },
        "components": {
            "securitySchemes": {"bearerAuth": {"type": "http", "scheme": "bearer"}},
            "parameters": {
                "OrganizationHeader": {
                    "name": "X-Organization-ID",
                    "in": "header",
                    "required": True,
                    "schema": {"type": "string"},
                }
            },
            "schemas": {
                "User": {"type": "object", "properties": {"id": {"type": "string"}}},
                "Problem": {"type": "object", "properties": {"title": {"type": "string"}}},
            },
        },
    }


@dataclass
class StubRule:
    """Rule whose targets pass or fail according to ``outcomes``."""

    rule_id: str
    category: str = "functionality"
    severity: str = "major"
    max_points: float = 10.0
    depends_on: tuple[str, ...] = ()
    description: str = "stub rule"
    effort: str = "medium"
    outcomes: tuple[bool, ...] = (True,)
    detect_calls: int = 0
    validated: list[str] = field(default_factory=list)

    def detect(self, document: Any) -> list[Target]:
        self.detect_calls += 1
        return [
            Target(
                kind="operation",
                location=f"$.stub.{self.rule_id}.{index}",
                identifier=f"{self.rule_id} target {index}",
            )
            for index in range(len(self.outcomes))
        ]

    def validate(self, target: Target, document: Any) -> ValidationResult:
        self.validated.append(target.location)
        index = int(target.location.rsplit(".", 1)[1])
        if self.outcomes[index]:
            return ValidationResult(passed=True)
        return ValidationResult(passed=False, message="stub failure", fix_hint="fix the stub")


class ExplodingRule(StubRule):
    def validate(self, target: Target, document: Any) -> ValidationResult:
        raise RuntimeError("rule bug")
