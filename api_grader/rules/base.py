"""Base rule protocol, target and finding models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from api_grader.document import Document

Category = Literal["security", "functionality", "scalability", "maintainability", "excellence"]
RuleSeverity = Literal["prerequisite", "critical", "major", "minor"]
FindingSeverity = Literal["critical", "major", "minor", "info"]
TargetKind = Literal["path", "operation", "schema", "parameter", "response", "security"]

CATEGORIES: tuple[Category, ...] = (
    "functionality",
    "security",
    "scalability",
    "maintainability",
    "excellence",
)
SEVERITY_ORDER: dict[str, int] = {"critical": 0, "major": 1, "minor": 2, "info": 3}


@dataclass(frozen=True, slots=True)
class Target:
    """One concrete document location a rule checks."""

    kind: TargetKind
    location: str
    identifier: str
    method: str | None = None
    path: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating a single target."""

    passed: bool
    message: str | None = None
    fix_hint: str | None = None
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True, slots=True)
class Finding:
    """A single issue reported against the document."""

    rule_id: str
    severity: FindingSeverity
    message: str
    location: str
    category: str | None = None
    fix_hint: str | None = None


class Rule(Protocol):
    """Protocol for catalog rules."""

    rule_id: str
    category: Category
    severity: RuleSeverity
    max_points: float
    depends_on: tuple[str, ...]
    description: str
    effort: str

    def detect(self, document: Document) -> list[Target]:
        """Enumerate the targets this rule governs."""

    def validate(self, target: Target, document: Document) -> ValidationResult:
        """Judge one target."""


def finding_severity(rule_severity: str) -> FindingSeverity:
    """Map a rule severity onto the finding severity scale."""
    if rule_severity in {"prerequisite", "critical"}:
        return "critical"
    if rule_severity == "major":
        return "major"
    if rule_severity == "minor":
        return "minor"
    return "info"
