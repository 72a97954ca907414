"""Prerequisite gate run before any scoring."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from api_grader.document import iter_operations
from api_grader.rules import Catalog
from api_grader.rules.base import Finding, Rule

logger = logging.getLogger(__name__)

STRUCTURAL_RULE_ID = "PREREQ-STRUCT"

_QUICK_FIXES = {
    "PREREQ-001": "Set the 'openapi' field to the required version",
    "PREREQ-002": "Define at least one scheme under components.securitySchemes",
    "PREREQ-003": "Add the tenant header parameter to every write operation",
    STRUCTURAL_RULE_ID: "Complete the document skeleton: openapi, info, paths",
}


@dataclass(frozen=True, slots=True)
class PrerequisiteResult:
    """Outcome of the gate. ``passed`` is false when any failure exists."""

    passed: bool
    failures: list[Finding] = field(default_factory=list)
    required_fixes: list[str] = field(default_factory=list)
    blocked_reason: str | None = None


def check_prerequisites(document: Any, catalog: Catalog) -> PrerequisiteResult:
    """Run structural checks then every prerequisite rule.

    Failures accumulate so the caller sees every blocking issue at once.
    """
    failures: list[Finding] = []
    fixes: list[str] = []

    for message, location, fix in _structural_problems(document):
        failures.append(_structural_finding(message, location, fix))
        fixes.append(fix)

    if isinstance(document, Mapping):
        for rule in catalog.prerequisite_rules():
            rule_failures = _run_rule(rule, document)
            logger.debug("Prerequisite %s: %d failure(s)", rule.rule_id, len(rule_failures))
            for finding in rule_failures:
                failures.append(finding)
                if finding.fix_hint:
                    fixes.append(finding.fix_hint)

    if not failures:
        return PrerequisiteResult(passed=True)

    return PrerequisiteResult(
        passed=False,
        failures=failures,
        required_fixes=_dedupe(fixes),
        blocked_reason=(
            f"Failed {len(failures)} prerequisite check(s). "
            "These must be fixed before scoring can begin."
        ),
    )


def check_single_prerequisite(
    document: Mapping[str, Any], catalog: Catalog, rule_id: str
) -> PrerequisiteResult:
    """Run one prerequisite rule in isolation."""
    rule = catalog.get(rule_id)
    if rule is None or rule.severity != "prerequisite":
        raise ValueError(f"Not a prerequisite rule: {rule_id}")
    failures = _run_rule(rule, document)
    if not failures:
        return PrerequisiteResult(passed=True)
    return PrerequisiteResult(
        passed=False,
        failures=failures,
        required_fixes=_dedupe([finding.fix_hint for finding in failures if finding.fix_hint]),
        blocked_reason=f"Failed prerequisite {rule_id}",
    )


def get_prerequisite_quick_fixes(failures: list[Finding]) -> dict[str, str]:
    """Map each failing prerequisite rule id to a one-line remedy."""
    fixes: dict[str, str] = {}
    for finding in failures:
        if finding.rule_id in fixes:
            continue
        fixes[finding.rule_id] = _QUICK_FIXES.get(
            finding.rule_id, finding.fix_hint or "See rule documentation"
        )
    return fixes


def _run_rule(rule: Rule, document: Mapping[str, Any]) -> list[Finding]:
    failures: list[Finding] = []
    for target in rule.detect(document):
        result = rule.validate(target, document)
        if result.passed:
            continue
        failures.append(
            Finding(
                rule_id=rule.rule_id,
                severity="critical",
                message=f"{target.identifier}: {result.message or 'validation failed'}",
                location=target.location,
                category=rule.category,
                fix_hint=result.fix_hint,
            )
        )
    return failures


def _structural_problems(document: Any) -> list[tuple[str, str, str]]:
    if not isinstance(document, Mapping):
        return [("Document root is not a mapping", "$", "Provide an OpenAPI document object")]

    problems: list[tuple[str, str, str]] = []
    if not document.get("openapi"):
        problems.append(
            ("Missing 'openapi' version field", "$.openapi", "Add 'openapi: 3.0.3' at the root")
        )

    info = document.get("info")
    if not isinstance(info, Mapping):
        problems.append(
            ("Missing 'info' section", "$.info", "Add an 'info' section with title and version")
        )
    else:
        if not info.get("title"):
            problems.append(("Missing API title", "$.info.title", "Add 'info.title'"))
        if not info.get("version"):
            problems.append(("Missing API version", "$.info.version", "Add 'info.version'"))

    paths = document.get("paths")
    if not isinstance(paths, Mapping) or not paths:
        problems.append(("No paths defined", "$.paths", "Define at least one path"))
    elif next(iter_operations(document), None) is None:
        problems.append(
            ("No operations defined", "$.paths", "Define at least one HTTP operation")
        )
    return problems


def _structural_finding(message: str, location: str, fix: str) -> Finding:
    return Finding(
        rule_id=STRUCTURAL_RULE_ID,
        severity="critical",
        message=message,
        location=location,
        category="functionality",
        fix_hint=fix,
    )


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output
