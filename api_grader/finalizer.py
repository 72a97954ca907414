"""Weighted grade aggregation over dependency-aware rule scores.

Each category contributes ``earned / max * weight * 100``. The weighted
contributions are summed, clamped to [0, 100] and mapped onto a letter
grade. Optional excellence bonuses are added on top, still capped at 100.
Pass/fail can be re-evaluated later against a profile threshold without
touching the score.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from api_grader.coverage import RuleScore
from api_grader.prerequisites import PrerequisiteResult
from api_grader.rules.base import CATEGORIES, SEVERITY_ORDER, Finding

logger = logging.getLogger(__name__)

# Must sum to 1.0 so a perfect document lands on exactly 100.
DEFAULT_WEIGHTS: dict[str, float] = {
    "functionality": 0.30,
    "security": 0.25,
    "scalability": 0.20,
    "maintainability": 0.15,
    "excellence": 0.10,
}

# Checked top to bottom; first threshold the score reaches wins.
GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (97.0, "A+"),
    (93.0, "A"),
    (90.0, "A-"),
    (87.0, "B+"),
    (83.0, "B"),
    (80.0, "B-"),
    (77.0, "C+"),
    (73.0, "C"),
    (70.0, "C-"),
    (67.0, "D+"),
    (63.0, "D"),
    (60.0, "D-"),
)
FAILING_GRADE = "F"

DEFAULT_PASS_THRESHOLD = 60.0
EXCELLENCE_THRESHOLD = 90.0
STANDARD_PROFILE = "standard"
PROFILE_PASS_THRESHOLDS: dict[str, float] = {
    "public": 80.0,
    "internal": 65.0,
    "prototype": 50.0,
}

# Rules whose findings failed a document outright under the old binary scorer.
LEGACY_AUTO_FAIL_RULE_IDS = frozenset(
    {"PREREQ-001", "PREREQ-002", "PREREQ-003", "NAME-NAMESPACE", "PAG-NO-OFFSET"}
)

# Added on top of the weighted score, capped at 100.
SEMVER_BONUS = 2.0
OAUTH2_BONUS = 3.0
_SEMVER = re.compile(r"^\d+\.\d+\.\d+$")

_WEIGHT_SUM_TOLERANCE = 1e-9


@dataclass(frozen=True, slots=True)
class CategoryBreakdown:
    """Point totals and weighted contribution of one category."""

    category: str
    weight: float
    max_points: float
    earned_points: float
    percentage: float
    weighted_contribution: float


@dataclass(frozen=True, slots=True)
class GradeResult:
    """Final grade for one document. Never mutated once built."""

    score: float
    letter_grade: str
    passed: bool
    excellence: bool
    breakdown: list[CategoryBreakdown]
    findings: list[Finding]
    total_findings: int
    critical_findings: int
    major_findings: int
    minor_findings: int
    blocked_by_prerequisites: bool = False
    blocked_reason: str | None = None
    required_fixes: list[str] = field(default_factory=list)
    profile: str = STANDARD_PROFILE
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    bonus_points: float = 0.0


@dataclass(frozen=True, slots=True)
class GradeComparison:
    score_delta: float
    grade_delta: str
    fixed_findings: list[Finding]
    new_findings: list[Finding]
    improved: bool
    message: str


def calculate_final_grade(
    scores: Mapping[str, RuleScore],
    weights: Mapping[str, float] | None = None,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
) -> GradeResult:
    """Reduce rule scores to a weighted grade.

    Categories without points get a zero percentage. Scores in unknown
    categories are logged and left out of the totals.
    """
    _check_threshold(pass_threshold)
    active_weights = resolve_weights(weights)

    earned = {category: 0.0 for category in CATEGORIES}
    maximum = {category: 0.0 for category in CATEGORIES}
    findings: list[Finding] = []
    for score in scores.values():
        findings.extend(score.findings)
        if score.category not in earned:
            logger.warning("Unknown category: %s", score.category)
            continue
        earned[score.category] += score.points
        maximum[score.category] += score.max_points

    breakdown = [
        _category_breakdown(category, active_weights[category], earned[category], maximum[category])
        for category in CATEGORIES
    ]
    total = sum(item.weighted_contribution for item in breakdown)
    score_value = round(_clamp(total, lower=0.0, upper=100.0), 2)

    return _build_grade(
        score=score_value,
        breakdown=breakdown,
        findings=findings,
        pass_threshold=pass_threshold,
    )


def blocked_grade(
    prerequisites: PrerequisiteResult,
    weights: Mapping[str, float] | None = None,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
) -> GradeResult:
    """Build the zero grade returned when the prerequisite gate fails."""
    _check_threshold(pass_threshold)
    active_weights = resolve_weights(weights)
    breakdown = [
        _category_breakdown(category, active_weights[category], 0.0, 0.0)
        for category in CATEGORIES
    ]
    findings = sort_findings(prerequisites.failures)
    critical, major, minor = _count_findings(findings)
    return GradeResult(
        score=0.0,
        letter_grade=FAILING_GRADE,
        passed=False,
        excellence=False,
        breakdown=breakdown,
        findings=findings,
        total_findings=len(findings),
        critical_findings=critical,
        major_findings=major,
        minor_findings=minor,
        blocked_by_prerequisites=True,
        blocked_reason=prerequisites.blocked_reason,
        required_fixes=list(prerequisites.required_fixes),
        pass_threshold=pass_threshold,
    )


def get_letter_grade(score: float) -> str:
    for threshold, letter in GRADE_THRESHOLDS:
        if score >= threshold:
            return letter
    return FAILING_GRADE


def apply_profile(grade: GradeResult, profile: str) -> GradeResult:
    """Re-evaluate ``passed`` against a profile threshold.

    Score and letter grade are left untouched; a blocked grade stays failed.
    """
    name = profile.lower()
    if name == STANDARD_PROFILE:
        threshold = grade.pass_threshold
    elif name in PROFILE_PASS_THRESHOLDS:
        threshold = PROFILE_PASS_THRESHOLDS[name]
    else:
        choices = ", ".join(sorted([STANDARD_PROFILE, *PROFILE_PASS_THRESHOLDS]))
        raise ValueError(f"Unknown profile '{profile}'. Expected one of: {choices}")

    passed = not grade.blocked_by_prerequisites and grade.score >= threshold
    return replace(grade, passed=passed, profile=name, pass_threshold=threshold)


def apply_excellence_bonuses(grade: GradeResult, document: Any) -> GradeResult:
    """Add bonus points for a semantic ``info.version`` and an OAuth2 scheme.

    The score is capped at 100 and the letter grade, excellence and pass
    flags are recomputed. A blocked grade is returned unchanged.
    """
    if grade.blocked_by_prerequisites:
        return grade

    bonus = 0.0
    if _has_semver_version(document):
        bonus += SEMVER_BONUS
    if _has_oauth2_scheme(document):
        bonus += OAUTH2_BONUS
    if not bonus:
        return grade

    score = round(min(100.0, grade.score + bonus), 2)
    logger.debug("Excellence bonus of %.1f point(s) applied", bonus)
    return replace(
        grade,
        score=score,
        letter_grade=get_letter_grade(score),
        passed=score >= grade.pass_threshold,
        excellence=score >= EXCELLENCE_THRESHOLD,
        bonus_points=grade.bonus_points + bonus,
    )


def compare_grades(baseline: GradeResult, candidate: GradeResult) -> GradeComparison:
    """Diff two grades; findings are matched on rule id and location."""
    baseline_keys = {_finding_key(finding) for finding in baseline.findings}
    candidate_keys = {_finding_key(finding) for finding in candidate.findings}
    fixed = [f for f in baseline.findings if _finding_key(f) not in candidate_keys]
    new = [f for f in candidate.findings if _finding_key(f) not in baseline_keys]

    score_delta = round(candidate.score - baseline.score, 2)
    grade_delta = f"{baseline.letter_grade} → {candidate.letter_grade}"
    if score_delta > 0:
        message = f"Score improved by {score_delta:.2f} points ({grade_delta})"
    elif score_delta < 0:
        message = f"Score dropped by {abs(score_delta):.2f} points ({grade_delta})"
    else:
        message = f"Score unchanged ({grade_delta})"
    message += f"; {len(fixed)} fixed, {len(new)} new finding(s)"

    return GradeComparison(
        score_delta=score_delta,
        grade_delta=grade_delta,
        fixed_findings=fixed,
        new_findings=new,
        improved=score_delta > 0,
        message=message,
    )


def would_legacy_auto_fail(grade: GradeResult) -> bool:
    return any(finding.rule_id in LEGACY_AUTO_FAIL_RULE_IDS for finding in grade.findings)


def resolve_weights(overrides: Mapping[str, float] | None) -> dict[str, float]:
    """Merge weight overrides over the defaults."""
    weights = dict(DEFAULT_WEIGHTS)
    if overrides:
        unknown = [category for category in overrides if category not in DEFAULT_WEIGHTS]
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"Unknown weight categories: {joined}")
        for category, value in overrides.items():
            if value < 0:
                raise ValueError(
                    f"Category weight for '{category}' must be non-negative, got {value}."
                )
            weights[category] = float(value)

    total = sum(weights.values())
    if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
        logger.warning("Category weights sum to %.4f, not 1.0", total)
    return weights


def sort_findings(findings: list[Finding]) -> list[Finding]:
    """Sort critical first, then by category, rule id and location."""
    return sorted(
        findings,
        key=lambda finding: (
            SEVERITY_ORDER.get(finding.severity, SEVERITY_ORDER["info"]),
            finding.category or "",
            finding.rule_id,
            finding.location,
        ),
    )


def _build_grade(
    *,
    score: float,
    breakdown: list[CategoryBreakdown],
    findings: list[Finding],
    pass_threshold: float,
) -> GradeResult:
    ordered = sort_findings(findings)
    critical, major, minor = _count_findings(ordered)
    return GradeResult(
        score=score,
        letter_grade=get_letter_grade(score),
        passed=score >= pass_threshold,
        excellence=score >= EXCELLENCE_THRESHOLD,
        breakdown=breakdown,
        findings=ordered,
        total_findings=len(ordered),
        critical_findings=critical,
        major_findings=major,
        minor_findings=minor,
        pass_threshold=pass_threshold,
    )


def _category_breakdown(
    category: str, weight: float, earned: float, maximum: float
) -> CategoryBreakdown:
    percentage = earned / maximum if maximum > 0 else 0.0
    return CategoryBreakdown(
        category=category,
        weight=weight,
        max_points=maximum,
        earned_points=earned,
        percentage=percentage,
        weighted_contribution=percentage * weight * 100.0,
    )


def _count_findings(findings: list[Finding]) -> tuple[int, int, int]:
    critical = sum(1 for finding in findings if finding.severity == "critical")
    major = sum(1 for finding in findings if finding.severity == "major")
    return critical, major, len(findings) - critical - major


def _finding_key(finding: Finding) -> tuple[str, str]:
    return (finding.rule_id, finding.location)


def _has_semver_version(document: Any) -> bool:
    if not isinstance(document, Mapping):
        return False
    info = document.get("info")
    version = info.get("version") if isinstance(info, Mapping) else None
    return isinstance(version, str) and _SEMVER.match(version) is not None


def _has_oauth2_scheme(document: Any) -> bool:
    if not isinstance(document, Mapping):
        return False
    components = document.get("components")
    schemes = components.get("securitySchemes") if isinstance(components, Mapping) else None
    if not isinstance(schemes, Mapping):
        return False
    if schemes.get("OAuth2"):
        return True
    return any(
        isinstance(scheme, Mapping) and str(scheme.get("type", "")).lower() == "oauth2"
        for scheme in schemes.values()
    )


def _check_threshold(value: float) -> None:
    if not 0.0 <= value <= 100.0:
        raise ValueError(f"pass_threshold must be between 0 and 100, got {value}")


def _clamp(value: float, *, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
