"""Coverage-based scoring of individual rules."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from api_grader.document import Document
from api_grader.rules import Catalog
from api_grader.rules.base import CATEGORIES, Finding, Rule, finding_severity

logger = logging.getLogger(__name__)

NO_TARGET_FULL_CREDIT = "full_credit"
NO_TARGET_ZERO = "zero"
NO_TARGET_POLICIES = (NO_TARGET_FULL_CREDIT, NO_TARGET_ZERO)
# A rule with nothing to check imposes no penalty.
DEFAULT_NO_TARGET_POLICY = NO_TARGET_FULL_CREDIT


@dataclass(slots=True)
class RuleScore:
    """Per-rule reduction of a detect and validate cycle."""

    rule_id: str
    category: str
    severity: str
    applicable: bool
    coverage: float
    points: float
    max_points: float
    targets_checked: int
    targets_passed: int
    findings: list[Finding] = field(default_factory=list)
    description: str = ""


@dataclass(frozen=True, slots=True)
class CategoryScore:
    """Raw point totals for one category."""

    category: str
    earned: float
    maximum: float
    percentage: float
    rule_count: int
    applicable_rules: int
    perfect_rules: int


@dataclass(frozen=True, slots=True)
class ImprovementOpportunity:
    """A rule with points still on the table."""

    rule_id: str
    category: str
    description: str
    coverage: float
    potential_points: float
    failed_targets: int
    effort: str


@dataclass(frozen=True, slots=True)
class CoverageStats:
    total_rules: int
    applicable_rules: int
    perfect_rules: int
    partial_rules: int
    failed_rules: int
    average_coverage: float
    worst_coverage: tuple[str, float] | None
    best_partial_coverage: tuple[str, float] | None


def score_rule(
    rule: Rule,
    document: Document,
    *,
    no_target_policy: str = DEFAULT_NO_TARGET_POLICY,
) -> RuleScore:
    """Score a rule by the fraction of its targets that pass validation.

    Every target is validated; a failing target does not stop evaluation of
    the rest. Exceptions raised by the rule propagate to the caller.
    """
    _check_policy(no_target_policy)
    targets = rule.detect(document)
    if not targets:
        points = rule.max_points if no_target_policy == NO_TARGET_FULL_CREDIT else 0.0
        return RuleScore(
            rule_id=rule.rule_id,
            category=rule.category,
            severity=rule.severity,
            applicable=False,
            coverage=1.0,
            points=points,
            max_points=rule.max_points,
            targets_checked=0,
            targets_passed=0,
            description=rule.description,
        )

    severity = finding_severity(rule.severity)
    findings: list[Finding] = []
    passed = 0
    for target in targets:
        result = rule.validate(target, document)
        if result.passed:
            passed += 1
            continue
        findings.append(
            Finding(
                rule_id=rule.rule_id,
                severity=severity,
                message=f"{target.identifier}: {result.message or 'validation failed'}",
                location=target.location,
                category=rule.category,
                fix_hint=result.fix_hint,
            )
        )

    coverage = passed / len(targets)
    return RuleScore(
        rule_id=rule.rule_id,
        category=rule.category,
        severity=rule.severity,
        applicable=True,
        coverage=coverage,
        points=coverage * rule.max_points,
        max_points=rule.max_points,
        targets_checked=len(targets),
        targets_passed=passed,
        findings=findings,
        description=rule.description,
    )


def score_all_rules(
    document: Document,
    catalog: Catalog,
    rule_ids: Iterable[str] | None = None,
    *,
    no_target_policy: str = DEFAULT_NO_TARGET_POLICY,
) -> dict[str, RuleScore]:
    """Score rules independently, ignoring dependencies.

    Prerequisite rules are never scored here.
    """
    if rule_ids is None:
        rules = catalog.scored_rules()
    else:
        rules = []
        for rule_id in rule_ids:
            rule = catalog.get(rule_id)
            if rule is None:
                logger.warning("Unknown rule id: %s", rule_id)
                continue
            rules.append(rule)

    scores: dict[str, RuleScore] = {}
    for rule in rules:
        if rule.severity == "prerequisite":
            continue
        scores[rule.rule_id] = score_rule(rule, document, no_target_policy=no_target_policy)
    return scores


def calculate_category_scores(scores: Mapping[str, RuleScore]) -> dict[str, CategoryScore]:
    """Total earned and maximum points per category."""
    totals: dict[str, list[RuleScore]] = {category: [] for category in CATEGORIES}
    for score in scores.values():
        if score.category not in totals:
            logger.warning("Unknown category: %s", score.category)
            continue
        totals[score.category].append(score)

    result: dict[str, CategoryScore] = {}
    for category, members in totals.items():
        earned = sum(score.points for score in members)
        maximum = sum(score.max_points for score in members)
        result[category] = CategoryScore(
            category=category,
            earned=earned,
            maximum=maximum,
            percentage=(earned / maximum * 100.0) if maximum > 0 else 0.0,
            rule_count=len(members),
            applicable_rules=sum(1 for score in members if score.applicable),
            perfect_rules=sum(1 for score in members if score.applicable and score.coverage >= 1.0),
        )
    return result


def get_improvement_opportunities(
    scores: Mapping[str, RuleScore], catalog: Catalog
) -> list[ImprovementOpportunity]:
    """List applicable rules below full coverage, largest gain first."""
    opportunities: list[ImprovementOpportunity] = []
    for score in scores.values():
        if not score.applicable or score.coverage >= 1.0:
            continue
        rule = catalog.get(score.rule_id)
        opportunities.append(
            ImprovementOpportunity(
                rule_id=score.rule_id,
                category=score.category,
                description=score.description,
                coverage=score.coverage,
                potential_points=score.max_points - score.points,
                failed_targets=score.targets_checked - score.targets_passed,
                effort=rule.effort if rule is not None else "medium",
            )
        )
    opportunities.sort(key=lambda item: (-item.potential_points, item.rule_id))
    return opportunities


def calculate_coverage_stats(scores: Mapping[str, RuleScore]) -> CoverageStats:
    applicable = [score for score in scores.values() if score.applicable]
    perfect = [score for score in applicable if score.coverage >= 1.0]
    failed = [score for score in applicable if score.coverage == 0.0]
    partial = [score for score in applicable if 0.0 < score.coverage < 1.0]

    average = sum(score.coverage for score in applicable) / len(applicable) if applicable else 1.0
    worst = min(applicable, key=lambda score: (score.coverage, score.rule_id), default=None)
    best_partial = max(partial, key=lambda score: (score.coverage, score.rule_id), default=None)
    return CoverageStats(
        total_rules=len(scores),
        applicable_rules=len(applicable),
        perfect_rules=len(perfect),
        partial_rules=len(partial),
        failed_rules=len(failed),
        average_coverage=average,
        worst_coverage=(worst.rule_id, worst.coverage) if worst is not None else None,
        best_partial_coverage=(
            (best_partial.rule_id, best_partial.coverage) if best_partial is not None else None
        ),
    )


def _check_policy(policy: str) -> None:
    if policy not in NO_TARGET_POLICIES:
        choices = ", ".join(NO_TARGET_POLICIES)
        raise ValueError(f"no_target_policy must be one of: {choices}")
