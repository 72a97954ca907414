"""Output rendering."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import click

from api_grader import __version__
from api_grader.coverage import RuleScore, calculate_category_scores, calculate_coverage_stats
from api_grader.dependencies import (
    DependencyAwareScore,
    DependencyGraph,
    analyze_dependency_chains,
)
from api_grader.finalizer import CategoryBreakdown, GradeComparison, GradeResult
from api_grader.prerequisites import PrerequisiteResult, get_prerequisite_quick_fixes
from api_grader.rules import Catalog
from api_grader.rules.base import Finding
from api_grader.scoring import GradingRun

_SEVERITY_HEADINGS = (
    ("critical", "Critical", "red"),
    ("major", "Major", "yellow"),
    ("minor", "Minor", "cyan"),
    ("info", "Info", None),
)


def render_human(run: GradingRun, *, findings_limit: int = 10) -> str:
    """Render a compact colorized summary."""
    grade = run.grade
    color = _grade_color(grade)
    lines: list[str] = [
        click.style(
            f"API grade: {grade.score:.2f}/100 ({grade.letter_grade})",
            fg=color,
            bold=True,
        ),
        f"Result: {'PASS' if grade.passed else 'FAIL'} "
        f"(profile {grade.profile}, threshold {grade.pass_threshold:g})",
    ]
    if grade.excellence:
        lines.append(click.style("Excellence: reference-quality API", fg="green"))
    if grade.bonus_points:
        lines.append(f"Excellence bonus: +{grade.bonus_points:g} points")

    if grade.blocked_by_prerequisites:
        lines.append(click.style(f"Blocked: {grade.blocked_reason}", fg="red", bold=True))
        if grade.required_fixes:
            lines.append(click.style("Required fixes:", bold=True))
            for index, fix in enumerate(grade.required_fixes, start=1):
                lines.append(f"{index}. {fix}")

    lines.append(click.style("Categories:", bold=True))
    lines.extend(f"- {_format_category(item)}" for item in grade.breakdown)

    if grade.findings:
        lines.append(
            click.style(
                f"Findings: {grade.total_findings} "
                f"({grade.critical_findings} critical, {grade.major_findings} major, "
                f"{grade.minor_findings} minor)",
                bold=True,
            )
        )
        for severity, heading, heading_color in _SEVERITY_HEADINGS:
            group = [finding for finding in grade.findings if finding.severity == severity]
            if not group:
                continue
            lines.append(click.style(f"{heading}:", fg=heading_color, bold=True))
            for finding in group[:findings_limit]:
                lines.append(f"  [{finding.rule_id}] {finding.message}")
                if finding.fix_hint:
                    lines.append(f"     fix: {finding.fix_hint}")
            if len(group) > findings_limit:
                lines.append(f"  ... {len(group) - findings_limit} more")
    return "\n".join(lines)


def render_json(run: GradingRun, *, input_source: str | None = None) -> str:
    """Render stable JSON output for CI and automation."""
    payload = build_json_payload(run, input_source=input_source)
    return json.dumps(payload, sort_keys=True)


def build_json_payload(run: GradingRun, *, input_source: str | None = None) -> dict[str, Any]:
    """Build stable JSON payload for CI and automation."""
    grade = run.grade
    meta: dict[str, Any] = {
        "generated_at": datetime.now(tz=UTC)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "input_source": input_source if input_source is not None else run.source,
        "version": __version__,
    }
    return {
        "score": grade.score,
        "letter_grade": grade.letter_grade,
        "passed": grade.passed,
        "excellence": grade.excellence,
        "profile": grade.profile,
        "pass_threshold": grade.pass_threshold,
        "bonus_points": grade.bonus_points,
        "blocked_by_prerequisites": grade.blocked_by_prerequisites,
        "blocked_reason": grade.blocked_reason,
        "required_fixes": list(grade.required_fixes),
        "breakdown": [_serialize_category(item) for item in grade.breakdown],
        "findings": [_serialize_finding(item) for item in grade.findings],
        "summary": {
            "total": grade.total_findings,
            "critical": grade.critical_findings,
            "major": grade.major_findings,
            "minor": grade.minor_findings,
        },
        "rules": [_serialize_score(item) for item in run.scores.values()],
        "evaluation_order": list(run.evaluation_order),
        "meta": meta,
    }


def render_dependency_report(
    scores: Mapping[str, DependencyAwareScore], catalog: Catalog | None = None
) -> str:
    """Render root causes, cascades and evaluation order."""
    analysis = analyze_dependency_chains(scores)
    lines: list[str] = [click.style("Dependency analysis", bold=True)]

    lines.append(f"Root causes ({len(analysis.root_causes)}):")
    for rule_id in analysis.root_causes:
        score = scores[rule_id]
        lines.append(
            f"- {rule_id}{_describe(rule_id, catalog)}: coverage {score.coverage * 100:.1f}%"
        )
    if not analysis.root_causes:
        lines.append("- none")

    lines.append(f"Cascading failures ({analysis.affected_rules} rule(s) skipped):")
    for cause, affected in analysis.cascading_failures.items():
        lines.append(f"- {cause} blocks {', '.join(affected)}")
    if not analysis.cascading_failures:
        lines.append("- none")

    lines.append("Evaluation order:")
    for index, rule_id in enumerate(scores, start=1):
        marker = " (skipped)" if scores[rule_id].skipped else ""
        lines.append(f"{index}. {rule_id}{marker}")
    return "\n".join(lines)


def render_dependency_graph(graph: DependencyGraph, order: list[str]) -> str:
    """Render each rule with the rules it waits on."""
    lines: list[str] = [click.style("Dependency graph", bold=True)]
    for rule_id in order:
        dependencies = sorted(graph.edges.get(rule_id, ()))
        if not dependencies:
            lines.append(f"{rule_id}")
            continue
        labels = [dep if dep in graph.nodes else f"{dep} (not scored)" for dep in dependencies]
        lines.append(f"{rule_id} <- {', '.join(labels)}")
    return "\n".join(lines)


def render_coverage_report(scores: Mapping[str, RuleScore]) -> str:
    """Render coverage statistics per category and per rule."""
    stats = calculate_coverage_stats(scores)
    lines: list[str] = [
        click.style("Coverage report", bold=True),
        f"Rules: {stats.total_rules} total, {stats.applicable_rules} applicable, "
        f"{stats.perfect_rules} perfect, {stats.partial_rules} partial, "
        f"{stats.failed_rules} failed",
        f"Average coverage: {stats.average_coverage * 100:.1f}%",
    ]
    if stats.worst_coverage is not None:
        rule_id, coverage = stats.worst_coverage
        lines.append(f"Worst coverage: {rule_id} ({coverage * 100:.1f}%)")

    lines.append(click.style("Categories:", bold=True))
    for category in calculate_category_scores(scores).values():
        lines.append(
            f"- {category.category}: {category.earned:.1f}/{category.maximum:.1f} "
            f"({category.percentage:.1f}%), {category.perfect_rules}/"
            f"{category.applicable_rules} applicable rules perfect"
        )

    lines.append(click.style("Rules:", bold=True))
    for score in scores.values():
        if isinstance(score, DependencyAwareScore) and score.skipped:
            status = "skipped"
        elif not score.applicable:
            status = "n/a"
        else:
            status = f"{score.targets_passed}/{score.targets_checked} targets"
        lines.append(
            f"- {score.rule_id}: {score.coverage * 100:.1f}% "
            f"({score.points:.1f}/{score.max_points:.1f} pts, {status})"
        )
    return "\n".join(lines)


def summarize_prerequisite_failures(result: PrerequisiteResult, catalog: Catalog) -> str:
    """Summarize gate failures grouped by rule with a quick fix each."""
    if result.passed:
        return "All prerequisites passed"
    counts: dict[str, int] = {}
    for finding in result.failures:
        counts[finding.rule_id] = counts.get(finding.rule_id, 0) + 1

    lines = [click.style(result.blocked_reason or "Prerequisites failed", fg="red", bold=True)]
    quick_fixes = get_prerequisite_quick_fixes(result.failures)
    for rule_id, count in counts.items():
        lines.append(f"- {rule_id}{_describe(rule_id, catalog)}: {count} failure(s)")
        lines.append(f"  quick fix: {quick_fixes[rule_id]}")
    return "\n".join(lines)


def render_comparison(comparison: GradeComparison) -> str:
    color = "green" if comparison.improved else ("red" if comparison.score_delta < 0 else None)
    lines: list[str] = [click.style(comparison.message, fg=color, bold=True)]
    if comparison.fixed_findings:
        lines.append(click.style("Fixed:", bold=True))
        lines.extend(f"- [{item.rule_id}] {item.message}" for item in comparison.fixed_findings)
    if comparison.new_findings:
        lines.append(click.style("New:", bold=True))
        lines.extend(f"- [{item.rule_id}] {item.message}" for item in comparison.new_findings)
    return "\n".join(lines)


def _format_category(item: CategoryBreakdown) -> str:
    return (
        f"{item.category}: {item.earned_points:.1f}/{item.max_points:.1f} "
        f"({item.percentage * 100:.1f}%)"
    )


def _serialize_category(item: CategoryBreakdown) -> dict[str, Any]:
    return {
        "category": item.category,
        "weight": item.weight,
        "max_points": item.max_points,
        "earned_points": item.earned_points,
        "percentage": item.percentage,
        "weighted_contribution": item.weighted_contribution,
    }


def _serialize_finding(finding: Finding) -> dict[str, Any]:
    return {
        "rule_id": finding.rule_id,
        "severity": finding.severity,
        "category": finding.category,
        "message": finding.message,
        "location": finding.location,
        "fix_hint": finding.fix_hint,
    }


def _serialize_score(score: DependencyAwareScore) -> dict[str, Any]:
    return {
        "rule_id": score.rule_id,
        "category": score.category,
        "severity": score.severity,
        "applicable": score.applicable,
        "coverage": score.coverage,
        "points": score.points,
        "max_points": score.max_points,
        "targets_checked": score.targets_checked,
        "targets_passed": score.targets_passed,
        "skipped": score.skipped,
        "skip_reason": score.skip_reason,
        "failed_dependencies": list(score.failed_dependencies),
    }


def _describe(rule_id: str, catalog: Catalog | None) -> str:
    rule = catalog.get(rule_id) if catalog is not None else None
    return f" ({rule.description})" if rule is not None else ""


def _grade_color(grade: GradeResult) -> str:
    if not grade.passed:
        return "red"
    if grade.excellence:
        return "green"
    return "yellow"
