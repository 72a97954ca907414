"""Dependency-aware rule scoring with cascading skips."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from api_grader.coverage import DEFAULT_NO_TARGET_POLICY, RuleScore, score_rule
from api_grader.document import Document
from api_grader.rules import Catalog
from api_grader.rules.base import Finding, Rule

logger = logging.getLogger(__name__)

SKIP_REASON = "Failed dependencies"


@dataclass(slots=True)
class DependencyGraph:
    """Rules keyed by id and the ids each one depends on."""

    nodes: dict[str, Rule] = field(default_factory=dict)
    edges: dict[str, set[str]] = field(default_factory=dict)


@dataclass(slots=True)
class DependencyAwareScore(RuleScore):
    skipped: bool = False
    skip_reason: str | None = None
    failed_dependencies: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DependencyChainAnalysis:
    """Root causes and the rules skipped because of them."""

    root_causes: list[str]
    cascading_failures: dict[str, list[str]]
    affected_rules: int


@dataclass(frozen=True, slots=True)
class DependencyValidation:
    valid: bool
    issues: list[str]


def build_dependency_graph(rules: Iterable[Rule]) -> DependencyGraph:
    """Build one node and one edge set per rule."""
    graph = DependencyGraph()
    for rule in rules:
        graph.nodes[rule.rule_id] = rule
        graph.edges[rule.rule_id] = set(rule.depends_on)
    return graph


def topological_order(graph: DependencyGraph) -> list[str]:
    """Order rules so every dependency precedes its dependents.

    Depth-first postorder. An edge back onto the current stack is logged
    and treated as satisfied, so every node is emitted exactly once even
    when the graph has cycles. Dependencies outside the graph are ignored.
    """
    order: list[str] = []
    visited: set[str] = set()
    on_stack: set[str] = set()

    def visit(node: str) -> None:
        on_stack.add(node)
        for dependency in sorted(graph.edges.get(node, ())):
            if dependency not in graph.nodes or dependency in visited:
                continue
            if dependency in on_stack:
                logger.warning(
                    "Dependency cycle detected: %s -> %s; treating edge as satisfied",
                    node,
                    dependency,
                )
                continue
            visit(dependency)
        on_stack.discard(node)
        visited.add(node)
        order.append(node)

    for node in graph.nodes:
        if node not in visited:
            visit(node)
    return order


def score_with_dependencies(
    document: Document,
    catalog: Catalog,
    rule_ids: Iterable[str] | None = None,
    *,
    no_target_policy: str = DEFAULT_NO_TARGET_POLICY,
) -> dict[str, DependencyAwareScore]:
    """Score rules in dependency order, skipping rules whose dependencies failed.

    Without ``rule_ids`` every non-prerequisite rule in the catalog is scored.
    Any shortfall in an applicable rule's coverage marks it failed, and a
    skipped rule counts as failed for its own dependents.
    """
    rules = _select_rules(catalog, rule_ids)
    order = topological_order(build_dependency_graph(rules))
    by_id = {rule.rule_id: rule for rule in rules}

    failed: set[str] = set()
    scores: dict[str, DependencyAwareScore] = {}
    for rule_id in order:
        rule = by_id[rule_id]
        failed_dependencies = [dep for dep in rule.depends_on if dep in failed]
        if failed_dependencies:
            logger.debug("Skipping %s: failed dependencies %s", rule_id, failed_dependencies)
            scores[rule_id] = _skipped_score(rule, failed_dependencies)
            failed.add(rule_id)
            continue

        base = score_rule(rule, document, no_target_policy=no_target_policy)
        scores[rule_id] = DependencyAwareScore(
            rule_id=base.rule_id,
            category=base.category,
            severity=base.severity,
            applicable=base.applicable,
            coverage=base.coverage,
            points=base.points,
            max_points=base.max_points,
            targets_checked=base.targets_checked,
            targets_passed=base.targets_passed,
            findings=base.findings,
            description=base.description,
        )
        if base.applicable and base.coverage < 1.0:
            failed.add(rule_id)
    return scores


def analyze_dependency_chains(
    scores: Mapping[str, DependencyAwareScore],
) -> DependencyChainAnalysis:
    """Separate root-cause failures from the skips they caused."""
    root_causes: list[str] = []
    cascading: dict[str, list[str]] = {}
    affected: set[str] = set()
    for rule_id, score in scores.items():
        if score.skipped:
            affected.add(rule_id)
            for cause in score.failed_dependencies:
                cascading.setdefault(cause, []).append(rule_id)
        elif score.applicable and score.coverage < 1.0:
            root_causes.append(rule_id)
    return DependencyChainAnalysis(
        root_causes=root_causes,
        cascading_failures=cascading,
        affected_rules=len(affected),
    )


def get_unblocked_rules(rule_id: str, scores: Mapping[str, DependencyAwareScore]) -> list[str]:
    """Return skipped rules that fixing ``rule_id`` alone would unblock.

    This is a projection over the given snapshot, not a re-evaluation.
    """
    unblocked: list[str] = []
    for dependent_id, score in scores.items():
        if not score.skipped or rule_id not in score.failed_dependencies:
            continue
        others = [dep for dep in score.failed_dependencies if dep != rule_id]
        if all(not _is_failing(scores.get(dep)) for dep in others):
            unblocked.append(dependent_id)
    return unblocked


def get_evaluation_order(catalog: Catalog, rule_ids: Iterable[str] | None = None) -> list[str]:
    """Return the order scoring would visit rules in."""
    return topological_order(build_dependency_graph(_select_rules(catalog, rule_ids)))


def find_dependency_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Return each distinct cycle, rotated to start at its smallest id."""
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()
    visited: set[str] = set()

    def visit(node: str, stack: list[str]) -> None:
        stack.append(node)
        for dependency in sorted(graph.edges.get(node, ())):
            if dependency not in graph.nodes:
                continue
            if dependency in stack:
                cycle = _normalize_cycle(stack[stack.index(dependency) :])
                if tuple(cycle) not in seen:
                    seen.add(tuple(cycle))
                    cycles.append(cycle)
                continue
            if dependency not in visited:
                visit(dependency, stack)
        stack.pop()
        visited.add(node)

    for node in graph.nodes:
        if node not in visited:
            visit(node, [])
    return cycles


def validate_dependencies(catalog: Catalog) -> DependencyValidation:
    """Report dangling dependency ids and cycles in a catalog."""
    issues: list[str] = []
    for rule in catalog:
        for dependency in rule.depends_on:
            if dependency not in catalog:
                issues.append(f"{rule.rule_id} depends on unknown rule {dependency}")
    for cycle in find_dependency_cycles(build_dependency_graph(catalog)):
        issues.append(f"Dependency cycle: {' -> '.join([*cycle, cycle[0]])}")
    return DependencyValidation(valid=not issues, issues=issues)


def _select_rules(catalog: Catalog, rule_ids: Iterable[str] | None) -> list[Rule]:
    if rule_ids is None:
        return catalog.scored_rules()
    rules: list[Rule] = []
    selected: set[str] = set()
    for rule_id in rule_ids:
        rule = catalog.get(rule_id)
        if rule is None:
            logger.warning("Unknown rule id: %s", rule_id)
            continue
        if rule_id in selected:
            continue
        selected.add(rule_id)
        rules.append(rule)
    return rules


def _skipped_score(rule: Rule, failed_dependencies: list[str]) -> DependencyAwareScore:
    return DependencyAwareScore(
        rule_id=rule.rule_id,
        category=rule.category,
        severity=rule.severity,
        applicable=False,
        coverage=0.0,
        points=0.0,
        max_points=rule.max_points,
        targets_checked=0,
        targets_passed=0,
        findings=[
            Finding(
                rule_id=rule.rule_id,
                severity="info",
                message=f"Skipped due to failed dependencies: {', '.join(failed_dependencies)}",
                location="$",
                category=rule.category,
            )
        ],
        description=rule.description,
        skipped=True,
        skip_reason=SKIP_REASON,
        failed_dependencies=failed_dependencies,
    )


def _is_failing(score: DependencyAwareScore | None) -> bool:
    if score is None:
        return False
    return score.skipped or (score.applicable and score.coverage < 1.0)


def _normalize_cycle(cycle: list[str]) -> list[str]:
    start = cycle.index(min(cycle))
    return cycle[start:] + cycle[:start]
