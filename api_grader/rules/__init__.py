"""Rules package."""

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from api_grader.config import PrerequisiteConfig
from api_grader.rules.base import Rule
from api_grader.rules.excellence import ErrorExamplesRule
from api_grader.rules.functionality import ErrorResponsesRule, SuccessResponseRule
from api_grader.rules.maintainability import (
    KebabCasePathsRule,
    OperationDocumentationRule,
    ResponseExamplesRule,
)
from api_grader.rules.prerequisites import (
    AuthenticationDefinedRule,
    OpenApiVersionRule,
    TenantHeaderOnWritesRule,
)
from api_grader.rules.scalability import KeysetPaginationRule, RateLimitResponseRule
from api_grader.rules.security import (
    OperationSecurityRule,
    RequestBodySchemaRule,
    TenantHeaderOnReadsRule,
)


@dataclass(frozen=True, slots=True)
class RuleInfo:
    """Rule metadata for listing and selection."""

    rule_id: str
    name: str
    description: str
    category: str
    severity: str
    max_points: float
    depends_on: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class _RuleSpec:
    rule_id: str
    factory: Callable[[], Rule]


class Catalog:
    """Immutable, ordered collection of rules addressed by id."""

    __slots__ = ("_rules", "_by_id")

    def __init__(self, rules: list[Rule] | tuple[Rule, ...] = ()) -> None:
        by_id: dict[str, Rule] = {}
        for rule in rules:
            if rule.rule_id in by_id:
                raise ValueError(f"Duplicate rule id in catalog: {rule.rule_id}")
            by_id[rule.rule_id] = rule
        self._rules: tuple[Rule, ...] = tuple(rules)
        self._by_id = by_id

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def __repr__(self) -> str:
        return f"Catalog({', '.join(self.ids)})"

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(rule.rule_id for rule in self._rules)

    def get(self, rule_id: str) -> Rule | None:
        return self._by_id.get(rule_id)

    def prerequisite_rules(self) -> list[Rule]:
        """Return gating rules in catalog order."""
        return [rule for rule in self._rules if rule.severity == "prerequisite"]

    def scored_rules(self) -> list[Rule]:
        """Return every rule that contributes points."""
        return [rule for rule in self._rules if rule.severity != "prerequisite"]


def default_catalog() -> Catalog:
    """Return the default rule catalog."""
    return build_catalog()


def build_catalog(
    *,
    enabled_rule_ids: list[str] | None = None,
    disabled_rule_ids: list[str] | None = None,
    prerequisites: PrerequisiteConfig | None = None,
) -> Catalog:
    """Build a catalog applying enable/disable filters."""
    specs = _ordered_rule_specs(prerequisites or PrerequisiteConfig())
    registry = {spec.rule_id: spec for spec in specs}
    disabled_set = set(disabled_rule_ids or [])
    requested_ids = set(enabled_rule_ids or []) | disabled_set

    unknown = [rule_id for rule_id in requested_ids if rule_id not in registry]
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ValueError(f"Unknown rule ids: {joined}")

    if enabled_rule_ids is None:
        selected_ids = [spec.rule_id for spec in specs if spec.rule_id not in disabled_set]
    else:
        selected_ids = [
            rule_id for rule_id in _dedupe(enabled_rule_ids) if rule_id not in disabled_set
        ]
    return Catalog([registry[rule_id].factory() for rule_id in selected_ids])


def list_rule_info(catalog: Catalog | None = None) -> list[RuleInfo]:
    """Return metadata for every rule in the catalog."""
    info: list[RuleInfo] = []
    for rule in catalog if catalog is not None else default_catalog():
        info.append(
            RuleInfo(
                rule_id=rule.rule_id,
                name=type(rule).__name__,
                description=rule.description,
                category=rule.category,
                severity=rule.severity,
                max_points=rule.max_points,
                depends_on=tuple(rule.depends_on),
            )
        )
    return info


def _ordered_rule_specs(prerequisites: PrerequisiteConfig) -> list[_RuleSpec]:
    return [
        _RuleSpec(
            rule_id=OpenApiVersionRule.rule_id,
            factory=lambda: OpenApiVersionRule(prerequisites.openapi_version),
        ),
        _spec(AuthenticationDefinedRule),
        _RuleSpec(
            rule_id=TenantHeaderOnWritesRule.rule_id,
            factory=lambda: TenantHeaderOnWritesRule(prerequisites.tenant_header),
        ),
        _spec(ErrorResponsesRule),
        _spec(SuccessResponseRule),
        _RuleSpec(
            rule_id=TenantHeaderOnReadsRule.rule_id,
            factory=lambda: TenantHeaderOnReadsRule(prerequisites.tenant_header),
        ),
        _spec(OperationSecurityRule),
        _spec(RequestBodySchemaRule),
        _spec(KeysetPaginationRule),
        _spec(RateLimitResponseRule),
        _spec(KebabCasePathsRule),
        _spec(OperationDocumentationRule),
        _spec(ResponseExamplesRule),
        _spec(ErrorExamplesRule),
    ]


def _spec(rule_cls: type[Rule]) -> _RuleSpec:
    return _RuleSpec(rule_id=rule_cls.rule_id, factory=rule_cls)


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output
