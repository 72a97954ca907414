"""Tests for the default rule catalog and individual rules."""

from __future__ import annotations

import pytest

from api_grader.config import PrerequisiteConfig
from api_grader.coverage import score_rule
from api_grader.rules import Catalog, build_catalog, default_catalog, list_rule_info
from api_grader.rules.maintainability import KebabCasePathsRule
from api_grader.rules.prerequisites import OpenApiVersionRule, TenantHeaderOnWritesRule
from api_grader.rules.scalability import KeysetPaginationRule
from tests.helpers_documents import StubRule, compliant_document

DEFAULT_IDS = (
    "PREREQ-001",
    "PREREQ-002",
    "PREREQ-003",
    "FUNC-002",
    "FUNC-004",
    "SEC-001",
    "SEC-003",
    "SEC-004",
    "SCALE-001",
    "SCALE-004",
    "MAINT-001",
    "MAINT-002",
    "MAINT-004",
    "EXCEL-001",
)


def test_default_catalog_order_and_partition() -> None:
    catalog = default_catalog()
    assert catalog.ids == DEFAULT_IDS
    assert [rule.rule_id for rule in catalog.prerequisite_rules()] == list(DEFAULT_IDS[:3])
    assert all(rule.max_points == 0 for rule in catalog.prerequisite_rules())
    assert all(rule.max_points > 0 for rule in catalog.scored_rules())


def test_catalog_rejects_duplicate_ids() -> None:
    with pytest.raises(ValueError, match="Duplicate rule id"):
        Catalog([StubRule("A"), StubRule("A")])


def test_catalog_lookup() -> None:
    catalog = Catalog([StubRule("A"), StubRule("B")])
    assert "A" in catalog
    assert "Z" not in catalog
    assert catalog.get("B") is not None
    assert catalog.get("Z") is None
    assert len(catalog) == 2


def test_build_catalog_filters_and_validates_ids() -> None:
    catalog = build_catalog(enabled_rule_ids=["FUNC-002", "MAINT-002", "FUNC-002"])
    assert catalog.ids == ("FUNC-002", "MAINT-002")

    catalog = build_catalog(disabled_rule_ids=["EXCEL-001"])
    assert "EXCEL-001" not in catalog
    assert len(catalog) == len(DEFAULT_IDS) - 1

    with pytest.raises(ValueError, match="Unknown rule ids: NOPE"):
        build_catalog(disabled_rule_ids=["NOPE"])


def test_build_catalog_threads_prerequisite_settings() -> None:
    catalog = build_catalog(
        prerequisites=PrerequisiteConfig(openapi_version="3.1.0", tenant_header="X-Tenant")
    )
    version_rule = catalog.get("PREREQ-001")
    assert isinstance(version_rule, OpenApiVersionRule)
    assert version_rule.required_version == "3.1.0"
    header_rule = catalog.get("PREREQ-003")
    assert isinstance(header_rule, TenantHeaderOnWritesRule)
    assert header_rule.header == "X-Tenant"


def test_list_rule_info_exposes_dependencies() -> None:
    info = {item.rule_id: item for item in list_rule_info()}
    assert info["EXCEL-001"].depends_on == ("MAINT-004", "FUNC-002")
    assert info["MAINT-004"].depends_on == ("MAINT-002",)
    assert info["SCALE-001"].name == "KeysetPaginationRule"


def test_every_scored_rule_passes_compliant_document() -> None:
    document = compliant_document()
    for rule in default_catalog().scored_rules():
        score = score_rule(rule, document)
        assert score.coverage == 1.0, (rule.rule_id, score.findings)
        assert score.applicable, rule.rule_id


def test_keyset_pagination_rejects_offset_parameters() -> None:
    document = compliant_document()
    document["paths"]["/v1/users"]["get"]["parameters"].append({"name": "offset", "in": "query"})
    score = score_rule(KeysetPaginationRule(), document)
    assert score.coverage == 0.0
    assert "offset" in score.findings[0].message


def test_kebab_case_rule_scores_partial_coverage() -> None:
    document = compliant_document()
    document["paths"]["/v1/user_groups"] = {}
    score = score_rule(KebabCasePathsRule(), document)
    assert score.targets_checked == 3
    assert score.targets_passed == 2
    assert score.findings[0].location == "$.paths['/v1/user_groups']"
    assert "underscores" in score.findings[0].message
