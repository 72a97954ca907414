"""End-to-end grading pipeline tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

import api_grader.scoring as scoring
from api_grader.config import PrerequisiteConfig
from api_grader.document import DocumentError
from api_grader.rules import build_catalog
from api_grader.scoring import grade_document, grade_file
from tests.helpers_documents import compliant_document


def test_compliant_document_scores_one_hundred() -> None:
    run = grade_document(compliant_document())
    grade = run.grade
    assert run.prerequisites.passed
    assert grade.score == 100.0
    assert grade.letter_grade == "A+"
    assert grade.excellence
    assert grade.passed
    assert grade.findings == []
    assert len(grade.breakdown) == 5
    assert run.evaluation_order.index("MAINT-002") < run.evaluation_order.index("MAINT-004")
    assert "PREREQ-001" not in run.scores


def test_prerequisite_failure_never_reaches_resolver(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args: Any, **kwargs: Any) -> Any:
        raise AssertionError("dependency resolver must not run")

    monkeypatch.setattr(scoring, "score_with_dependencies", _fail)
    document = compliant_document()
    document["openapi"] = "2.0"

    run = grade_document(document)
    grade = run.grade
    assert not grade.passed
    assert grade.score == 0.0
    assert grade.letter_grade == "F"
    assert grade.blocked_by_prerequisites
    assert grade.blocked_reason
    assert "PREREQ-001" in {finding.rule_id for finding in grade.findings}
    assert run.scores == {}
    assert run.evaluation_order == []


def test_failing_dependency_cascades_through_catalog() -> None:
    document = compliant_document()
    del document["paths"]["/v1/users"]["get"]["operationId"]

    run = grade_document(document)
    assert run.scores["MAINT-002"].coverage == 0.75
    assert run.scores["MAINT-004"].skipped
    assert run.scores["MAINT-004"].failed_dependencies == ["MAINT-002"]
    assert run.scores["EXCEL-001"].skipped
    assert run.scores["EXCEL-001"].failed_dependencies == ["MAINT-004"]

    maintainability = run.grade.breakdown[3]
    assert maintainability.category == "maintainability"
    assert maintainability.max_points == 12.0
    assert maintainability.earned_points == pytest.approx(8.75)
    assert run.grade.score < 90.0


def test_profile_threads_through_pipeline() -> None:
    document = compliant_document()
    for path_item in document["paths"].values():
        for operation in path_item.values():
            if isinstance(operation, dict):
                operation.pop("responses", None)

    run = grade_document(document, profile="prototype")
    assert run.grade.profile == "prototype"
    assert run.grade.pass_threshold == 50.0
    assert run.grade.passed == (run.grade.score >= 50.0)


def test_custom_prerequisite_settings_change_the_gate() -> None:
    catalog = build_catalog()
    document = compliant_document()
    document["openapi"] = "3.1.0"
    assert not grade_document(document, catalog).prerequisites.passed

    relaxed = build_catalog(prerequisites=PrerequisiteConfig(openapi_version="3.1.0"))
    assert grade_document(document, relaxed).prerequisites.passed


def test_grade_file_reads_yaml(tmp_path: Path) -> None:
    path = tmp_path / "api.yaml"
    path.write_text(yaml.safe_dump(compliant_document()), encoding="utf-8")
    run = grade_file(path)
    assert run.grade.score == 100.0
    assert run.source == str(path)


def test_grade_file_reports_unreadable_documents(tmp_path: Path) -> None:
    with pytest.raises(DocumentError):
        grade_file(tmp_path / "missing.yaml")


def test_excellence_bonuses_are_opt_in() -> None:
    document = compliant_document()
    del document["paths"]["/v1/users"]["get"]["operationId"]
    document["components"]["securitySchemes"]["OAuth2"] = {
        "type": "oauth2",
        "flows": {
            "clientCredentials": {"tokenUrl": "https://auth.example.com/token", "scopes": {}}
        },
    }

    plain = grade_document(document)
    assert plain.grade.score == pytest.approx(85.94)
    assert plain.grade.bonus_points == 0.0

    bonused = grade_document(document, excellence_bonuses=True, profile="public")
    assert bonused.grade.score == pytest.approx(90.94)
    assert bonused.grade.bonus_points == 5.0
    assert bonused.grade.letter_grade == "A-"
    assert bonused.grade.excellence
    assert bonused.grade.passed
