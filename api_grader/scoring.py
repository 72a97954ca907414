"""Grading orchestration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from api_grader.coverage import DEFAULT_NO_TARGET_POLICY
from api_grader.dependencies import DependencyAwareScore, score_with_dependencies
from api_grader.document import load_document
from api_grader.finalizer import (
    DEFAULT_PASS_THRESHOLD,
    STANDARD_PROFILE,
    GradeResult,
    apply_excellence_bonuses,
    apply_profile,
    blocked_grade,
    calculate_final_grade,
)
from api_grader.prerequisites import PrerequisiteResult, check_prerequisites
from api_grader.rules import Catalog, default_catalog

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GradingRun:
    """Everything produced while grading one document."""

    grade: GradeResult
    prerequisites: PrerequisiteResult
    scores: dict[str, DependencyAwareScore] = field(default_factory=dict)
    evaluation_order: list[str] = field(default_factory=list)
    source: str | None = None


def grade_document(
    document: Any,
    catalog: Catalog | None = None,
    *,
    profile: str = STANDARD_PROFILE,
    weights: Mapping[str, float] | None = None,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
    no_target_policy: str = DEFAULT_NO_TARGET_POLICY,
    excellence_bonuses: bool = False,
    source: str | None = None,
) -> GradingRun:
    """Grade a parsed document.

    A failed prerequisite gate returns a zero grade without running any
    scored rule. Rule exceptions propagate. With ``excellence_bonuses`` the
    bonus points are added before the profile decides pass/fail.
    """
    active_catalog = catalog if catalog is not None else default_catalog()
    prerequisites = check_prerequisites(document, active_catalog)
    if not prerequisites.passed:
        logger.debug("Prerequisite gate failed with %d finding(s)", len(prerequisites.failures))
        grade = blocked_grade(prerequisites, weights=weights, pass_threshold=pass_threshold)
        return GradingRun(
            grade=apply_profile(grade, profile),
            prerequisites=prerequisites,
            source=source,
        )

    scores = score_with_dependencies(
        document, active_catalog, no_target_policy=no_target_policy
    )
    logger.debug("Scored %d rule(s)", len(scores))
    grade = calculate_final_grade(scores, weights=weights, pass_threshold=pass_threshold)
    if excellence_bonuses:
        grade = apply_excellence_bonuses(grade, document)
    return GradingRun(
        grade=apply_profile(grade, profile),
        prerequisites=prerequisites,
        scores=scores,
        evaluation_order=list(scores),
        source=source,
    )


def grade_file(
    path: Path,
    catalog: Catalog | None = None,
    *,
    profile: str = STANDARD_PROFILE,
    weights: Mapping[str, float] | None = None,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
    no_target_policy: str = DEFAULT_NO_TARGET_POLICY,
    excellence_bonuses: bool = False,
) -> GradingRun:
    """Load a YAML or JSON document from disk and grade it."""
    document = load_document(path)
    logger.debug("Loaded %s", path)
    return grade_document(
        document,
        catalog,
        profile=profile,
        weights=weights,
        pass_threshold=pass_threshold,
        no_target_policy=no_target_policy,
        excellence_bonuses=excellence_bonuses,
        source=str(path),
    )
