"""Tests for config loading and rules/config CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from api_grader.cli import app
from api_grader.config import load_app_config

runner = CliRunner()


def test_load_app_config_prefers_dot_file_over_pyproject(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "pyproject.toml").write_text(
        "\n".join(
            [
                "[tool.api_grader]",
                'format = "human"',
                "fail_below = 80",
            ]
        ),
        encoding="utf-8",
    )
    (repo / ".api-grader.toml").write_text(
        "\n".join(
            [
                'format = "json"',
                "fail_below = 25",
                'profile = "internal"',
                "excellence_bonuses = true",
                "",
                "[weights]",
                "security = 0.3",
                "",
                "[rules]",
                'enable = ["FUNC-002", "MAINT-002"]',
                'disable = ["MAINT-002"]',
                "",
                "[prerequisites]",
                'openapi_version = "3.1.0"',
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)
    assert config.format == "json"
    assert config.fail_below == 25
    assert config.profile == "internal"
    assert config.excellence_bonuses is True
    assert config.weights == {"security": 0.3}
    assert config.rule_enable == ["FUNC-002", "MAINT-002"]
    assert config.rule_disable == ["MAINT-002"]
    assert config.prerequisites.openapi_version == "3.1.0"
    assert config.prerequisites.tenant_header == "X-Organization-ID"
    assert config.source == str(repo / ".api-grader.toml")


def test_load_app_config_reads_pyproject_hyphenated_key(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "pyproject.toml").write_text(
        "\n".join(
            [
                '[tool."api-grader"]',
                "pass_threshold = 75",
                'no_target_policy = "zero"',
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)
    assert config.pass_threshold == 75.0
    assert config.no_target_policy == "zero"
    assert config.source == str(repo / "pyproject.toml")


def test_load_app_config_defaults_without_files(tmp_path: Path) -> None:
    config = load_app_config(tmp_path)
    assert config.source is None
    assert config.pass_threshold == 60.0
    assert config.no_target_policy == "full_credit"
    assert config.rule_enable is None
    assert config.excellence_bonuses is False


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ('profile = "enterprise"', "profile must be one of"),
        ("pass_threshold = 120", "pass_threshold must be between"),
        ('no_target_policy = "half"', "no_target_policy must be one of"),
        ('[weights]\nsecurity = "high"', "weights.security must be a number"),
        ("rules = 3", "rules must be a table"),
        ('excellence_bonuses = "yes"', "excellence_bonuses must be true or false"),
        ("format = [", "Invalid TOML"),
    ],
)
def test_load_app_config_rejects_invalid_values(
    tmp_path: Path, content: str, message: str
) -> None:
    (tmp_path / ".api-grader.toml").write_text(content, encoding="utf-8")
    with pytest.raises(ValueError, match=message):
        load_app_config(tmp_path)


def test_explicit_config_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        load_app_config(tmp_path, config_path=Path("missing.toml"))


def test_rules_command_reports_enabled_state(tmp_path: Path) -> None:
    (tmp_path / ".api-grader.toml").write_text(
        '[rules]\ndisable = ["SCALE-004"]\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["rules", "--repo", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    rules = {item["rule_id"]: item for item in payload["rules"]}
    assert rules["SCALE-004"]["enabled"] is False
    assert rules["FUNC-002"]["enabled"] is True
    assert rules["EXCEL-001"]["depends_on"] == ["MAINT-004", "FUNC-002"]
    assert rules["PREREQ-001"]["severity"] == "prerequisite"
    assert payload["meta"]["config_source"] == str(tmp_path / ".api-grader.toml")

    human = runner.invoke(app, ["rules", "--repo", str(tmp_path)])
    assert human.exit_code == 0
    assert "SCALE-004 [disabled]" in human.stdout
    assert "(after MAINT-002)" in human.stdout


def test_config_command_shows_active_rules(tmp_path: Path) -> None:
    (tmp_path / ".api-grader.toml").write_text(
        '[rules]\nenable = ["PREREQ-001", "FUNC-002"]\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["config", "--repo", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["active_rule_ids"] == ["PREREQ-001", "FUNC-002"]
    assert payload["rules"]["enable"] == ["PREREQ-001", "FUNC-002"]
    assert payload["prerequisites"]["openapi_version"] == "3.0.3"


def test_unknown_rule_ids_are_bad_parameters(tmp_path: Path) -> None:
    (tmp_path / ".api-grader.toml").write_text(
        '[rules]\ndisable = ["NOPE-999"]\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["config", "--repo", str(tmp_path)])
    assert result.exit_code == 2
    assert "Unknown rule ids" in result.output


def test_config_init_and_validate(tmp_path: Path) -> None:
    target = tmp_path / ".api-grader.toml"
    result = runner.invoke(app, ["config-init", "--out", str(target)])
    assert result.exit_code == 0
    assert target.exists()

    again = runner.invoke(app, ["config-init", "--out", str(target)])
    assert again.exit_code == 2
    forced = runner.invoke(app, ["config-init", "--out", str(target), "--force"])
    assert forced.exit_code == 0

    validated = runner.invoke(
        app,
        ["config-validate", "--repo", str(tmp_path), "--config", str(target), "--format", "json"],
    )
    assert validated.exit_code == 0
    payload = json.loads(validated.stdout)
    assert payload["ok"] is True
    assert payload["source"] == str(target)
    assert payload["dependency_issues"] == []
    assert "EXCEL-001" in payload["active_rule_ids"]


def test_config_validate_rejects_bad_weights(tmp_path: Path) -> None:
    target = tmp_path / ".api-grader.toml"
    target.write_text("[weights]\nspeed = 0.5\n", encoding="utf-8")
    result = runner.invoke(app, ["config-validate", "--repo", str(tmp_path)])
    assert result.exit_code == 2
    assert "Unknown weight categories" in result.output


def test_rules_command_reflects_prerequisite_settings(tmp_path: Path) -> None:
    (tmp_path / ".api-grader.toml").write_text(
        '[prerequisites]\nopenapi_version = "3.1.0"\ntenant_header = "X-Tenant"\n',
        encoding="utf-8",
    )
    result = runner.invoke(app, ["rules", "--repo", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0
    rules = {item["rule_id"]: item for item in json.loads(result.stdout)["rules"]}
    assert rules["PREREQ-001"]["description"] == "OpenAPI version must be 3.1.0"
    assert rules["PREREQ-003"]["description"] == "X-Tenant required on all write operations"
