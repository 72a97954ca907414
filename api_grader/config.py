"""Configuration loading for api-grader."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAMES = (".api-grader.toml", "api-grader.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("api_grader", "api-grader")

PROFILE_CHOICES = {"standard", "public", "internal", "prototype"}
NO_TARGET_POLICY_CHOICES = {"full_credit", "zero"}


@dataclass(slots=True)
class PrerequisiteConfig:
    """Settings for the gating rules."""

    openapi_version: str = "3.0.3"
    tenant_header: str = "X-Organization-ID"

    def to_dict(self) -> dict[str, Any]:
        return {"openapi_version": self.openapi_version, "tenant_header": self.tenant_header}


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    format: str = "human"
    profile: str = "standard"
    pass_threshold: float = 60.0
    fail_below: float | None = None
    no_target_policy: str = "full_credit"
    excellence_bonuses: bool = False
    weights: dict[str, float] = field(default_factory=dict)
    rule_enable: list[str] | None = None
    rule_disable: list[str] = field(default_factory=list)
    prerequisites: PrerequisiteConfig = field(default_factory=PrerequisiteConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "profile": self.profile,
            "pass_threshold": self.pass_threshold,
            "fail_below": self.fail_below,
            "no_target_policy": self.no_target_policy,
            "excellence_bonuses": self.excellence_bonuses,
            "weights": dict(self.weights),
            "rules": {
                "enable": list(self.rule_enable) if self.rule_enable is not None else None,
                "disable": list(self.rule_disable),
            },
            "prerequisites": self.prerequisites.to_dict(),
            "source": self.source,
        }


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Load config from explicit path or repository-local files with precedence."""
    repo = repo.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = repo / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = repo / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return AppConfig()


def default_config_template() -> str:
    """Return a starter config template."""
    return "\n".join(
        [
            'format = "human"',
            'profile = "standard"',
            "pass_threshold = 60",
            "fail_below = 70",
            'no_target_policy = "full_credit"',
            "excellence_bonuses = false",
            "",
            "[weights]",
            "# functionality = 0.30",
            "# security = 0.25",
            "# scalability = 0.20",
            "# maintainability = 0.15",
            "# excellence = 0.10",
            "",
            "[rules]",
            "# enable = [",
            '#   "PREREQ-001",',
            '#   "FUNC-002",',
            "# ]",
            "disable = []",
            "",
            "[prerequisites]",
            'openapi_version = "3.0.3"',
            'tenant_header = "X-Organization-ID"',
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    rules_mapping = _as_table(mapping.get("rules"), "rules")
    prerequisites_mapping = _as_table(mapping.get("prerequisites"), "prerequisites")

    raw_format = mapping.get("format", "human")
    format_value = str(raw_format).lower()
    if format_value not in {"human", "json"}:
        format_value = "human"

    raw_fail = mapping.get("fail_below")
    fail_value = None if raw_fail is None else _as_float(raw_fail, "fail_below")

    pass_threshold = _as_float(mapping.get("pass_threshold", 60.0), "pass_threshold")
    if not 0.0 <= pass_threshold <= 100.0:
        raise ValueError("pass_threshold must be between 0 and 100")

    return AppConfig(
        format=format_value,
        profile=_as_choice(mapping.get("profile", "standard"), PROFILE_CHOICES, "profile"),
        pass_threshold=pass_threshold,
        fail_below=fail_value,
        no_target_policy=_as_choice(
            mapping.get("no_target_policy", "full_credit"),
            NO_TARGET_POLICY_CHOICES,
            "no_target_policy",
        ),
        excellence_bonuses=_as_bool(mapping.get("excellence_bonuses", False), "excellence_bonuses"),
        weights=_as_float_mapping(mapping.get("weights"), "weights"),
        rule_enable=_as_str_list_or_none(rules_mapping.get("enable")),
        rule_disable=_as_str_list(rules_mapping.get("disable")),
        prerequisites=_parse_prerequisite_config(prerequisites_mapping),
        source=source,
    )


def _parse_prerequisite_config(value: dict[str, Any]) -> PrerequisiteConfig:
    defaults = PrerequisiteConfig()
    return PrerequisiteConfig(
        openapi_version=_as_str(
            value.get("openapi_version", defaults.openapi_version),
            "prerequisites.openapi_version",
        ),
        tenant_header=_as_str(
            value.get("tenant_header", defaults.tenant_header),
            "prerequisites.tenant_header",
        ),
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("Expected a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError("Expected a list of strings")
        items.append(item)
    return items


def _as_str_list_or_none(value: Any) -> list[str] | None:
    if value is None:
        return None
    return _as_str_list(value)


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    return value


def _as_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{field_name} must be true or false")
    return value


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValueError(f"{field_name} must be one of: {choices}")
    return value


def _as_float_mapping(value: Any, field_name: str) -> dict[str, float]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")

    parsed: dict[str, float] = {}
    for key, raw in value.items():
        if not isinstance(key, str):
            raise ValueError(f"{field_name} keys must be strings")
        parsed[key] = _as_float(raw, f"{field_name}.{key}")
    return parsed


def _as_float(raw: Any, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    return float(raw)
