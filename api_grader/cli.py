"""CLI entrypoint for api-grader."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer

from api_grader import __version__
from api_grader.config import PROFILE_CHOICES, AppConfig, default_config_template, load_app_config
from api_grader.coverage import calculate_coverage_stats
from api_grader.dependencies import (
    analyze_dependency_chains,
    build_dependency_graph,
    topological_order,
    validate_dependencies,
)
from api_grader.document import DocumentError
from api_grader.finalizer import compare_grades, resolve_weights
from api_grader.logging_config import setup_logging
from api_grader.output import (
    build_json_payload,
    render_comparison,
    render_coverage_report,
    render_dependency_graph,
    render_dependency_report,
    render_human,
    summarize_prerequisite_failures,
)
from api_grader.rules import Catalog, build_catalog, list_rule_info
from api_grader.scoring import GradingRun, grade_file

app = typer.Typer(
    name="api-grader",
    no_args_is_help=True,
    help="Grade OpenAPI documents against API design rules.",
)

_REPORT_CHOICES = {"dependencies", "coverage"}


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logs.")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only log errors.")] = False,
) -> None:
    """Root command callback."""
    _ = version
    setup_logging(verbose=verbose, quiet=quiet)


@app.command("grade")
def grade_command(
    path: Annotated[Path, typer.Argument(help="OpenAPI document (YAML or JSON).")],
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    profile: Annotated[
        str | None,
        typer.Option(help="Pass profile: standard|public|internal|prototype."),
    ] = None,
    format: Annotated[
        str | None, typer.Option(help="Output format: human|json.", show_default="human")
    ] = None,
    fail_below: Annotated[
        float | None, typer.Option(help="Exit nonzero if the score is below this value.")
    ] = None,
    report: Annotated[
        str | None, typer.Option(help="Extra report: dependencies|coverage.")
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Grade a document and print the result."""
    app_config = _load_config_or_raise(repo, config_file)
    output_format = _choice_or_default(
        value=format, default=app_config.format, allowed={"human", "json"}, field_name="--format"
    )
    resolved_profile = _choice_or_default(
        value=profile, default=app_config.profile, allowed=PROFILE_CHOICES, field_name="--profile"
    )
    if report is not None:
        report = _choice_or_default(
            value=report, default=report, allowed=_REPORT_CHOICES, field_name="--report"
        )

    catalog = _build_configured_catalog_or_raise(app_config)
    _resolve_weights_or_raise(app_config)
    run = _grade_or_raise(path, catalog, app_config, profile=resolved_profile)

    if output_format == "json":
        payload = build_json_payload(run, input_source=str(path))
        if report == "dependencies":
            payload["dependency_analysis"] = asdict(analyze_dependency_chains(run.scores))
        elif report == "coverage":
            payload["coverage"] = asdict(calculate_coverage_stats(run.scores))
        typer.echo(json.dumps(payload, sort_keys=True))
    else:
        sections = [render_human(run)]
        if run.grade.blocked_by_prerequisites:
            sections.append(summarize_prerequisite_failures(run.prerequisites, catalog))
        elif report == "dependencies":
            sections.append(render_dependency_report(run.scores, catalog))
        elif report == "coverage":
            sections.append(render_coverage_report(run.scores))
        typer.echo("\n\n".join(sections))

    if run.grade.blocked_by_prerequisites:
        raise typer.Exit(code=1)
    threshold = fail_below if fail_below is not None else app_config.fail_below
    if threshold is not None:
        if run.grade.score < threshold:
            raise typer.Exit(code=1)
    elif not run.grade.passed:
        raise typer.Exit(code=1)


@app.command("compare")
def compare_command(
    baseline: Annotated[Path, typer.Argument(help="Baseline document.")],
    candidate: Annotated[Path, typer.Argument(help="Candidate document.")],
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Compare the grades of two documents."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    catalog = _build_configured_catalog_or_raise(app_config)
    _resolve_weights_or_raise(app_config)
    before = _grade_or_raise(baseline, catalog, app_config, profile=app_config.profile)
    after = _grade_or_raise(candidate, catalog, app_config, profile=app_config.profile)
    comparison = compare_grades(before.grade, after.grade)

    if output_format == "json":
        payload = asdict(comparison)
        payload["baseline_score"] = before.grade.score
        payload["candidate_score"] = after.grade.score
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(render_comparison(comparison))


@app.command("rules")
def rules_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """List available grading rules."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    catalog = _build_configured_catalog_or_raise(app_config)
    rule_info = list_rule_info(build_catalog(prerequisites=app_config.prerequisites))

    if output_format == "json":
        payload = {
            "rules": [
                {
                    "rule_id": item.rule_id,
                    "name": item.name,
                    "description": item.description,
                    "category": item.category,
                    "severity": item.severity,
                    "max_points": item.max_points,
                    "depends_on": list(item.depends_on),
                    "enabled": item.rule_id in catalog,
                }
                for item in rule_info
            ],
            "meta": {"config_source": app_config.source},
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Available rules:"]
    for item in rule_info:
        status = "enabled" if item.rule_id in catalog else "disabled"
        depends = f" (after {', '.join(item.depends_on)})" if item.depends_on else ""
        lines.append(
            f"- {item.rule_id} [{status}] {item.category}/{item.severity} "
            f"{item.max_points:g} pts - {item.description}{depends}"
        )
    typer.echo("\n".join(lines))


@app.command("order")
def order_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Show rule evaluation order and catalog dependency issues."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    catalog = _build_configured_catalog_or_raise(app_config)
    graph = build_dependency_graph(catalog.scored_rules())
    order = topological_order(graph)
    validation = validate_dependencies(catalog)

    if output_format == "json":
        payload = {
            "order": order,
            "edges": {rule_id: sorted(graph.edges[rule_id]) for rule_id in order},
            "valid": validation.valid,
            "issues": validation.issues,
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [render_dependency_graph(graph, order)]
    if validation.issues:
        lines.append("Issues:")
        lines.extend(f"- {issue}" for issue in validation.issues)
    else:
        lines.append("No dependency issues.")
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Show resolved configuration."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    catalog = _build_configured_catalog_or_raise(app_config)
    payload = app_config.to_dict()
    payload["active_rule_ids"] = list(catalog.ids)

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- format: {payload['format']}",
        f"- profile: {payload['profile']}",
        f"- pass_threshold: {payload['pass_threshold']}",
        f"- fail_below: {payload['fail_below']}",
        f"- no_target_policy: {payload['no_target_policy']}",
        f"- excellence_bonuses: {payload['excellence_bonuses']}",
        f"- weights: {payload['weights']}",
        f"- rules.enable: {payload['rules']['enable']}",
        f"- rules.disable: {payload['rules']['disable']}",
        f"- prerequisites: {payload['prerequisites']}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".api-grader.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter repository config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".api-grader.toml"),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file and report active rules."""
    output_format = format.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(repo, config_file)
    catalog = _build_configured_catalog_or_raise(app_config)
    _resolve_weights_or_raise(app_config)
    payload = {
        "ok": True,
        "source": app_config.source,
        "active_rule_ids": list(catalog.ids),
        "dependency_issues": validate_dependencies(catalog).issues,
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    lines = [
        "Config is valid.",
        f"- source: {payload['source']}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
    ]
    lines.extend(f"- dependency issue: {issue}" for issue in payload["dependency_issues"])
    typer.echo("\n".join(lines))


def main() -> None:
    """Console script entrypoint."""
    app()


def _load_config_or_raise(repo: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _build_configured_catalog_or_raise(app_config: AppConfig) -> Catalog:
    try:
        return build_catalog(
            enabled_rule_ids=app_config.rule_enable,
            disabled_rule_ids=app_config.rule_disable,
            prerequisites=app_config.prerequisites,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.rules") from exc


def _resolve_weights_or_raise(app_config: AppConfig) -> None:
    try:
        resolve_weights(app_config.weights)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.weights") from exc


def _grade_or_raise(
    path: Path, catalog: Catalog, app_config: AppConfig, *, profile: str
) -> GradingRun:
    try:
        return grade_file(
            path,
            catalog,
            profile=profile,
            weights=app_config.weights,
            pass_threshold=app_config.pass_threshold,
            no_target_policy=app_config.no_target_policy,
            excellence_bonuses=app_config.excellence_bonuses,
        )
    except DocumentError as exc:
        raise typer.BadParameter(str(exc), param_hint="PATH") from exc


def _choice_or_default(
    *,
    value: str | None,
    default: str,
    allowed: set[str],
    field_name: str,
) -> str:
    resolved = (value or default).lower()
    if resolved not in allowed:
        choices = ", ".join(sorted(allowed))
        raise typer.BadParameter(f"{field_name} must be one of: {choices}", param_hint=field_name)
    return resolved
