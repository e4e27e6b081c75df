"""``uvws`` command line interface.

Every command logs its start and finish under a fresh correlation id, records
Prometheus metrics and assembles a CLI envelope. Envelopes are written to
``UVWS_ENVELOPE_DIR`` (or ``--envelope-dir``) when configured and printed in
place of the human-readable output with ``--json``.

Exit codes: ``0`` success, ``1`` violations (failed checks, incompatible
interpreters, runtime failures), ``2`` configuration errors (unreadable
manifests or docs configuration, invalid settings and Python requests, unknown
packages, missing or broken tool environments).
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Final, NoReturn
from uuid import uuid4

import typer

from uvworkspace.checks import run_checks
from uvworkspace.envelope import (
    CliEnvelope,
    CliEnvelopeBuilder,
    CliErrorStatus,
    CliStatus,
    render_cli_envelope,
    write_cli_envelope,
)
from uvworkspace.environment import read_environment, select_environment
from uvworkspace.errors import ErrorCode, SettingsError, WorkspaceToolError
from uvworkspace.logging import (
    LoggerAdapter,
    get_logger,
    set_correlation_id,
    setup_logging,
    with_fields,
)
from uvworkspace.navigation import load_docs_config, markdown_extension_names, theme_name
from uvworkspace.observability import record_command, record_findings, render_metrics
from uvworkspace.python_request import check_interpreter, resolve_python_request
from uvworkspace.requires_python import find_requires_python, member_requires_python
from uvworkspace.settings import WorkspaceToolSettings, load_settings
from uvworkspace.sources import install_targets, member_dependencies, resolve_sources
from uvworkspace.tool_target import (
    ToolRunCommand,
    build_run_environment,
    executable_provider_warning,
    installed_packages,
    matching_packages,
    parse_target,
    provider_name,
)
from uvworkspace.workspace import Workspace, discover_workspace

__all__ = ["app", "main"]

LOGGER = get_logger(__name__)

CLI_COMMAND: Final = "uvws"

EXIT_SUCCESS: Final = 0
EXIT_VIOLATION: Final = 1
EXIT_CONFIG: Final = 2

_CONFIG_CODES: Final[frozenset[ErrorCode]] = frozenset(
    {
        ErrorCode.MANIFEST_NOT_FOUND,
        ErrorCode.MANIFEST_INVALID,
        ErrorCode.WORKSPACE_MEMBER_INVALID,
        ErrorCode.MEMBER_NOT_FOUND,
        ErrorCode.REQUIRES_PYTHON_INVALID,
        ErrorCode.PYTHON_REQUEST_INVALID,
        ErrorCode.SOURCE_INVALID,
        ErrorCode.TOOL_TARGET_INVALID,
        ErrorCode.DOCS_CONFIG_INVALID,
        ErrorCode.ENVIRONMENT_MISSING,
        ErrorCode.ENVIRONMENT_INVALID,
        ErrorCode.CONFIGURATION_ERROR,
    }
)
_VIOLATION_CODES: Final[frozenset[ErrorCode]] = frozenset({ErrorCode.PYTHON_INCOMPATIBLE})

app = typer.Typer(
    help="Inspect uv workspaces and their documentation configuration.",
    no_args_is_help=True,
    add_completion=False,
)


@dataclass(slots=True)
class _CliState:
    settings: WorkspaceToolSettings
    emit_json: bool = False


@dataclass(slots=True)
class _CommandContext:
    """Structured context shared across a single command invocation."""

    subcommand: str
    correlation_id: str
    logger: LoggerAdapter
    state: _CliState
    builder: CliEnvelopeBuilder
    start: float = field(default_factory=time.monotonic)
    lines: list[str] = field(default_factory=list)

    def echo(self, line: str = "") -> None:
        self.lines.append(line)


def _state(ctx: typer.Context) -> _CliState:
    state = ctx.obj
    if not isinstance(state, _CliState):
        state = _CliState(settings=load_settings())
        ctx.obj = state
    return state


def _start_command(ctx: typer.Context, subcommand: str, **log_fields: object) -> _CommandContext:
    correlation_id = uuid4().hex
    # Library modules log through their own adapters and pick the id up from context.
    set_correlation_id(correlation_id)
    filtered = {key: value for key, value in log_fields.items() if value is not None}
    logger = with_fields(
        LOGGER,
        correlation_id=correlation_id,
        operation=subcommand.replace("-", "_"),
        command=CLI_COMMAND,
        subcommand=subcommand,
        **filtered,
    )
    logger.info("Command started", extra={"status": "start"})
    builder = CliEnvelopeBuilder.create(
        command=CLI_COMMAND, status="success", subcommand=subcommand
    )
    return _CommandContext(
        subcommand=subcommand,
        correlation_id=correlation_id,
        logger=logger,
        state=_state(ctx),
        builder=builder,
    )


def _emit(context: _CommandContext, envelope: CliEnvelope) -> Path | None:
    directory = context.state.settings.envelope_dir
    path = write_cli_envelope(envelope, directory) if directory is not None else None
    if path is not None:
        context.logger.debug(
            "CLI envelope written", extra={"status": envelope.status, "cli_envelope": str(path)}
        )
    if context.state.emit_json:
        typer.echo(render_cli_envelope(envelope))
    else:
        for line in context.lines:
            typer.echo(line)
    return path


def _finish(context: _CommandContext, status: CliStatus = "success") -> None:
    envelope = context.builder.set_status(status).finish(
        duration_seconds=time.monotonic() - context.start
    )
    path = _emit(context, envelope)
    record_command(context.subcommand, status, envelope.duration_seconds)
    context.logger.info(
        "Command completed",
        extra={
            "status": status,
            "duration_seconds": envelope.duration_seconds,
            "cli_envelope": str(path) if path is not None else None,
        },
    )
    set_correlation_id(None)
    if status != "success":
        raise typer.Exit(code=EXIT_CONFIG if status == "config" else EXIT_VIOLATION)


def _classify(exc: WorkspaceToolError) -> CliErrorStatus:
    if exc.code in _CONFIG_CODES:
        return "config"
    if exc.code in _VIOLATION_CODES:
        return "violation"
    return "error"


def _handle_failure(context: _CommandContext, exc: WorkspaceToolError) -> NoReturn:
    error_status = _classify(exc)
    instance = f"urn:uvws:{context.subcommand}:{context.correlation_id}"
    problem = exc.to_problem_details(instance=instance)
    context.builder.add_error(status=error_status, message=exc.message, problem=problem)
    context.builder.set_problem(problem)
    envelope = context.builder.set_status(error_status).finish(
        duration_seconds=time.monotonic() - context.start
    )
    path = _emit(context, envelope)
    record_command(context.subcommand, error_status, envelope.duration_seconds)
    context.logger.log(
        exc.log_level,
        "Command failed",
        exc_info=exc if error_status == "error" else None,
        extra={
            "status": error_status,
            "error_code": exc.code.value,
            "detail": exc.message,
            "cli_envelope": str(path) if path is not None else None,
        },
    )
    set_correlation_id(None)
    if not context.state.emit_json:
        typer.echo(json.dumps(problem, sort_keys=True), err=True)
        typer.echo(f"error: {exc.message}", err=True)
    raise typer.Exit(code=EXIT_CONFIG if error_status == "config" else EXIT_VIOLATION) from exc


def _discover(context: _CommandContext, directory: Path | None) -> Workspace:
    workspace = discover_workspace(
        directory or Path.cwd(),
        project_environment=context.state.settings.project_environment,
    )
    context.builder.add_file(path=str(workspace.root / "pyproject.toml"), status="success")
    return workspace


_DirectoryOption = Annotated[
    Path | None,
    typer.Option(
        "--directory",
        "-d",
        help="Directory inside the project; defaults to the current directory.",
        file_okay=False,
    ),
]
_PackageOption = Annotated[
    str | None,
    typer.Option("--package", "-p", help="Restrict to one workspace member."),
]
_DocsConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Documentation configuration file."),
]


@app.callback()
def _configure(
    ctx: typer.Context,
    log_level: Annotated[str | None, typer.Option(help="Logging level.")] = None,
    log_json: Annotated[
        bool | None, typer.Option("--log-json/--no-log-json", help="Emit JSON log lines.")
    ] = None,
    envelope_dir: Annotated[
        Path | None, typer.Option(help="Write CLI envelopes into this directory.")
    ] = None,
    emit_json: Annotated[
        bool, typer.Option("--json", help="Print the CLI envelope instead of text.")
    ] = False,
) -> None:
    """Load settings and configure logging for every command."""
    overrides: dict[str, object] = {
        key: value
        for key, value in {
            "log_level": log_level,
            "log_json": log_json,
            "envelope_dir": envelope_dir,
        }.items()
        if value is not None
    }
    try:
        settings = load_settings(**overrides)
    except SettingsError as exc:
        problem = exc.to_problem_details(instance="urn:uvws:settings")
        typer.echo(json.dumps(problem, sort_keys=True), err=True)
        typer.echo(f"error: {exc.message}", err=True)
        raise typer.Exit(code=EXIT_CONFIG) from exc
    setup_logging(settings.log_level, json_format=settings.log_json)
    ctx.obj = _CliState(settings=settings, emit_json=emit_json)


@app.command("members")
def members(ctx: typer.Context, directory: _DirectoryOption = None) -> None:
    """List the members of the workspace that owns the project."""
    context = _start_command(ctx, "members", directory=str(directory) if directory else None)
    try:
        workspace = _discover(context, directory)
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    kind = "virtual workspace" if workspace.is_virtual else "root package workspace"
    context.echo(f"{workspace.root} ({kind})")
    for member in workspace:
        marker = " (root)" if member.is_root else ""
        label = f"{member.name} {member.version}" if member.version else member.name
        context.echo(f"  {label}  {member.root}{marker}")
    for pattern in workspace.unmatched_patterns:
        context.echo(f"warning: pattern `{pattern}` matched no package")
    context.builder.set_result(
        {
            "root": str(workspace.root),
            "virtual": workspace.is_virtual,
            "members": [
                {
                    "name": member.name,
                    "version": member.version,
                    "path": str(member.root),
                    "root": member.is_root,
                }
                for member in workspace
            ],
            "excluded": [str(path) for path in workspace.excluded],
            "unmatched_patterns": list(workspace.unmatched_patterns),
        }
    )
    _finish(context)


@app.command("requires-python")
def requires_python(ctx: typer.Context, directory: _DirectoryOption = None) -> None:
    """Show the workspace ``Requires-Python`` bound and the member bounds."""
    context = _start_command(ctx, "requires-python")
    try:
        workspace = _discover(context, directory)
        declared = member_requires_python(workspace)
        bound = find_requires_python(workspace)
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    if bound is None:
        context.echo("No member declares requires-python")
    else:
        context.echo(f"requires-python: {bound}")
        if bound.lower_bound.version is not None:
            context.echo(f"minimum Python: {bound.lower_bound.version}")
    for name, specifiers in declared.items():
        context.echo(f"  {name}: {specifiers}")
    context.builder.set_result(
        {
            "requires_python": str(bound) if bound is not None else None,
            "minimum": (
                str(bound.lower_bound.version)
                if bound is not None and bound.lower_bound.version is not None
                else None
            ),
            "members": {name: str(specifiers) for name, specifiers in declared.items()},
        }
    )
    _finish(context)


@app.command("python")
def python(
    ctx: typer.Context,
    directory: _DirectoryOption = None,
    request: Annotated[
        str | None, typer.Option("--python", help="Explicit Python request, e.g. 3.12.")
    ] = None,
    interpreter: Annotated[
        str | None,
        typer.Option(help="Check this interpreter version against the project requirement."),
    ] = None,
) -> None:
    """Show which Python the project requests and whether its environment is reusable."""
    context = _start_command(ctx, "python", request=request)
    try:
        workspace = _discover(context, directory)
        resolved = resolve_python_request(workspace, request, directory=directory)
        decision = select_environment(workspace, resolved.request, resolved.requires_python)
        if interpreter is not None:
            check_interpreter(interpreter, resolved.requires_python)
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    context.echo(f"request: {resolved.request or 'any'} (from {resolved.source})")
    if resolved.requires_python is not None:
        context.echo(f"requires-python: {resolved.requires_python}")
    context.echo(f"environment: {decision.venv} ({decision.action}: {decision.reason})")
    if interpreter is not None:
        context.echo(f"interpreter {interpreter} is compatible")
    context.builder.set_result(
        {
            "request": str(resolved.request) if resolved.request is not None else None,
            "source": resolved.source,
            "requires_python": (
                str(resolved.requires_python) if resolved.requires_python is not None else None
            ),
            "environment": {
                "path": str(decision.venv),
                "action": decision.action,
                "reason": decision.reason,
                "version": (
                    str(decision.environment.version) if decision.environment is not None else None
                ),
            },
        }
    )
    _finish(context)


@app.command("sources")
def sources(
    ctx: typer.Context, directory: _DirectoryOption = None, package: _PackageOption = None
) -> None:
    """Show the dependency sources that apply to each member."""
    context = _start_command(ctx, "sources", package=package)
    try:
        workspace = _discover(context, directory)
        selected = [workspace.member(package)] if package else list(workspace)
        resolved = {member.name: resolve_sources(workspace, member) for member in selected}
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    result: dict[str, list[dict[str, object]]] = {}
    for name, entries in resolved.items():
        context.echo(name)
        result[name] = []
        for entry in entries.values():
            suffix = f" -> member {entry.member}" if entry.member else ""
            editable = " editable" if entry.editable else ""
            described = entry.source.describe()
            context.echo(f"  {entry.package}: {described} [{entry.origin}{editable}]{suffix}")
            result[name].append(
                {
                    "package": entry.package,
                    "kind": entry.source.kind,
                    "source": entry.source.describe(),
                    "origin": entry.origin,
                    "member": entry.member,
                    "editable": entry.editable,
                }
            )
    context.builder.set_result(result)
    _finish(context)


@app.command("targets")
def targets(
    ctx: typer.Context, directory: _DirectoryOption = None, package: _PackageOption = None
) -> None:
    """Show the members installed for the workspace or for one package."""
    context = _start_command(ctx, "targets", package=package)
    try:
        workspace = _discover(context, directory)
        selected = install_targets(workspace, package)
        dependencies = {
            name: member_dependencies(workspace, workspace.members[name])
            for name in selected.members
        }
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    header = f"package {selected.package}" if selected.package else "workspace"
    context.echo(f"{header}: {len(selected.members)} member(s)")
    for name in selected.members:
        deps = ", ".join(dependencies[name])
        context.echo(f"  {name}" + (f" (depends on {deps})" if deps else ""))
    context.builder.set_result(
        {
            "scope": selected.scope,
            "package": selected.package,
            "members": list(selected.members),
            "lock": str(workspace.lock_path),
        }
    )
    _finish(context)


@app.command("tool-target")
def tool_target(
    ctx: typer.Context,
    target: Annotated[str, typer.Argument(help="Tool to run, e.g. ruff or ruff@0.4.0.")],
    from_: Annotated[
        str | None, typer.Option("--from", help="Package providing the command.")
    ] = None,
    invoked_as: Annotated[
        ToolRunCommand, typer.Option(help="How the tool run was invoked.")
    ] = ToolRunCommand.UVX,
    environment: Annotated[
        Path | None,
        typer.Option(
            "--environment",
            "-e",
            help="Tool environment to inspect for the packages providing the command.",
            file_okay=False,
        ),
    ] = None,
) -> None:
    """Split a tool-run target into its command and requirement."""
    context = _start_command(ctx, "tool-target", target=target)
    try:
        command, requirement = (target, from_) if from_ else parse_target(target)
        info = read_environment(environment) if environment is not None else None
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    context.echo(f"{invoked_as} {target}: run `{command}` from `{requirement}`")
    result: dict[str, object] = {
        "invoked_as": str(invoked_as),
        "command": command,
        "requirement": requirement,
    }
    if info is not None:
        packages = installed_packages(info.site_packages)
        package = provider_name(requirement)
        warning = (
            executable_provider_warning(command, package, packages, invoked_as)
            if package is not None
            else None
        )
        if warning is not None:
            context.logger.warning(
                "Executable not provided by the requested package",
                extra={"executable": command, "package": package},
            )
            context.echo(f"warning: {warning}")
        run_env = build_run_environment(info.scripts_dir, [info.site_packages])
        context.echo(f"environment: {info.root} (Python {info.version})")
        result["environment"] = {
            "path": str(info.root),
            "PATH": run_env["PATH"],
            "PYTHONPATH": run_env["PYTHONPATH"],
        }
        result["providers"] = [item.name for item in matching_packages(command, packages)]
        result["warning"] = warning
    context.builder.set_result(result)
    _finish(context)


def _resolve_docs_path(
    context: _CommandContext, config: Path | None, directory: Path | None
) -> Path:
    if config is not None:
        return config
    return (directory or Path.cwd()) / context.state.settings.docs_config


@app.command("nav")
def nav(
    ctx: typer.Context, config: _DocsConfigOption = None, directory: _DirectoryOption = None
) -> None:
    """Print the flattened documentation navigation."""
    context = _start_command(ctx, "nav")
    path = _resolve_docs_path(context, config, directory)
    try:
        docs = load_docs_config(path)
        entries = docs.nav_entries
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    context.builder.add_file(path=str(path), status="success")
    context.echo(f"{docs.site_name} (theme: {theme_name(docs) or 'default'})")
    for entry in entries:
        crumbs = " > ".join([*entry.trail, entry.title or entry.path])
        marker = " [external]" if entry.external else ""
        context.echo(f"  {crumbs}: {entry.path}{marker}")
    context.builder.set_result(
        {
            "site_name": docs.site_name,
            "docs_dir": str(docs.docs_dir),
            "theme": theme_name(docs),
            "markdown_extensions": markdown_extension_names(docs),
            "nav": [
                {
                    "title": entry.title,
                    "path": entry.path,
                    "trail": list(entry.trail),
                    "external": entry.external,
                }
                for entry in entries
            ],
        }
    )
    _finish(context)


@app.command("check")
def check(
    ctx: typer.Context,
    directory: _DirectoryOption = None,
    config: _DocsConfigOption = None,
    strict: Annotated[
        bool | None, typer.Option("--strict/--no-strict", help="Fail on warnings too.")
    ] = None,
    docs: Annotated[
        bool, typer.Option("--docs/--no-docs", help="Also check the documentation configuration.")
    ] = True,
    metrics_file: Annotated[
        Path | None, typer.Option(help="Write Prometheus metrics to this file.")
    ] = None,
) -> None:
    """Run every workspace and documentation consistency check."""
    context = _start_command(ctx, "check")
    strict_mode = context.state.settings.strict if strict is None else strict
    try:
        workspace = _discover(context, directory)
        docs_config = None
        if docs:
            docs_path = _resolve_docs_path(context, config, directory or workspace.root)
            if config is not None or docs_path.is_file():
                docs_config = load_docs_config(docs_path)
                context.builder.add_file(path=str(docs_path), status="success")
        report = run_checks(workspace, docs_config)
    except WorkspaceToolError as exc:
        _handle_failure(context, exc)

    record_findings(report.findings)
    for finding in report.findings:
        location = f" ({finding.path})" if finding.path else ""
        context.echo(f"{finding.severity}[{finding.code}] {finding.message}{location}")
        if finding.severity == "error" or (strict_mode and finding.severity == "warning"):
            context.builder.add_error(
                status="violation", message=finding.message, file=finding.path
            )
    summary = (
        f"{report.count('error')} error(s), {report.count('warning')} warning(s), "
        f"{report.count('info')} info"
    )
    context.echo(summary)
    context.builder.set_result(
        {
            "strict": strict_mode,
            "findings": [
                {
                    "code": finding.code,
                    "severity": finding.severity,
                    "message": finding.message,
                    "path": finding.path,
                }
                for finding in report.findings
            ],
        }
    )
    failed = report.failed(strict=strict_mode)
    if metrics_file is not None:
        metrics_file.parent.mkdir(parents=True, exist_ok=True)
        metrics_file.write_text(render_metrics(), encoding="utf-8")
    _finish(context, "violation" if failed else "success")


def main() -> None:
    """Console-script entry point."""
    app(prog_name=CLI_COMMAND)


if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    main()
