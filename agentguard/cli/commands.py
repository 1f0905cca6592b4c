"""CLI commands for agentguard."""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import typer
from loguru import logger

from agentguard import __app_name__, __logo__, __version__
from agentguard.config.schema import Config
from agentguard.core.environment import Environment
from agentguard.core.types import AuditEntry, ValidationAction, ValidationResult
from agentguard.rules.loader import RuleSet
from agentguard.rules.parser import format_rule
from agentguard.validator import Validator

app = typer.Typer(
    name="agentguard",
    help=f"{__logo__} {__app_name__} - policy guard for AI agent shell commands",
    no_args_is_help=True,
)

EXIT_BLOCKED = 2

_HEADLINES: dict[ValidationAction, tuple[str, str]] = {
    ValidationAction.BLOCK: ("WOULD BE BLOCKED", typer.colors.RED),
    ValidationAction.ALLOW: ("WOULD BE ALLOWED", typer.colors.GREEN),
    ValidationAction.CONFIRM: ("WOULD REQUIRE CONFIRMATION", typer.colors.YELLOW),
}


def version_callback(value: bool):
    if value:
        typer.echo(f"{__logo__} agentguard v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs on stderr"),
):
    """AgentGuard - decide whether an agent's shell command may run."""
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("agentguard")
    else:
        # Hook stdout/stderr are a protocol, keep them clean.
        logger.disable("agentguard")


# ============================================================================
# Helpers
# ============================================================================


def _environment(cwd: str | None = None) -> Environment:
    env = Environment.from_process()
    if cwd:
        return Environment(variables=env.variables, home=env.home, cwd=cwd)
    return env


def _load(cwd: str | None = None) -> tuple[Config, Validator, RuleSet]:
    from agentguard.config.loader import load_config

    config = load_config()
    validator, ruleset = Validator.from_config(config, _environment(cwd))
    return config, validator, ruleset


def _audit(config: Config, entry: AuditEntry) -> None:
    if not config.audit.enabled:
        return
    from agentguard.config.loader import get_audit_path
    from agentguard.observability.audit import AuditLog

    audit_log = AuditLog(
        get_audit_path(config),
        rotate_bytes=config.audit.rotate_bytes,
        max_backups=config.audit.max_backups,
    )
    asyncio.run(audit_log.record(entry))


def _entry(
    command: str, result: ValidationResult, *, exit_code: int | None = None, reason: str | None = None
) -> AuditEntry:
    return AuditEntry(
        command=command,
        action=result.action,
        reason=reason or result.reason,
        rule=result.rule.pattern if result.rule else None,
        exit_code=exit_code,
    )


def _print_result(command: str, result: ValidationResult) -> None:
    headline, color = _HEADLINES[result.action]
    typer.secho(headline, fg=color, bold=True)
    typer.echo(f"Command: {command}")
    typer.echo(f"Reason:  {result.reason}")
    if result.rule is not None:
        rule = result.rule
        typer.echo(f"Rule:    {format_rule(rule)} ({rule.source.value} rules, line {rule.line_number})")
    if result.metadata is not None:
        if result.metadata.target_paths:
            typer.echo(f"Targets: {', '.join(result.metadata.target_paths)}")
        if result.metadata.estimated_impact:
            typer.echo(f"Impact:  {result.metadata.estimated_impact}")


async def _execute(command: str) -> int:
    """Run the approved command through the user's shell with inherited stdio."""
    process = await asyncio.create_subprocess_shell(
        command,
        executable=os.environ.get("SHELL") or "/bin/sh",
    )
    return await process.wait()


# ============================================================================
# Commands
# ============================================================================


@app.command()
def check(
    command: str = typer.Argument(..., help="Command to validate"),
    json_output: bool = typer.Option(False, "--json", help="Print the decision as JSON"),
):
    """Show what would happen to a command, without running it."""
    _, validator, _ = _load()
    result = validator.validate(command)
    if json_output:
        typer.echo(json.dumps({"command": command, **result.to_dict()}, indent=2))
        return
    _print_result(command, result)


@app.command()
def init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing rule file"),
):
    """Write the default rule file into the current directory."""
    from agentguard.config.loader import load_config
    from agentguard.rules.defaults import DEFAULT_RULES_TEMPLATE

    config = load_config()
    path = Path.cwd() / config.rules.project_file
    if path.exists() and not force:
        typer.echo(f"Rule file already exists at {path}")
        if not typer.confirm("Overwrite?"):
            typer.echo("Existing rules kept.")
            raise typer.Exit()
    path.write_text(DEFAULT_RULES_TEMPLATE, encoding="utf-8")
    typer.secho(f"✓ Created {path}", fg=typer.colors.GREEN)


@app.command()
def hook():
    """Answer a PreToolUse hook payload read from stdin."""
    from agentguard.interfaces.hook import decision_for, parse_hook_payload

    text = typer.get_text_stream("stdin").read()
    try:
        request = parse_hook_payload(text)
    except ValueError as exc:
        logger.warning("Ignoring invalid hook payload: {}", exc)
        raise typer.Exit(0)
    if request is None:
        raise typer.Exit(0)

    config, validator, _ = _load(request.cwd)
    result = validator.validate(request.command)
    decision = decision_for(result)
    _audit(config, _entry(request.command, result, exit_code=decision.exit_code))

    if decision.stdout:
        typer.echo(decision.stdout)
    if decision.stderr:
        typer.echo(decision.stderr, err=True)
    raise typer.Exit(decision.exit_code)


@app.command(context_settings={"ignore_unknown_options": True})
def run(
    command: list[str] = typer.Argument(..., help="Command to validate and execute"),
):
    """Validate a command, ask when required, then execute it."""
    from agentguard.cli.confirm import ConfirmationPrompt

    raw = " ".join(command)
    config, validator, _ = _load()
    result = validator.validate(raw)

    if result.action is ValidationAction.BLOCK:
        typer.secho(f"✗ BLOCKED: {raw}", fg=typer.colors.RED, bold=True, err=True)
        typer.echo(f"Reason: {result.reason}", err=True)
        _audit(config, _entry(raw, result, exit_code=EXIT_BLOCKED))
        raise typer.Exit(EXIT_BLOCKED)

    if result.action is ValidationAction.CONFIRM:
        prompt = ConfirmationPrompt(
            config.confirmation.timeout, config.confirmation.default_action
        )
        outcome = prompt.ask(raw, result)
        if not outcome.approved:
            why = "Confirmation timed out" if outcome.timed_out else "Denied by user"
            typer.secho(f"✗ {why}: {raw}", fg=typer.colors.RED, err=True)
            denied = ValidationResult(ValidationAction.BLOCK, f"{why}: {result.reason}", result.rule)
            _audit(config, _entry(raw, denied, exit_code=EXIT_BLOCKED))
            raise typer.Exit(EXIT_BLOCKED)

    exit_code = asyncio.run(_execute(raw))
    _audit(config, _entry(raw, result, exit_code=exit_code))
    raise typer.Exit(exit_code)


@app.command()
def rules(
    json_output: bool = typer.Option(False, "--json", help="Print rules as JSON"),
):
    """List the merged rule set and any parse errors."""
    _, _, ruleset = _load()
    if json_output:
        payload = {
            "sources": {source.value: str(path) for source, path in ruleset.sources.items()},
            "rules": [rule.to_dict() for rule in ruleset.rules],
            "errors": [error.to_dict() for error in ruleset.errors],
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    for source, path in ruleset.sources.items():
        state = "found" if path.exists() else "missing"
        typer.echo(f"{source.value:<8} {path} ({state})")
    typer.echo("")
    if not ruleset.rules:
        typer.echo("No rules loaded.")
    for rule in ruleset.rules:
        typer.echo(f"{format_rule(rule):<40} {rule.source.value}:{rule.line_number}")
    for error in ruleset.errors:
        typer.secho(
            f"! {error.source.value} line {error.line}: {error.message}",
            fg=typer.colors.YELLOW,
        )


@app.command()
def log(
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum entries to show"),
    action: str | None = typer.Option(None, "--action", "-a", help="allow, block or confirm"),
    json_output: bool = typer.Option(False, "--json", help="Print entries as JSON lines"),
):
    """Show recent audit log entries."""
    from agentguard.config.loader import get_audit_path, load_config
    from agentguard.observability.audit import AuditLog

    if action is not None and action not in {a.value for a in ValidationAction}:
        typer.secho(f"Unknown action: {action}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    config = load_config()
    audit_log = AuditLog(get_audit_path(config), max_backups=config.audit.max_backups)
    entries = audit_log.query(action=action, limit=limit)
    if json_output:
        for entry in entries:
            typer.echo(json.dumps(entry, ensure_ascii=False))
        return
    if not entries:
        typer.echo("No audit entries.")
        return
    for entry in entries:
        stamp = str(entry.get("timestamp", ""))[:19].replace("T", " ")
        verdict = str(entry.get("action", "?")).upper()
        typer.echo(f"{stamp}  {verdict:<8} {entry.get('command', '')}")
        typer.echo(f"{'':21}{entry.get('reason', '')}")


if __name__ == "__main__":
    app()
