"""Rule engine: the short-circuiting decision pipeline for one parsed command.

Stages, in order:

1. inherently dangerous commands (disk formatting, raw block-device writes)
2. catastrophic targets (recursive deletes of critical paths, dynamic
   recursive deletes, ``find -delete`` on critical roots, dangerous scripts)
3. block rules matched against the whole multi-segment command
4. per-segment validation of chains and pipes
5. rule matching with a default-allow fallback
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from loguru import logger

from agentguard.analysis.script_analyzer import ScriptAnalyzer
from agentguard.core.environment import Environment
from agentguard.core.paths import is_catastrophic_path
from agentguard.core.types import (
    ParsedCommand,
    ResultMetadata,
    Rule,
    RuleKind,
    ScriptAnalysisResult,
    UnwrappedCommand,
    ValidationAction,
    ValidationResult,
)
from agentguard.rules.matcher import PatternMatcher
from agentguard.shell.unwrapper import CommandUnwrapper, base_name, find_search_roots

DESTRUCTIVE_COMMANDS = frozenset({"rm", "rmdir", "unlink", "shred"})
PARTITION_TOOLS = frozenset({"mke2fs", "mkswap", "fdisk", "parted", "gdisk", "cfdisk", "sfdisk"})
BLOCK_DEVICE = re.compile(r"^/dev/([hs]d[a-z]|nvme|vd[a-z]|xvd[a-z]|mmcblk)")

CATASTROPHIC_IMPACT = "catastrophic"

_RULE_ACTIONS: dict[RuleKind, tuple[ValidationAction, str]] = {
    RuleKind.BLOCK: (ValidationAction.BLOCK, "Blocked by rule: {}"),
    RuleKind.CONFIRM: (ValidationAction.CONFIRM, "Confirmation required by rule: {}"),
    RuleKind.ALLOW: (ValidationAction.ALLOW, "Explicitly allowed by rule: {}"),
}
DEFAULT_ALLOW_REASON = "No matching rules - default allow policy"


def has_recursive_flag(args: Sequence[str]) -> bool:
    """Any single-dash flag containing ``r``/``R``, or ``--recursive``."""
    for arg in args:
        if arg == "--":
            return False
        if arg == "--recursive":
            return True
        if arg.startswith("-") and not arg.startswith("--") and ("r" in arg or "R" in arg):
            return True
    return False


def operands(args: Sequence[str]) -> list[str]:
    """Non-flag arguments; everything after ``--`` is an operand."""
    result: list[str] = []
    end_of_options = False
    for arg in args:
        if not end_of_options and arg == "--":
            end_of_options = True
        elif end_of_options or not arg.startswith("-") or arg == "-":
            result.append(arg)
    return result


def _via(command: UnwrappedCommand) -> str:
    return f" (via {command.wrapper_trail})" if command.wrappers else ""


def _catastrophic(reason: str, targets: Sequence[str] = ()) -> ValidationResult:
    return ValidationResult(
        action=ValidationAction.BLOCK,
        reason=reason,
        metadata=ResultMetadata(target_paths=tuple(targets), estimated_impact=CATASTROPHIC_IMPACT),
    )


class RuleEngine:
    """Evaluate parsed commands against a rule set."""

    def __init__(
        self,
        env: Environment | None = None,
        *,
        analyzer: ScriptAnalyzer | None = None,
        unwrapper: CommandUnwrapper | None = None,
        matcher: PatternMatcher | None = None,
        analyze_scripts: bool = True,
        fail_closed_scripts: bool = False,
    ):
        self.env = env or Environment.from_process()
        self.analyzer = analyzer or ScriptAnalyzer(self.env)
        self.unwrapper = unwrapper or CommandUnwrapper()
        self.matcher = matcher or PatternMatcher(self.env)
        self.analyze_scripts = analyze_scripts
        self.fail_closed_scripts = fail_closed_scripts

    def validate(self, command: ParsedCommand, rules: Sequence[Rule]) -> ValidationResult:
        if not command.segments:
            return ValidationResult(ValidationAction.ALLOW, "Empty command - nothing to validate")

        unwrapped = [self.unwrapper.unwrap(segment) for segment in command.segments]
        flattened = [item for items in unwrapped for item in items]

        result = self.check_inherently_dangerous(flattened)
        if result is None:
            result = self.check_catastrophic(flattened)
        if result is not None:
            logger.debug("Built-in check blocked {!r}: {}", command.normalized, result.reason)
            return result

        if len(command.segments) > 1:
            return self._validate_segments(command, rules)
        return self.match_rules(command, rules)

    def check_inherently_dangerous(
        self, commands: Sequence[UnwrappedCommand]
    ) -> ValidationResult | None:
        """Disk formatting/partitioning tools and ``dd`` onto block devices."""
        for command in commands:
            name = base_name(command.command)
            if name.startswith("mkfs") or name in PARTITION_TOOLS:
                return _catastrophic(
                    f"Inherently dangerous command: {name} formats or partitions disks{_via(command)}",
                    operands(command.args),
                )
            if name == "dd":
                devices = [
                    arg[3:]
                    for arg in command.args
                    if arg.startswith("of=") and BLOCK_DEVICE.match(arg[3:])
                ]
                if devices:
                    return _catastrophic(
                        f"Inherently dangerous command: dd writing to block device "
                        f"{', '.join(devices)}{_via(command)}",
                        devices,
                    )
        return None

    def check_catastrophic(self, commands: Sequence[UnwrappedCommand]) -> ValidationResult | None:
        """Critical-path deletions, unverifiable recursive deletes and dangerous scripts."""
        for command in commands:
            result = self._check_destructive(command) or self._check_script(command)
            if result is not None:
                return result
        return None

    def match_rules(self, command: ParsedCommand, rules: Sequence[Rule]) -> ValidationResult:
        """Map the winning block/confirm/allow rule to an action, or allow by default."""
        matchable = [rule for rule in rules if rule.kind.is_matchable]
        match = self.matcher.match(command, matchable)
        if not match.matched or match.rule is None:
            return ValidationResult(ValidationAction.ALLOW, DEFAULT_ALLOW_REASON)
        action, template = _RULE_ACTIONS[match.rule.kind]
        logger.debug("Rule {!r} matched {!r}", match.rule.pattern, command.normalized)
        return ValidationResult(action, template.format(match.rule.pattern), rule=match.rule)

    def _check_destructive(self, command: UnwrappedCommand) -> ValidationResult | None:
        name = base_name(command.command)
        if name == "find" and "-delete" in command.args:
            roots = [
                root for root in find_search_roots(command.args)
                if is_catastrophic_path(root, self.env)
            ]
            if roots:
                return _catastrophic(
                    f"Catastrophic operation: find -delete on {', '.join(roots)}{_via(command)}",
                    roots,
                )
            return None

        if name not in DESTRUCTIVE_COMMANDS or not has_recursive_flag(command.args):
            return None
        if command.has_dynamic_args:
            return _catastrophic(
                f"Recursive {name} with dynamic arguments cannot be verified: "
                f"{command.dynamic_reason}{_via(command)}"
            )
        targets = [arg for arg in operands(command.args) if is_catastrophic_path(arg, self.env)]
        if targets:
            return _catastrophic(
                f"Catastrophic operation: {name} targeting {', '.join(targets)}{_via(command)}",
                targets,
            )
        return None

    def _check_script(self, command: UnwrappedCommand) -> ValidationResult | None:
        if not self.analyze_scripts:
            return None
        script = self.analyzer.detect_script_execution(command.command, command.args)
        if script is None:
            return None
        analysis = self.analyzer.analyze(script)
        if analysis.should_block:
            return self._script_block(script, command, analysis)
        if not analysis.analyzed:
            if self.fail_closed_scripts:
                return ValidationResult(
                    ValidationAction.BLOCK,
                    f"Script {script} could not be analyzed: {analysis.analysis_error}",
                )
            logger.debug("Allowing unanalyzed script {}: {}", script, analysis.analysis_error)
        return None

    def _script_block(
        self, script: str, command: UnwrappedCommand, analysis: ScriptAnalysisResult
    ) -> ValidationResult:
        targets = [path for threat in analysis.threats for path in threat.target_paths]
        return ValidationResult(
            action=ValidationAction.BLOCK,
            reason=f"Script {script} contains dangerous operations{_via(command)}: "
            f"{analysis.block_reason}",
            metadata=ResultMetadata(
                target_paths=tuple(dict.fromkeys(targets)),
                affected_files=1,
                estimated_impact=CATASTROPHIC_IMPACT,
            ),
        )

    def _validate_segments(self, command: ParsedCommand, rules: Sequence[Rule]) -> ValidationResult:
        matchable = [rule for rule in rules if rule.kind.is_matchable]
        whole = self.matcher.match(command, matchable)
        if whole.matched and whole.rule is not None and whole.rule.kind is RuleKind.BLOCK:
            return ValidationResult(
                ValidationAction.BLOCK, f"Blocked by rule: {whole.rule.pattern}", rule=whole.rule
            )

        confirm: ValidationResult | None = None
        allowed_by: Rule | None = None
        for segment in command.segments:
            result = self.validate(ParsedCommand.from_segment(segment), rules)
            if result.action is ValidationAction.BLOCK:
                return ValidationResult(
                    ValidationAction.BLOCK,
                    f'Chained command blocked: segment "{segment.text}" - {result.reason}',
                    rule=result.rule,
                    metadata=result.metadata,
                )
            if result.action is ValidationAction.CONFIRM and confirm is None:
                confirm = result
            elif result.action is ValidationAction.ALLOW and result.rule and allowed_by is None:
                allowed_by = result.rule

        if confirm is not None:
            return ValidationResult(
                ValidationAction.CONFIRM,
                f"Chained command requires confirmation: {confirm.reason}",
                rule=confirm.rule,
                metadata=confirm.metadata,
            )
        if allowed_by is not None:
            return ValidationResult(
                ValidationAction.ALLOW, "All segments in chained command allowed", rule=allowed_by
            )
        return ValidationResult(
            ValidationAction.ALLOW, "All segments in chained command allowed - default policy"
        )
