"""Shared DTOs used across the tokenizer, rule engine and script analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class RuleKind(str, Enum):
    """What a rule line asks the engine to do."""

    BLOCK = "block"
    CONFIRM = "confirm"
    ALLOW = "allow"
    PROTECT = "protect"
    SANDBOX = "sandbox"

    @property
    def is_matchable(self) -> bool:
        return self in (RuleKind.BLOCK, RuleKind.CONFIRM, RuleKind.ALLOW)


class RuleSource(str, Enum):
    """Provenance tier of a rule file."""

    GLOBAL = "global"
    USER = "user"
    PROJECT = "project"

    @property
    def precedence(self) -> int:
        return _SOURCE_PRECEDENCE[self]


_SOURCE_PRECEDENCE = {
    RuleSource.GLOBAL: 1,
    RuleSource.USER: 2,
    RuleSource.PROJECT: 3,
}


class ValidationAction(str, Enum):
    """Final decision for a command."""

    ALLOW = "allow"
    BLOCK = "block"
    CONFIRM = "confirm"


class TokenType(str, Enum):
    COMMAND = "command"
    ARGUMENT = "argument"
    OPERATOR = "operator"
    REDIRECT = "redirect"


@dataclass(frozen=True, slots=True)
class Rule:
    """One parsed policy line."""

    kind: RuleKind
    pattern: str
    source: RuleSource
    specificity: float
    line_number: int
    metadata: dict[str, str] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "pattern": self.pattern,
            "source": self.source.value,
            "specificity": self.specificity,
            "line_number": self.line_number,
        }
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload


@dataclass(frozen=True, slots=True)
class ParseError:
    """Diagnostic for a rule line that could not be parsed."""

    line: int
    message: str
    source: RuleSource

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "message": self.message, "source": self.source.value}


@dataclass(slots=True)
class ParseResult:
    rules: list[Rule] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexeme of a command line."""

    type: TokenType
    value: str
    original_value: str
    position: int


@dataclass(frozen=True, slots=True)
class CommandSegment:
    """One command between chain/pipe operators.

    ``operator`` is the operator that follows this segment, ``None`` on the last one.
    """

    command: str
    args: tuple[str, ...] = ()
    operator: str | None = None

    @property
    def text(self) -> str:
        return " ".join((self.command, *self.args)).strip()


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    """Structured view of a raw command line."""

    original: str
    normalized: str
    tokens: tuple[Token, ...]
    segments: tuple[CommandSegment, ...]
    is_chained: bool = False
    is_piped: bool = False

    @classmethod
    def from_segment(cls, segment: CommandSegment) -> ParsedCommand:
        """Build a single-segment command used for per-segment validation."""
        text = segment.text
        return cls(
            original=text,
            normalized=text,
            tokens=(),
            segments=(CommandSegment(segment.command, segment.args),),
        )


@dataclass(frozen=True, slots=True)
class UnwrappedCommand:
    """The command actually executed once wrapper commands are stripped."""

    command: str
    args: tuple[str, ...]
    wrappers: tuple[str, ...] = ()
    has_dynamic_args: bool = False
    dynamic_reason: str | None = None

    @property
    def wrapper_trail(self) -> str:
        return " -> ".join(self.wrappers)


@dataclass(frozen=True, slots=True)
class MatchResult:
    matched: bool
    rule: Rule | None = None
    confidence: float = 0.0


@dataclass(frozen=True, slots=True)
class ResultMetadata:
    """Extra context attached to catastrophic decisions."""

    target_paths: tuple[str, ...] = ()
    affected_files: int | None = None
    estimated_impact: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.target_paths:
            payload["target_paths"] = list(self.target_paths)
        if self.affected_files is not None:
            payload["affected_files"] = self.affected_files
        if self.estimated_impact is not None:
            payload["estimated_impact"] = self.estimated_impact
        return payload


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Decision for one command, always with a human-readable reason."""

    action: ValidationAction
    reason: str
    rule: Rule | None = None
    metadata: ResultMetadata | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"action": self.action.value, "reason": self.reason}
        if self.rule is not None:
            payload["rule"] = self.rule.to_dict()
        if self.metadata is not None:
            payload["metadata"] = self.metadata.to_dict()
        return payload


class ScriptRuntime(str, Enum):
    PYTHON = "python"
    NODE = "node"
    SHELL = "shell"
    RUBY = "ruby"
    PERL = "perl"
    PHP = "php"
    ALL = "all"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CATASTROPHIC = "catastrophic"


class ThreatCategory(str, Enum):
    DELETION = "deletion"
    SYSTEM_MODIFICATION = "system_modification"
    DATA_EXFILTRATION = "data_exfiltration"
    SHELL_EXECUTION = "shell_execution"


@dataclass(slots=True)
class ScriptThreat:
    """A dangerous-pattern hit inside a script.

    Severity is mutable: deletion threats may be upgraded after the whole
    script body has been inspected.
    """

    pattern_id: str
    line_number: int
    line_content: str
    category: ThreatCategory
    severity: Severity
    target_paths: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "line_number": self.line_number,
            "line_content": self.line_content,
            "category": self.category.value,
            "severity": self.severity.value,
            "target_paths": list(self.target_paths),
        }


@dataclass(slots=True)
class ScriptAnalysisResult:
    """Outcome of scanning one script; ``analyzed=False`` means it could not be read."""

    script_path: str
    analyzed: bool = False
    runtime: ScriptRuntime = ScriptRuntime.UNKNOWN
    threats: list[ScriptThreat] = field(default_factory=list)
    should_block: bool = False
    block_reason: str | None = None
    analysis_error: str | None = None


@dataclass(slots=True)
class AuditEntry:
    """One persisted decision."""

    command: str
    action: ValidationAction
    reason: str
    rule: str | None = None
    exit_code: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "command": self.command,
            "action": self.action.value,
            "reason": self.reason,
        }
        if self.rule is not None:
            payload["rule"] = self.rule
        if self.exit_code is not None:
            payload["exit_code"] = self.exit_code
        return payload
