"""Shared types, environment and path helpers."""

from agentguard.core.environment import Environment
from agentguard.core.types import (
    ParsedCommand,
    Rule,
    RuleKind,
    RuleSource,
    ValidationAction,
    ValidationResult,
)

__all__ = [
    "Environment",
    "ParsedCommand",
    "Rule",
    "RuleKind",
    "RuleSource",
    "ValidationAction",
    "ValidationResult",
]
