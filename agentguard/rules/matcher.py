"""Glob pattern matching of commands against rules, with precedence resolution."""

from __future__ import annotations

import posixpath
import re
from collections.abc import Callable, Iterable
from functools import cmp_to_key, lru_cache

from agentguard.core.environment import Environment
from agentguard.core.types import MatchResult, ParsedCommand, Rule, RuleKind

RuleComparator = Callable[[Rule, Rule], int]


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob into an anchored regex: ``*`` is ``.*``, ``?`` is ``.``."""
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def by_block(a: Rule, b: Rule) -> int:
    """A block rule beats any non-block rule."""
    return _sign(int(a.kind is RuleKind.BLOCK) - int(b.kind is RuleKind.BLOCK))


def by_specificity(a: Rule, b: Rule) -> int:
    """Higher specificity wins among rules of the same kind, and between confirm and allow."""
    kinds = {a.kind, b.kind}
    if a.kind is b.kind or kinds == {RuleKind.CONFIRM, RuleKind.ALLOW}:
        return _sign(a.specificity - b.specificity)
    return 0


def by_confirm_over_allow(a: Rule, b: Rule) -> int:
    """On a specificity tie, confirm wins over allow."""
    if {a.kind, b.kind} != {RuleKind.CONFIRM, RuleKind.ALLOW}:
        return 0
    return 1 if a.kind is RuleKind.CONFIRM else -1


def by_source(a: Rule, b: Rule) -> int:
    """Project beats user beats global."""
    return _sign(a.source.precedence - b.source.precedence)


PRECEDENCE: tuple[RuleComparator, ...] = (
    by_block,
    by_specificity,
    by_confirm_over_allow,
    by_source,
)


def compare_rules(a: Rule, b: Rule) -> int:
    """Positive when ``a`` takes precedence over ``b``."""
    for comparator in PRECEDENCE:
        outcome = comparator(a, b)
        if outcome:
            return outcome
    return 0


class PatternMatcher:
    """Match normalized commands against block/confirm/allow rules."""

    def __init__(self, env: Environment | None = None):
        self.env = env or Environment.from_process()

    def expand_pattern(self, pattern: str) -> str:
        """Expand ``$VAR``, ``${VAR}``, ``~`` and ``./`` words the way the tokenizer does."""
        words = self.env.expand_variables(pattern).split(" ")
        return " ".join(self._expand_word(word) for word in words)

    def _expand_word(self, word: str) -> str:
        word = self.env.expand_user(word)
        if word.startswith(("./", "../")):
            return posixpath.normpath(posixpath.join(self.env.cwd, word))
        return word

    def matches(self, text: str, rule: Rule) -> bool:
        return glob_to_regex(self.expand_pattern(rule.pattern)).fullmatch(text) is not None

    def matching_rules(self, text: str, rules: Iterable[Rule]) -> list[Rule]:
        return [rule for rule in rules if rule.kind.is_matchable and self.matches(text, rule)]

    def match(self, command: ParsedCommand, rules: Iterable[Rule]) -> MatchResult:
        return self.match_text(command.normalized, rules)

    def match_text(self, text: str, rules: Iterable[Rule]) -> MatchResult:
        candidates = self.matching_rules(text, rules)
        if not candidates:
            return MatchResult(matched=False)
        winner = max(candidates, key=cmp_to_key(compare_rules))
        return MatchResult(
            matched=True,
            rule=winner,
            confidence=min(winner.specificity / 100, 1.0),
        )
