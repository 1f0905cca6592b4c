"""Rule-file grammar, specificity scoring and tier merging."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from agentguard.core.types import ParseError, ParseResult, Rule, RuleKind, RuleSource

_PREFIXES: dict[str, RuleKind] = {
    "!": RuleKind.BLOCK,
    "?": RuleKind.CONFIRM,
    "+": RuleKind.ALLOW,
}
_DIRECTIVES: dict[str, RuleKind] = {
    "@protect": RuleKind.PROTECT,
    "@sandbox": RuleKind.SANDBOX,
}
_KIND_PRECEDENCE: dict[RuleKind, int] = {
    RuleKind.BLOCK: 3,
    RuleKind.CONFIRM: 2,
    RuleKind.ALLOW: 1,
    RuleKind.PROTECT: 0,
    RuleKind.SANDBOX: 0,
}


def kind_precedence(kind: RuleKind) -> int:
    return _KIND_PRECEDENCE[kind]


def calculate_specificity(pattern: str) -> float:
    """One point per literal character, half per ``?``, none per ``*``.

    Absolute-path patterns get a 10 point bonus.
    """
    score = 0.0
    for char in pattern:
        if char == "*":
            continue
        score += 0.5 if char == "?" else 1.0
    if pattern.startswith("/"):
        score += 10
    return score


class RuleParser:
    """Parse rule-file text into :class:`Rule` objects."""

    def parse(self, content: str, source: RuleSource) -> ParseResult:
        result = ParseResult()
        for line_number, raw_line in enumerate(content.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            rule, error = self._parse_line(line, line_number, source)
            if rule is not None:
                result.rules.append(rule)
            if error is not None:
                result.errors.append(error)
        return result

    def parse_file(self, path: Path, source: RuleSource) -> ParseResult:
        """Parse a rule file; a missing file yields an empty result."""
        if not path.exists():
            return ParseResult()
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read rule file {}: {}", path, exc)
            return ParseResult(errors=[ParseError(0, f"Cannot read file: {exc}", source)])
        return self.parse(content, source)

    def _parse_line(
        self, line: str, line_number: int, source: RuleSource
    ) -> tuple[Rule | None, ParseError | None]:
        kind = _PREFIXES.get(line[0])
        if kind is not None:
            pattern = line[1:].strip()
            if not pattern:
                return None, ParseError(
                    line_number, f"{kind.value.upper()} rule missing pattern", source
                )
            return Rule(kind, pattern, source, calculate_specificity(pattern), line_number), None

        for directive, kind in _DIRECTIVES.items():
            if line == directive or line.startswith(directive + " ") or line.startswith(directive + "\t"):
                path = line[len(directive):].strip()
                if not path:
                    return None, ParseError(
                        line_number, f"{directive} directive missing path", source
                    )
                rule = Rule(
                    kind,
                    path,
                    source,
                    calculate_specificity(path),
                    line_number,
                    metadata={"path": path},
                )
                return rule, None

        return None, ParseError(line_number, f"Invalid rule syntax: {line}", source)


def _merge_key(rule: Rule) -> tuple[int, int, float]:
    return (kind_precedence(rule.kind), rule.source.precedence, rule.specificity)


def merge_rules(*rule_sets: list[Rule]) -> list[Rule]:
    """Merge rules from several tiers, keeping one rule per pattern.

    Within a pattern group the survivor is chosen by kind (block, confirm,
    allow, directives), then source (project, user, global), then specificity.
    Output keeps the order in which patterns were first seen.
    """
    winners: dict[str, Rule] = {}
    for rules in rule_sets:
        for rule in rules:
            current = winners.get(rule.pattern)
            if current is None or _merge_key(rule) > _merge_key(current):
                winners[rule.pattern] = rule
    return list(winners.values())


def format_rule(rule: Rule) -> str:
    """Render a rule back into rule-file syntax."""
    prefixes = {kind: prefix for prefix, kind in _PREFIXES.items()}
    if rule.kind in prefixes:
        return f"{prefixes[rule.kind]}{rule.pattern}"
    return f"@{rule.kind.value} {rule.pattern}"
