"""Tiered rule-file loading (global, user, project)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from agentguard.config.schema import Config
from agentguard.core.environment import Environment
from agentguard.core.types import ParseError, Rule, RuleSource
from agentguard.rules.parser import RuleParser, merge_rules


@dataclass(slots=True)
class RuleSet:
    """Merged rules plus every parse diagnostic collected while loading."""

    rules: list[Rule] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    sources: dict[RuleSource, Path] = field(default_factory=dict)


def rule_paths(config: Config, env: Environment) -> dict[RuleSource, Path]:
    """Resolve the rule file of each tier, in global, user, project order."""
    project = Path(env.expand(config.rules.project_file))
    if not project.is_absolute():
        project = Path(env.cwd) / project
    return {
        RuleSource.GLOBAL: Path(env.expand(config.rules.global_path)),
        RuleSource.USER: Path(env.expand(config.rules.user_path)),
        RuleSource.PROJECT: project,
    }


def load_rules(config: Config | None = None, env: Environment | None = None) -> RuleSet:
    """Parse every tier and merge them into one rule set."""
    config = config or Config()
    env = env or Environment.from_process()
    parser = RuleParser()
    ruleset = RuleSet(sources=rule_paths(config, env))
    tiers: list[list[Rule]] = []
    for source, path in ruleset.sources.items():
        parsed = parser.parse_file(path, source)
        for error in parsed.errors:
            logger.warning("{}:{}: {}", path, error.line, error.message)
        if parsed.rules:
            logger.debug("Loaded {} {} rules from {}", len(parsed.rules), source.value, path)
        tiers.append(parsed.rules)
        ruleset.errors.extend(parsed.errors)
    ruleset.rules = merge_rules(*tiers)
    return ruleset
