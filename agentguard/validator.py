"""Entry point: raw command text in, :class:`ValidationResult` out.

``validate`` is pure apart from reading executed script files. It never
exits, prompts or writes logs of its own beyond debug output.
"""

from __future__ import annotations

from collections.abc import Sequence

from agentguard.analysis.script_analyzer import ScriptAnalyzer, ScriptLimits
from agentguard.config.schema import Config
from agentguard.core.environment import Environment
from agentguard.core.types import Rule, ValidationResult
from agentguard.rules.engine import RuleEngine
from agentguard.rules.loader import RuleSet, load_rules
from agentguard.shell.tokenizer import Tokenizer


class Validator:
    """Tokenizer plus rule engine bound to one environment and rule set."""

    def __init__(
        self,
        rules: Sequence[Rule] = (),
        env: Environment | None = None,
        *,
        limits: ScriptLimits | None = None,
        analyze_scripts: bool = True,
        fail_closed_scripts: bool = False,
    ):
        self.env = env or Environment.from_process()
        self.rules = list(rules)
        self.tokenizer = Tokenizer(self.env)
        self.engine = RuleEngine(
            self.env,
            analyzer=ScriptAnalyzer(self.env, limits),
            analyze_scripts=analyze_scripts,
            fail_closed_scripts=fail_closed_scripts,
        )

    @classmethod
    def from_config(
        cls, config: Config, env: Environment | None = None
    ) -> tuple[Validator, RuleSet]:
        """Build a validator from configuration, loading the tiered rule files."""
        env = env or Environment.from_process()
        ruleset = load_rules(config, env)
        settings = config.script_analysis
        validator = cls(
            ruleset.rules,
            env,
            limits=ScriptLimits(
                max_file_size=settings.max_file_size,
                max_lines=settings.max_lines,
                follow_symlinks=settings.follow_symlinks,
            ),
            analyze_scripts=settings.enabled,
            fail_closed_scripts=settings.fail_closed,
        )
        return validator, ruleset

    def validate(self, raw_command: str) -> ValidationResult:
        return self.engine.validate(self.tokenizer.tokenize(raw_command), self.rules)


def validate(
    raw_command: str,
    rules: Sequence[Rule] = (),
    env: Environment | None = None,
) -> ValidationResult:
    """Validate one command line against a rule set."""
    return Validator(rules, env).validate(raw_command)
