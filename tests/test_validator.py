"""End-to-end validation of raw command text against rule sets."""

from pathlib import Path

from agentguard.config.schema import Config, RulesConfig, ScriptAnalysisConfig
from agentguard.core.environment import Environment
from agentguard.core.types import RuleSource, ValidationAction
from agentguard.rules.parser import RuleParser
from agentguard.validator import Validator, validate

ENV = Environment.synthetic(home="/home/agent", cwd="/workspace")


def rules(*lines: str):
    return RuleParser().parse("\n".join(lines), RuleSource.PROJECT).rules


def test_rm_rf_root_without_rules():
    result = validate("rm -rf /", [], ENV)
    assert result.action is ValidationAction.BLOCK
    assert result.metadata.estimated_impact == "catastrophic"
    assert result.rule is None


def test_allowed_cleanup():
    result = validate("rm -rf node_modules", rules("+rm -rf node_modules"), ENV)
    assert result.action is ValidationAction.ALLOW
    assert result.rule.pattern == "rm -rf node_modules"


def test_sudo_mkfs():
    result = validate("sudo mkfs.ext4 /dev/sda1", [], ENV)
    assert result.action is ValidationAction.BLOCK
    assert "mkfs.ext4" in result.reason


def test_allowed_segment_does_not_save_chain():
    result = validate("echo hi && rm -rf /", rules("+echo *"), ENV)
    assert result.action is ValidationAction.BLOCK


def test_block_rule_beats_allow_rule():
    result = validate("rm -rf /", rules("+rm -rf *", "!rm -rf /"), ENV)
    assert result.action is ValidationAction.BLOCK


def test_question_mark_matches_one_character():
    ruleset = rules("!rm -rf ?")
    assert validate("rm -rf a", ruleset, ENV).action is ValidationAction.BLOCK
    assert validate("rm -rf", ruleset, ENV).action is ValidationAction.ALLOW
    assert validate("rm -rf ab", ruleset, ENV).action is ValidationAction.ALLOW


def test_dangerous_python_script(tmp_path: Path):
    (tmp_path / "script.py").write_text('import shutil\nshutil.rmtree("/")\n', encoding="utf-8")
    env = Environment.synthetic(cwd=str(tmp_path))
    result = validate("python script.py", [], env)
    assert result.action is ValidationAction.BLOCK
    assert "catastrophic" in result.reason


def test_missing_script_fails_open():
    result = validate("python /missing.py", [], ENV)
    assert result.action is ValidationAction.ALLOW


def test_validation_is_repeatable():
    ruleset = rules("?git push*", "+git *")
    first = validate("git push origin main && git status", ruleset, ENV)
    second = validate("git push origin main && git status", ruleset, ENV)
    assert first == second
    assert first.action is ValidationAction.CONFIRM


def test_variables_come_from_the_environment():
    env = Environment.synthetic({"TARGET": "/etc"}, cwd="/workspace")
    assert validate("rm -rf $TARGET", [], env).action is ValidationAction.BLOCK
    assert validate("rm -rf $UNSET_TARGET", [], env).action is ValidationAction.ALLOW


class TestFromConfig:
    def _config(self, tmp_path: Path, **script_settings) -> Config:
        return Config(
            rules=RulesConfig(
                global_path=str(tmp_path / "global.rules"),
                user_path=str(tmp_path / "user.rules"),
            ),
            script_analysis=ScriptAnalysisConfig(**script_settings),
        )

    def test_loads_tiers(self, tmp_path: Path):
        (tmp_path / "global.rules").write_text("?npm publish*\n", encoding="utf-8")
        (tmp_path / ".agentguard").write_text("+npm test\nbad\n", encoding="utf-8")
        env = Environment.synthetic(cwd=str(tmp_path))

        validator, ruleset = Validator.from_config(self._config(tmp_path), env)

        assert len(ruleset.rules) == 2
        assert len(ruleset.errors) == 1
        assert validator.validate("npm publish").action is ValidationAction.CONFIRM
        assert validator.validate("npm test").reason == "Explicitly allowed by rule: npm test"

    def test_script_settings_are_applied(self, tmp_path: Path):
        (tmp_path / "job.py").write_text('import shutil\nshutil.rmtree("/")\n', encoding="utf-8")
        env = Environment.synthetic(cwd=str(tmp_path))

        disabled, _ = Validator.from_config(self._config(tmp_path, enabled=False), env)
        assert disabled.validate("python job.py").action is ValidationAction.ALLOW

        closed, _ = Validator.from_config(self._config(tmp_path, fail_closed=True), env)
        assert closed.validate("python gone.py").action is ValidationAction.BLOCK
