"""Tests for rule-file parsing, merging and tier loading."""

from pathlib import Path

import pytest

from agentguard.config.schema import Config, RulesConfig
from agentguard.core.environment import Environment
from agentguard.core.types import Rule, RuleKind, RuleSource
from agentguard.rules.defaults import DEFAULT_RULES_TEMPLATE
from agentguard.rules.loader import load_rules, rule_paths
from agentguard.rules.parser import (
    RuleParser,
    calculate_specificity,
    format_rule,
    merge_rules,
)

SAMPLE = """\
# Project rules

!rm -rf /
? git push --force*
+npm test
@protect /etc
@sandbox\t./build
"""


@pytest.fixture
def parser() -> RuleParser:
    return RuleParser()


def _shape(rules: list[Rule]) -> list[tuple[RuleKind, str]]:
    return [(r.kind, r.pattern) for r in rules]


class TestRuleParser:
    def test_parses_every_rule_kind(self, parser):
        result = parser.parse(SAMPLE, RuleSource.PROJECT)
        assert result.errors == []
        assert _shape(result.rules) == [
            (RuleKind.BLOCK, "rm -rf /"),
            (RuleKind.CONFIRM, "git push --force*"),
            (RuleKind.ALLOW, "npm test"),
            (RuleKind.PROTECT, "/etc"),
            (RuleKind.SANDBOX, "./build"),
        ]

    def test_line_numbers_and_source(self, parser):
        result = parser.parse(SAMPLE, RuleSource.USER)
        assert [r.line_number for r in result.rules] == [3, 4, 5, 6, 7]
        assert {r.source for r in result.rules} == {RuleSource.USER}

    def test_directives_carry_path_metadata(self, parser):
        result = parser.parse("@protect ~/secrets", RuleSource.PROJECT)
        assert result.rules[0].metadata == {"path": "~/secrets"}

    def test_comments_do_not_change_rules(self, parser):
        plain = parser.parse("!rm -rf /\n+ls", RuleSource.PROJECT)
        commented = parser.parse(
            "# header\n\n   # indented comment\n!rm -rf /\n# between\n+ls\n", RuleSource.PROJECT
        )
        assert _shape(plain.rules) == _shape(commented.rules)
        assert commented.errors == []

    def test_errors_do_not_stop_parsing(self, parser):
        content = "!\nbogus line\n@protect\n@protectx /foo\n?\n+\n+ls"
        result = parser.parse(content, RuleSource.PROJECT)
        assert _shape(result.rules) == [(RuleKind.ALLOW, "ls")]
        assert [(e.line, e.message) for e in result.errors] == [
            (1, "BLOCK rule missing pattern"),
            (2, "Invalid rule syntax: bogus line"),
            (3, "@protect directive missing path"),
            (4, "Invalid rule syntax: @protectx /foo"),
            (5, "CONFIRM rule missing pattern"),
            (6, "ALLOW rule missing pattern"),
        ]

    def test_format_round_trip(self, parser):
        original = parser.parse(SAMPLE, RuleSource.PROJECT)
        rendered = "\n".join(format_rule(rule) for rule in original.rules)
        reparsed = parser.parse(rendered, RuleSource.PROJECT)
        assert _shape(reparsed.rules) == _shape(original.rules)

    def test_default_template_parses_cleanly(self, parser):
        result = parser.parse(DEFAULT_RULES_TEMPLATE, RuleSource.PROJECT)
        assert result.errors == []
        patterns = {r.pattern for r in result.rules if r.kind is RuleKind.BLOCK}
        assert "rm -rf /" in patterns
        assert any(r.kind is RuleKind.CONFIRM for r in result.rules)
        assert any(r.kind is RuleKind.ALLOW for r in result.rules)

    def test_parse_missing_file(self, parser, tmp_path: Path):
        result = parser.parse_file(tmp_path / "absent", RuleSource.GLOBAL)
        assert result.rules == []
        assert result.errors == []

    def test_parse_unreadable_file(self, parser, tmp_path: Path):
        path = tmp_path / "rules"
        path.write_bytes(b"!rm -rf /\n\xff\xfe\xfa")
        result = parser.parse_file(path, RuleSource.GLOBAL)
        assert result.rules == []
        assert len(result.errors) == 1
        assert result.errors[0].line == 0
        assert result.errors[0].message.startswith("Cannot read file")


@pytest.mark.parametrize(
    "pattern,expected",
    [
        ("rm -rf /", 8.0),
        ("rm *", 3.0),
        ("ls -?", 4.5),
        ("/usr/bin/x", 20.0),
        ("*", 0.0),
    ],
)
def test_calculate_specificity(pattern, expected):
    assert calculate_specificity(pattern) == expected


def _rule(kind: RuleKind, pattern: str, source: RuleSource, line: int = 1) -> Rule:
    return Rule(kind, pattern, source, calculate_specificity(pattern), line)


class TestMergeRules:
    def test_block_survives_over_later_allow(self):
        global_rules = [_rule(RuleKind.BLOCK, "rm -rf /", RuleSource.GLOBAL)]
        project_rules = [_rule(RuleKind.ALLOW, "rm -rf /", RuleSource.PROJECT)]
        merged = merge_rules(global_rules, [], project_rules)
        assert [(r.kind, r.source) for r in merged] == [(RuleKind.BLOCK, RuleSource.GLOBAL)]

    def test_same_kind_prefers_project(self):
        merged = merge_rules(
            [_rule(RuleKind.CONFIRM, "git push*", RuleSource.GLOBAL)],
            [_rule(RuleKind.CONFIRM, "git push*", RuleSource.USER)],
            [_rule(RuleKind.CONFIRM, "git push*", RuleSource.PROJECT)],
        )
        assert [r.source for r in merged] == [RuleSource.PROJECT]

    def test_one_rule_per_pattern_in_first_seen_order(self):
        merged = merge_rules(
            [_rule(RuleKind.ALLOW, "ls", RuleSource.GLOBAL), _rule(RuleKind.ALLOW, "pwd", RuleSource.GLOBAL)],
            [_rule(RuleKind.CONFIRM, "ls", RuleSource.USER), _rule(RuleKind.BLOCK, "mkfs*", RuleSource.USER)],
        )
        assert [(r.pattern, r.kind) for r in merged] == [
            ("ls", RuleKind.CONFIRM),
            ("pwd", RuleKind.ALLOW),
            ("mkfs*", RuleKind.BLOCK),
        ]

    def test_empty(self):
        assert merge_rules() == []
        assert merge_rules([], []) == []


class TestLoadRules:
    def _config(self, tmp_path: Path) -> Config:
        return Config(
            rules=RulesConfig(
                global_path=str(tmp_path / "global.rules"),
                user_path=str(tmp_path / "user.rules"),
                project_file=".agentguard",
            )
        )

    def test_rule_paths_resolve_project_against_cwd(self, tmp_path: Path):
        env = Environment.synthetic(cwd=str(tmp_path / "proj"))
        paths = rule_paths(self._config(tmp_path), env)
        assert list(paths) == [RuleSource.GLOBAL, RuleSource.USER, RuleSource.PROJECT]
        assert paths[RuleSource.PROJECT] == tmp_path / "proj" / ".agentguard"

    def test_user_path_expands_home(self):
        env = Environment.synthetic(home="/home/agent", cwd="/workspace")
        paths = rule_paths(Config(), env)
        assert paths[RuleSource.USER] == Path("/home/agent/.config/agentguard/rules")

    def test_loads_and_merges_all_tiers(self, tmp_path: Path):
        project_dir = tmp_path / "proj"
        project_dir.mkdir()
        (tmp_path / "global.rules").write_text("!rm -rf /\n+ls\n", encoding="utf-8")
        (tmp_path / "user.rules").write_text("?ls\nnot a rule\n", encoding="utf-8")
        (project_dir / ".agentguard").write_text("+ls\n+npm test\n", encoding="utf-8")

        env = Environment.synthetic(cwd=str(project_dir))
        ruleset = load_rules(self._config(tmp_path), env)

        assert [(r.pattern, r.kind, r.source) for r in ruleset.rules] == [
            ("rm -rf /", RuleKind.BLOCK, RuleSource.GLOBAL),
            ("ls", RuleKind.CONFIRM, RuleSource.USER),
            ("npm test", RuleKind.ALLOW, RuleSource.PROJECT),
        ]
        assert [(e.source, e.line) for e in ruleset.errors] == [(RuleSource.USER, 2)]

    def test_missing_files_give_empty_set(self, tmp_path: Path):
        env = Environment.synthetic(cwd=str(tmp_path))
        ruleset = load_rules(self._config(tmp_path), env)
        assert ruleset.rules == []
        assert ruleset.errors == []
