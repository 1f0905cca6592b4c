"""Tests for glob matching and rule precedence."""

import pytest

from agentguard.core.environment import Environment
from agentguard.core.types import Rule, RuleKind, RuleSource
from agentguard.rules.matcher import PatternMatcher, compare_rules, glob_to_regex
from agentguard.rules.parser import calculate_specificity
from agentguard.shell.tokenizer import Tokenizer

ENV = Environment.synthetic({"PROJECT": "/srv/app"}, home="/home/agent", cwd="/workspace")


def rule(kind: RuleKind, pattern: str, source: RuleSource = RuleSource.PROJECT) -> Rule:
    return Rule(kind, pattern, source, calculate_specificity(pattern), 1)


@pytest.fixture
def matcher() -> PatternMatcher:
    return PatternMatcher(ENV)


@pytest.mark.parametrize(
    "pattern,text,expected",
    [
        ("rm -rf *", "rm -rf build", True),
        ("rm -rf *", "rm -rf", False),
        ("rm -rf", "rm -rf build", False),
        ("git push -f*", "git push -f origin main", True),
        ("ls -?", "ls -l", True),
        ("ls -?", "ls -la", False),
        ("echo a.b", "echo axb", False),
        ("echo (x)", "echo (x)", True),
    ],
)
def test_glob_full_match(pattern, text, expected):
    assert (glob_to_regex(pattern).fullmatch(text) is not None) is expected


def test_star_spans_path_separators(matcher):
    assert matcher.matches("rm -rf /tmp/a/b/c", rule(RuleKind.BLOCK, "rm -rf /tmp/*"))


def test_pattern_variables_and_home_are_expanded(matcher):
    assert matcher.expand_pattern("rm -rf $PROJECT/build") == "rm -rf /srv/app/build"
    assert matcher.expand_pattern("rm -rf ~/*") == "rm -rf /home/agent/*"
    assert matcher.expand_pattern("./deploy.sh *") == "/workspace/deploy.sh *"


def test_pattern_and_command_expand_alike(matcher):
    parsed = Tokenizer(ENV).tokenize("rm -rf ~/notes")
    result = matcher.match(parsed, [rule(RuleKind.BLOCK, "rm -rf ~/notes")])
    assert result.matched
    assert result.rule.pattern == "rm -rf ~/notes"


def test_no_match(matcher):
    result = matcher.match_text("ls -la", [rule(RuleKind.BLOCK, "rm *")])
    assert not result.matched
    assert result.rule is None
    assert result.confidence == 0.0


def test_directive_rules_are_never_matched(matcher):
    rules = [rule(RuleKind.PROTECT, "*"), rule(RuleKind.SANDBOX, "*")]
    assert matcher.matching_rules("anything", rules) == []
    assert not matcher.match_text("anything", rules).matched


def test_block_beats_more_specific_allow(matcher):
    block = rule(RuleKind.BLOCK, "rm -rf *")
    allow = rule(RuleKind.ALLOW, "rm -rf node_modules")
    assert matcher.match_text("rm -rf node_modules", [allow, block]).rule == block


def test_more_specific_allow_beats_confirm(matcher):
    confirm = rule(RuleKind.CONFIRM, "rm *")
    allow = rule(RuleKind.ALLOW, "rm -rf node_modules")
    assert matcher.match_text("rm -rf node_modules", [confirm, allow]).rule == allow


def test_more_specific_confirm_beats_allow(matcher):
    allow = rule(RuleKind.ALLOW, "git *")
    confirm = rule(RuleKind.CONFIRM, "git push --force*")
    assert matcher.match_text("git push --force origin", [allow, confirm]).rule == confirm


def test_confirm_wins_specificity_tie(matcher):
    allow = rule(RuleKind.ALLOW, "git push*")
    confirm = rule(RuleKind.CONFIRM, "git push*")
    assert matcher.match_text("git push origin", [allow, confirm]).rule == confirm
    assert matcher.match_text("git push origin", [confirm, allow]).rule == confirm


def test_source_breaks_remaining_ties(matcher):
    global_allow = rule(RuleKind.ALLOW, "ls*", RuleSource.GLOBAL)
    user_allow = rule(RuleKind.ALLOW, "ls*", RuleSource.USER)
    project_allow = rule(RuleKind.ALLOW, "ls*", RuleSource.PROJECT)
    rules = [global_allow, project_allow, user_allow]
    assert matcher.match_text("ls -la", rules).rule == project_allow


def test_most_specific_block_wins(matcher):
    broad = rule(RuleKind.BLOCK, "rm *")
    narrow = rule(RuleKind.BLOCK, "rm -rf /etc*")
    assert matcher.match_text("rm -rf /etc/nginx", [broad, narrow]).rule == narrow


def test_confidence_scales_with_specificity(matcher):
    short = matcher.match_text("ls", [rule(RuleKind.ALLOW, "ls")])
    assert short.confidence == pytest.approx(0.02)
    long_pattern = "x" * 150
    long = matcher.match_text(long_pattern, [rule(RuleKind.ALLOW, long_pattern)])
    assert long.confidence == 1.0


def test_compare_rules_is_antisymmetric():
    block = rule(RuleKind.BLOCK, "a*")
    allow = rule(RuleKind.ALLOW, "abc")
    assert compare_rules(block, allow) > 0
    assert compare_rules(allow, block) < 0
    assert compare_rules(block, block) == 0
