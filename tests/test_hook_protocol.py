import json

import pytest

from agentguard.core.types import Rule, RuleKind, RuleSource, ValidationAction, ValidationResult
from agentguard.interfaces.hook import EXIT_ALLOW, EXIT_BLOCK, decision_for, parse_hook_payload


def _payload(**overrides) -> str:
    payload = {
        "session_id": "abc",
        "cwd": "/workspace",
        "tool_name": "Bash",
        "tool_input": {"command": "rm -rf build"},
    }
    payload.update(overrides)
    return json.dumps(payload)


def test_parse_shell_tool_call():
    request = parse_hook_payload(_payload())
    assert request is not None
    assert request.tool_name == "Bash"
    assert request.command == "rm -rf build"
    assert request.cwd == "/workspace"
    assert request.session_id == "abc"


@pytest.mark.parametrize(
    "overrides",
    [
        {"tool_name": "Read"},
        {"tool_input": {}},
        {"tool_input": {"command": "   "}},
        {"tool_input": "rm -rf /"},
    ],
)
def test_ignored_payloads(overrides):
    assert parse_hook_payload(_payload(**overrides)) is None


def test_non_string_cwd_is_dropped():
    request = parse_hook_payload(_payload(cwd=42))
    assert request is not None
    assert request.cwd is None


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '"Bash"'])
def test_invalid_payloads_raise(text):
    with pytest.raises(ValueError):
        parse_hook_payload(text)


def test_block_decision():
    decision = decision_for(ValidationResult(ValidationAction.BLOCK, "Catastrophic operation: rm targeting /"))
    assert decision.exit_code == EXIT_BLOCK == 2
    assert decision.stdout == ""
    assert decision.stderr == "AgentGuard blocked this command: Catastrophic operation: rm targeting /"


def test_confirm_decision_asks():
    rule = Rule(RuleKind.CONFIRM, "git push*", RuleSource.PROJECT, 8.0, 3)
    decision = decision_for(
        ValidationResult(ValidationAction.CONFIRM, "Confirmation required by rule: git push*", rule)
    )
    assert decision.exit_code == EXIT_ALLOW
    output = json.loads(decision.stdout)["hookSpecificOutput"]
    assert output == {
        "hookEventName": "PreToolUse",
        "permissionDecision": "ask",
        "permissionDecisionReason": "AgentGuard: Confirmation required by rule: git push*",
    }


def test_allow_decision_is_silent():
    decision = decision_for(ValidationResult(ValidationAction.ALLOW, "No matching rules"))
    assert decision.exit_code == 0
    assert decision.stdout == ""
    assert decision.stderr == ""
