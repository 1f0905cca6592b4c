"""PreToolUse hook protocol: payload parsing and decision rendering.

Exit code 0 lets the tool call proceed, exit code 2 blocks it and the
agent reads the reason from stderr. A confirm decision is handed back to
the agent's own permission prompt with ``permissionDecision: "ask"``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from agentguard.core.types import ValidationAction, ValidationResult

SHELL_TOOL_NAMES = frozenset({"Bash", "bash", "execute_bash", "run_shell_command", "shell"})

EXIT_ALLOW = 0
EXIT_BLOCK = 2


@dataclass(frozen=True, slots=True)
class HookRequest:
    tool_name: str
    command: str
    cwd: str | None = None
    session_id: str | None = None


@dataclass(frozen=True, slots=True)
class HookDecision:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


def parse_hook_payload(text: str) -> HookRequest | None:
    """Extract the shell command from a hook payload.

    Returns ``None`` for non-shell tools and payloads without a command.
    Raises ``ValueError`` when the text is not a JSON object.
    """
    payload: Any = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("hook payload must be a JSON object")
    tool_name = payload.get("tool_name")
    if tool_name not in SHELL_TOOL_NAMES:
        return None
    tool_input = payload.get("tool_input")
    if not isinstance(tool_input, dict):
        return None
    command = tool_input.get("command")
    if not isinstance(command, str) or not command.strip():
        return None
    cwd = payload.get("cwd")
    session_id = payload.get("session_id")
    return HookRequest(
        tool_name=tool_name,
        command=command,
        cwd=cwd if isinstance(cwd, str) else None,
        session_id=session_id if isinstance(session_id, str) else None,
    )


def decision_for(result: ValidationResult) -> HookDecision:
    if result.action is ValidationAction.BLOCK:
        return HookDecision(EXIT_BLOCK, stderr=f"AgentGuard blocked this command: {result.reason}")
    if result.action is ValidationAction.CONFIRM:
        response = {
            "hookSpecificOutput": {
                "hookEventName": "PreToolUse",
                "permissionDecision": "ask",
                "permissionDecisionReason": f"AgentGuard: {result.reason}",
            }
        }
        return HookDecision(EXIT_ALLOW, stdout=json.dumps(response))
    return HookDecision(EXIT_ALLOW)
