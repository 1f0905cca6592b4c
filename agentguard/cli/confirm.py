"""Interactive confirmation for commands that matched a confirm rule."""

from __future__ import annotations

import queue
import sys
import threading
from dataclasses import dataclass
from typing import TextIO

from agentguard.core.types import ValidationResult

APPROVALS = frozenset({"y", "yes"})


@dataclass(frozen=True, slots=True)
class ConfirmOutcome:
    approved: bool
    timed_out: bool = False


class ConfirmationPrompt:
    """Ask on stderr, read one line from stdin, fall back to a default on timeout."""

    def __init__(
        self,
        timeout: float = 30.0,
        default_action: str = "block",
        *,
        stdin: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.timeout = timeout
        self.default_action = default_action
        self._stdin = stdin
        self._stderr = stderr

    @property
    def default_approved(self) -> bool:
        return self.default_action == "allow"

    def ask(self, command: str, result: ValidationResult) -> ConfirmOutcome:
        out = self._stderr or sys.stderr
        self._render(out, command, result)

        answer = self._read_line(self._stdin or sys.stdin)
        if answer is None:
            verdict = "allowed" if self.default_approved else "blocked"
            out.write(f"\nConfirmation timed out - command {verdict}\n")
            out.flush()
            return ConfirmOutcome(approved=self.default_approved, timed_out=True)
        if answer == "":
            # stdin closed without an answer
            return ConfirmOutcome(approved=self.default_approved)
        return ConfirmOutcome(approved=answer.strip().lower() in APPROVALS)

    def _render(self, out: TextIO, command: str, result: ValidationResult) -> None:
        lines = ["", f"CONFIRM: {command}"]
        if result.rule is not None:
            lines.append(f"Rule: {result.rule.pattern} ({result.rule.source.value})")
        else:
            lines.append(f"Reason: {result.reason}")
        metadata = result.metadata
        if metadata is not None:
            if metadata.affected_files is not None:
                lines.append(f"Scope: would affect {metadata.affected_files} file(s)")
            if metadata.target_paths:
                lines.append(f"Target paths: {', '.join(metadata.target_paths)}")
        out.write("\n".join(lines) + "\n")
        out.write(f"Proceed? [y/N] (timeout in {int(self.timeout)}s): ")
        out.flush()

    def _read_line(self, stream: TextIO) -> str | None:
        """Read one line on a worker thread; ``None`` on timeout, ``""`` on EOF."""
        answers: queue.Queue[str] = queue.Queue(maxsize=1)

        def _reader() -> None:
            try:
                answers.put(stream.readline())
            except (OSError, ValueError):
                answers.put("")

        threading.Thread(target=_reader, name="agentguard-confirm", daemon=True).start()
        try:
            return answers.get(timeout=self.timeout)
        except queue.Empty:
            return None
