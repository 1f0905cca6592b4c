"""Catalogue of dangerous source-code signatures, per script runtime."""

from __future__ import annotations

import re
from dataclasses import dataclass

from agentguard.core.types import ScriptRuntime, Severity, ThreatCategory

_DELETION = ThreatCategory.DELETION
_SYSTEM = ThreatCategory.SYSTEM_MODIFICATION
_SHELL_EXEC = ThreatCategory.SHELL_EXECUTION


@dataclass(frozen=True, slots=True)
class DangerousPattern:
    """A compiled-in signature.

    ``path_groups`` lists the regex groups that capture file-system paths.
    For shell-execution patterns the group holds a command string and the
    paths are the words inside it.
    """

    id: str
    runtime: ScriptRuntime
    regex: re.Pattern[str]
    category: ThreatCategory
    severity: Severity
    path_groups: tuple[int, ...] = ()

    def applies_to(self, runtime: ScriptRuntime) -> bool:
        return self.runtime is ScriptRuntime.ALL or self.runtime is runtime


def _p(
    id: str,
    runtime: ScriptRuntime,
    regex: str,
    category: ThreatCategory,
    severity: Severity,
    *path_groups: int,
) -> DangerousPattern:
    return DangerousPattern(id, runtime, re.compile(regex), category, severity, path_groups)


_SHELL = ScriptRuntime.SHELL
_PYTHON = ScriptRuntime.PYTHON
_NODE = ScriptRuntime.NODE
_RUBY = ScriptRuntime.RUBY
_PERL = ScriptRuntime.PERL

DANGEROUS_PATTERNS: tuple[DangerousPattern, ...] = (
    # Shell
    _p(
        "shell-rm-rf",
        _SHELL,
        r"\brm\s+(-[a-zA-Z]*[rR][a-zA-Z]*f[a-zA-Z]*|-[a-zA-Z]*f[a-zA-Z]*[rR][a-zA-Z]*"
        r"|--recursive\s+--force|--force\s+--recursive)\s+(\S+)",
        _DELETION,
        Severity.HIGH,
        2,
    ),
    _p(
        "shell-rm-recursive",
        _SHELL,
        r"\brm\s+(-[a-zA-Z]*[rR][a-zA-Z]*|--recursive)\s+(\S+)",
        _DELETION,
        Severity.MEDIUM,
        2,
    ),
    _p("shell-rmdir", _SHELL, r"\brmdir\s+(\S+)", _DELETION, Severity.MEDIUM, 1),
    _p("shell-dd-write", _SHELL, r"\bdd\s+.*\bof=(\S+)", _SYSTEM, Severity.HIGH, 1),
    _p(
        "shell-mkfs",
        _SHELL,
        r"\bmkfs(\.[a-z0-9]+)?\s+(\S+)",
        _SYSTEM,
        Severity.CATASTROPHIC,
        2,
    ),
    _p("shell-shred", _SHELL, r"\bshred\s+(?:-\S+\s+)*(\S+)", _DELETION, Severity.HIGH, 1),
    # Python
    _p(
        "python-shutil-rmtree",
        _PYTHON,
        r"""\bshutil\.rmtree\s*\(\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.HIGH,
        1,
    ),
    _p("python-shutil-rmtree-var", _PYTHON, r"\bshutil\.rmtree\s*\([^)]+\)", _DELETION, Severity.HIGH),
    _p(
        "python-os-remove",
        _PYTHON,
        r"""\bos\.(remove|unlink)\s*\(\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.MEDIUM,
        2,
    ),
    _p(
        "python-os-rmdir",
        _PYTHON,
        r"""\bos\.rmdir\s*\(\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.MEDIUM,
        1,
    ),
    _p(
        "python-os-system-rm",
        _PYTHON,
        r"""\bos\.system\s*\(\s*['"](.*rm\s+.*)['"]""",
        _SHELL_EXEC,
        Severity.HIGH,
        1,
    ),
    _p(
        "python-subprocess-rm",
        _PYTHON,
        r"""\bsubprocess\.(run|call|check_call|check_output|Popen)\s*\(\s*\[?\s*['"](.*\brm\b.*)['"]""",
        _SHELL_EXEC,
        Severity.HIGH,
        2,
    ),
    _p("python-pathlib-rmtree", _PYTHON, r"\.rmtree\s*\(\s*\)", _DELETION, Severity.HIGH),
    # Node
    _p(
        "node-fs-rm-sync",
        _NODE,
        r"""\bfs\.(rmSync|unlinkSync|rmdirSync)\s*\(\s*['"`]([^'"`]+)['"`]""",
        _DELETION,
        Severity.HIGH,
        2,
    ),
    _p(
        "node-fs-rm-recursive",
        _NODE,
        r"\bfs\.rm\s*\([^)]*recursive\s*:\s*true",
        _DELETION,
        Severity.HIGH,
    ),
    _p(
        "node-fs-promises-rm",
        _NODE,
        r"""\bfs\.promises\.(rm|rmdir|unlink)\s*\(\s*['"`]([^'"`]+)['"`]""",
        _DELETION,
        Severity.HIGH,
        2,
    ),
    _p(
        "node-rimraf",
        _NODE,
        r"""\brimraf(?:\.sync)?\s*\(\s*['"`]([^'"`]+)['"`]""",
        _DELETION,
        Severity.HIGH,
        1,
    ),
    _p(
        "node-child-process-rm",
        _NODE,
        r"""\bchild_process\.(exec|execSync|spawn|spawnSync)\s*\(\s*['"`]([^'"`]*rm\s+[^'"`]*)['"`]""",
        _SHELL_EXEC,
        Severity.HIGH,
        2,
    ),
    _p(
        "node-exec-rm",
        _NODE,
        r"""\bexec(?:Sync)?\s*\(\s*['"`]([^'"`]*rm\s+[^'"`]*)['"`]""",
        _SHELL_EXEC,
        Severity.HIGH,
        1,
    ),
    # Ruby
    _p(
        "ruby-fileutils-rm-rf",
        _RUBY,
        r"""\bFileUtils\.(rm_rf|rm_r|remove_dir|remove_entry_secure)\s*\(?\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.HIGH,
        2,
    ),
    _p(
        "ruby-file-delete",
        _RUBY,
        r"""\bFile\.delete\s*\(?\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.MEDIUM,
        1,
    ),
    _p(
        "ruby-system-rm",
        _RUBY,
        r"""\bsystem\s*\(?\s*['"]([^'"]*rm\s+[^'"]*)['"]""",
        _SHELL_EXEC,
        Severity.HIGH,
        1,
    ),
    # Perl
    _p(
        "perl-unlink",
        _PERL,
        r"""\bunlink\s*\(?\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.MEDIUM,
        1,
    ),
    _p(
        "perl-rmtree",
        _PERL,
        r"""\b(?:rmtree|remove_tree)\s*\(?\s*['"]([^'"]+)['"]""",
        _DELETION,
        Severity.HIGH,
        1,
    ),
    _p(
        "perl-system-rm",
        _PERL,
        r"""\bsystem\s*\(?\s*['"]([^'"]*rm\s+[^'"]*)['"]""",
        _SHELL_EXEC,
        Severity.HIGH,
        1,
    ),
    # Any runtime
    _p(
        "any-eval-rm",
        ScriptRuntime.ALL,
        r"""\beval\s*\(\s*['"]([^'"]*rm\s+-rf[^'"]*)['"]""",
        _SHELL_EXEC,
        Severity.CATASTROPHIC,
        1,
    ),
)


def patterns_for(runtime: ScriptRuntime) -> tuple[DangerousPattern, ...]:
    return tuple(pattern for pattern in DANGEROUS_PATTERNS if pattern.applies_to(runtime))
