"""Lexical threat scanning of script files that a command would execute.

The analyzer never runs anything. It reads the script under size, line and
symlink limits and looks for dangerous-operation signatures. Any read
failure yields ``analyzed=False`` and the caller decides what to do with it.
"""

from __future__ import annotations

import posixpath
import re
import stat
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from agentguard.analysis.patterns import DangerousPattern, patterns_for
from agentguard.core.environment import Environment
from agentguard.core.paths import is_catastrophic_path, normalize_path
from agentguard.core.types import (
    ScriptAnalysisResult,
    ScriptRuntime,
    ScriptThreat,
    Severity,
    ThreatCategory,
)


class ScriptReadError(Exception):
    """A script could not be read within the configured limits."""


@dataclass(frozen=True, slots=True)
class ScriptExecutor:
    """An interpreter: accepted script extensions and inline-code flags."""

    extensions: tuple[str, ...]
    inline_flags: frozenset[str] = frozenset()


SCRIPT_EXECUTORS: dict[str, ScriptExecutor] = {
    "python": ScriptExecutor((".py",), frozenset({"-c", "-m"})),
    "python3": ScriptExecutor((".py",), frozenset({"-c", "-m"})),
    "python2": ScriptExecutor((".py",), frozenset({"-c", "-m"})),
    "node": ScriptExecutor((".js", ".mjs", ".cjs"), frozenset({"-e", "--eval", "-p", "--print"})),
    "nodejs": ScriptExecutor((".js", ".mjs", ".cjs"), frozenset({"-e", "--eval"})),
    "bash": ScriptExecutor((".sh", ".bash"), frozenset({"-c"})),
    "sh": ScriptExecutor((".sh",), frozenset({"-c"})),
    "zsh": ScriptExecutor((".zsh", ".sh"), frozenset({"-c"})),
    "dash": ScriptExecutor((".sh",), frozenset({"-c"})),
    "fish": ScriptExecutor((".fish",), frozenset({"-c", "--command"})),
    "ruby": ScriptExecutor((".rb",), frozenset({"-e"})),
    "perl": ScriptExecutor((".pl", ".pm"), frozenset({"-e", "-E"})),
    "php": ScriptExecutor((".php",), frozenset({"-r"})),
}

SCRIPT_EXTENSIONS: frozenset[str] = frozenset(
    ext for executor in SCRIPT_EXECUTORS.values() for ext in executor.extensions
)

_EXTENSION_RUNTIMES: dict[str, ScriptRuntime] = {
    ".py": ScriptRuntime.PYTHON,
    ".js": ScriptRuntime.NODE,
    ".mjs": ScriptRuntime.NODE,
    ".cjs": ScriptRuntime.NODE,
    ".sh": ScriptRuntime.SHELL,
    ".bash": ScriptRuntime.SHELL,
    ".zsh": ScriptRuntime.SHELL,
    ".fish": ScriptRuntime.SHELL,
    ".rb": ScriptRuntime.RUBY,
    ".pl": ScriptRuntime.PERL,
    ".pm": ScriptRuntime.PERL,
    ".php": ScriptRuntime.PHP,
}

# Checked in order against the shebang line.
_SHEBANG_RUNTIMES: tuple[tuple[str, ScriptRuntime], ...] = (
    ("python", ScriptRuntime.PYTHON),
    ("node", ScriptRuntime.NODE),
    ("bash", ScriptRuntime.SHELL),
    ("/sh", ScriptRuntime.SHELL),
    ("zsh", ScriptRuntime.SHELL),
    ("dash", ScriptRuntime.SHELL),
    ("fish", ScriptRuntime.SHELL),
    ("ruby", ScriptRuntime.RUBY),
    ("perl", ScriptRuntime.PERL),
    ("php", ScriptRuntime.PHP),
)

_COMMENT_PREFIXES: dict[ScriptRuntime, tuple[str, ...]] = {
    ScriptRuntime.PYTHON: ("#",),
    ScriptRuntime.SHELL: ("#",),
    ScriptRuntime.RUBY: ("#",),
    ScriptRuntime.PERL: ("#",),
    ScriptRuntime.NODE: ("//", "/*"),
    ScriptRuntime.PHP: ("#", "//", "/*"),
}
_ANY_COMMENT = ("#", "//", "/*")

_VERSIONED_PYTHON = re.compile(r"^(python[23]?)(?:\.\d+)+$")
_QUOTED_PATH = re.compile(r"""['"]([/~][^'"]*)['"]""")
_UNQUOTED_PATH = re.compile(r"""(?:^|[\s,(])([/~][^\s'")\],]+)""")
_PATH_TRIM = "'\"`,;()[]{}"

BINARY_SAMPLE_CHARS = 1000
BINARY_THRESHOLD = 0.10
MAX_EXCERPT = 100
SHEBANG_PEEK_BYTES = 256


@dataclass(frozen=True, slots=True)
class ScriptLimits:
    max_file_size: int = 1024 * 1024
    max_lines: int = 10_000
    follow_symlinks: bool = False


def executor_name(command: str) -> str:
    base = posixpath.basename(command)
    versioned = _VERSIONED_PYTHON.match(base)
    return versioned.group(1) if versioned else base


def looks_binary(sample: str) -> bool:
    """More than 10% control or undecodable characters in the sample."""
    if not sample:
        return False
    suspicious = sum(
        1
        for char in sample
        if (ord(char) < 32 and char not in "\t\n\r") or char == "\ufffd"
    )
    return suspicious / len(sample) > BINARY_THRESHOLD


def runtime_from_shebang(first_line: str) -> ScriptRuntime | None:
    if not first_line.startswith("#!"):
        return None
    for needle, runtime in _SHEBANG_RUNTIMES:
        if needle in first_line:
            return runtime
    return None


def is_comment(line: str, runtime: ScriptRuntime) -> bool:
    prefixes = _COMMENT_PREFIXES.get(runtime, ("#", "//"))
    return line.strip().startswith(prefixes)


def extract_line_paths(line: str) -> list[str]:
    """Path-shaped substrings (quoted or bare, starting with ``/`` or ``~``)."""
    found: list[str] = [match.group(1) for match in _QUOTED_PATH.finditer(line)]
    for match in _UNQUOTED_PATH.finditer(line):
        candidate = match.group(1)
        # ``//`` is floor division or a comment, never a path here.
        if not candidate.startswith("//"):
            found.append(candidate)
    return list(dict.fromkeys(found))


def extract_command_paths(command: str) -> list[str]:
    """Words of an embedded shell command that look like paths."""
    words = (word.strip(_PATH_TRIM) for word in command.split())
    return [word for word in words if word.startswith(("/", "~"))]


class ScriptAnalyzer:
    """Detect script execution and scan script files for dangerous operations."""

    def __init__(self, env: Environment | None = None, limits: ScriptLimits | None = None):
        self.env = env or Environment.from_process()
        self.limits = limits or ScriptLimits()

    def detect_script_execution(self, command: str, args: Sequence[str]) -> str | None:
        """Return the absolute path of the script a command runs, if any.

        Inline code (``python -c``, ``node -e``) is not a script file.
        """
        executor = SCRIPT_EXECUTORS.get(executor_name(command))
        if executor is not None:
            if any(arg in executor.inline_flags for arg in args):
                return None
            for arg in args:
                if arg.startswith("-"):
                    continue
                path = self._resolve(arg)
                suffix = posixpath.splitext(path)[1].lower()
                if suffix in executor.extensions:
                    return path
                if not suffix and Path(path).is_file():
                    return path
            return None

        if command.startswith(("/", "./", "../")):
            path = self._resolve(command)
            suffix = posixpath.splitext(path)[1].lower()
            if suffix in SCRIPT_EXTENSIONS:
                return path
            if not suffix and self._peek_shebang(path) is not None:
                return path
        return None

    def analyze(self, script_path: str) -> ScriptAnalysisResult:
        result = ScriptAnalysisResult(script_path=script_path)
        try:
            content = self.read_script(script_path)
        except ScriptReadError as exc:
            result.analysis_error = str(exc)
            logger.debug("Script {} not analyzed: {}", script_path, exc)
            return result

        result.analyzed = True
        result.runtime = self.detect_runtime(script_path, content)
        result.threats = self.extract_threats(content, result.runtime)
        self._decide(result, content)
        return result

    def read_script(self, script_path: str) -> str:
        """Read a script within the configured limits or raise :class:`ScriptReadError`."""
        path = Path(self._resolve(script_path))
        try:
            if path.is_symlink() and not self.limits.follow_symlinks:
                raise ScriptReadError(f"Symlink not followed (security policy): {path}")
            if not path.exists():
                raise ScriptReadError(f"File not found: {path}")
            info = path.stat()
            if not stat.S_ISREG(info.st_mode):
                raise ScriptReadError(f"Not a regular file: {path}")
            if info.st_size > self.limits.max_file_size:
                raise ScriptReadError(
                    f"File too large: {info.st_size} bytes (max {self.limits.max_file_size})"
                )
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ScriptReadError(f"Cannot read file: {exc}") from exc

        if looks_binary(content[:BINARY_SAMPLE_CHARS]):
            raise ScriptReadError(f"Binary file detected: {path}")

        lines = content.split("\n")
        if len(lines) > self.limits.max_lines:
            logger.debug("Truncating {} to {} lines", path, self.limits.max_lines)
            content = "\n".join(lines[: self.limits.max_lines])
        return content

    def detect_runtime(self, script_path: str, content: str) -> ScriptRuntime:
        first_line = content.split("\n", 1)[0]
        runtime = runtime_from_shebang(first_line)
        if runtime is not None:
            return runtime
        suffix = posixpath.splitext(script_path)[1].lower()
        return _EXTENSION_RUNTIMES.get(suffix, ScriptRuntime.UNKNOWN)

    def extract_threats(self, content: str, runtime: ScriptRuntime) -> list[ScriptThreat]:
        threats: list[ScriptThreat] = []
        patterns = patterns_for(runtime)
        for line_number, line in enumerate(content.split("\n"), start=1):
            if not line.strip() or is_comment(line, runtime):
                continue
            for pattern in patterns:
                match = pattern.regex.search(line)
                if match is None:
                    continue
                threat = ScriptThreat(
                    pattern_id=pattern.id,
                    line_number=line_number,
                    line_content=line if len(line) <= MAX_EXCERPT else line[:MAX_EXCERPT] + "...",
                    category=pattern.category,
                    severity=pattern.severity,
                )
                paths = self._captured_paths(pattern, match) + extract_line_paths(line)
                threat.target_paths = list(dict.fromkeys(paths))
                if any(self._is_catastrophic(path) for path in threat.target_paths):
                    threat.severity = Severity.CATASTROPHIC
                threats.append(threat)
        return threats

    def catastrophic_paths_in(self, content: str) -> list[str]:
        """Every catastrophic path mentioned anywhere outside comment lines."""
        found: list[str] = []
        for line in content.split("\n"):
            if line.strip().startswith(_ANY_COMMENT):
                continue
            found.extend(path for path in extract_line_paths(line) if self._is_catastrophic(path))
        return list(dict.fromkeys(found))

    def _decide(self, result: ScriptAnalysisResult, content: str) -> None:
        catastrophic = [t for t in result.threats if t.severity is Severity.CATASTROPHIC]
        if catastrophic:
            ids = ", ".join(dict.fromkeys(t.pattern_id for t in catastrophic))
            result.should_block = True
            result.block_reason = f"Script contains catastrophic operations: {ids}"
            return

        high = [t for t in result.threats if t.severity is Severity.HIGH]
        targeted = [
            path for t in high for path in t.target_paths if self._is_catastrophic(path)
        ]
        if targeted:
            result.should_block = True
            result.block_reason = (
                f"Script targets critical system paths: {', '.join(dict.fromkeys(targeted))}"
            )
            return

        deletions = [t for t in high if t.category is ThreatCategory.DELETION]
        if not deletions:
            return
        hidden = self.catastrophic_paths_in(content)
        if not hidden:
            return
        result.should_block = True
        result.block_reason = (
            f"Script contains deletion operations and catastrophic paths: {', '.join(hidden)}"
        )
        for threat in deletions:
            threat.severity = Severity.CATASTROPHIC
            threat.target_paths.extend(path for path in hidden if path not in threat.target_paths)

    def _captured_paths(self, pattern: DangerousPattern, match: re.Match[str]) -> list[str]:
        paths: list[str] = []
        for group in pattern.path_groups:
            value = match.group(group)
            if not value:
                continue
            if pattern.category is ThreatCategory.SHELL_EXECUTION:
                paths.extend(extract_command_paths(value))
            else:
                paths.append(value.strip(_PATH_TRIM))
        return paths

    def _is_catastrophic(self, path: str) -> bool:
        return bool(path) and is_catastrophic_path(path, self.env)

    def _resolve(self, path: str) -> str:
        return normalize_path(path, self.env)

    def _peek_shebang(self, path: str) -> ScriptRuntime | None:
        try:
            with open(path, "rb") as f:
                head = f.read(SHEBANG_PEEK_BYTES)
        except OSError:
            return None
        first_line = head.split(b"\n", 1)[0].decode("utf-8", errors="replace")
        return runtime_from_shebang(first_line)
