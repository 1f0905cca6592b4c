"""Recursive wrapper-command unwrapping.

Strips commands such as ``sudo``, ``bash -c``, ``xargs`` and ``find -exec``
to recover what a segment actually executes.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from agentguard.core.types import CommandSegment, UnwrappedCommand
from agentguard.shell.tokenizer import handle_escapes, restore_escapes, split_words

MAX_UNWRAP_DEPTH = 20


class WrapperKind(Enum):
    PASSTHROUGH = "passthrough"
    SHELL_C = "shell_c"
    DYNAMIC_EXECUTOR = "dynamic_executor"
    FIND = "find"
    CHROOT = "chroot"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class PassthroughSpec:
    """How a passthrough wrapper lays out its own options."""

    flags_with_args: frozenset[str] = frozenset()
    skip_flags: bool = True
    skip_assignments: bool = False
    leading_operand: bool = False
    # The remaining words form one shell string, unless an exec flag is present.
    shell_string: bool = False
    exec_flags: frozenset[str] = frozenset()
    # Options whose value is re-split into words, like `env -S`.
    split_flags: frozenset[str] = frozenset()


PASSTHROUGH_WRAPPERS: dict[str, PassthroughSpec] = {
    "sudo": PassthroughSpec(
        frozenset(
            {
                "-u", "-g", "-C", "-D", "-h", "-p", "-r", "-t", "-T", "-U",
                "--user", "--group", "--close-from", "--chdir", "--host",
                "--prompt", "--role", "--type", "--command-timeout", "--other-user",
            }
        )
    ),
    "doas": PassthroughSpec(frozenset({"-u", "-C"})),
    "env": PassthroughSpec(
        frozenset({"-u", "-C", "--unset", "--chdir"}),
        skip_assignments=True,
        split_flags=frozenset({"-S", "--split-string"}),
    ),
    "nice": PassthroughSpec(frozenset({"-n", "--adjustment"})),
    "nohup": PassthroughSpec(skip_flags=False),
    "time": PassthroughSpec(frozenset({"-f", "-o", "--format", "--output"})),
    "timeout": PassthroughSpec(
        frozenset({"-s", "-k", "--signal", "--kill-after"}), leading_operand=True
    ),
    "watch": PassthroughSpec(
        frozenset({"-n", "--interval"}),
        shell_string=True,
        exec_flags=frozenset({"-x", "--exec"}),
    ),
    "strace": PassthroughSpec(
        frozenset({"-a", "-b", "-e", "-E", "-I", "-o", "-O", "-p", "-P", "-s", "-S", "-u", "-X"})
    ),
    "ltrace": PassthroughSpec(
        frozenset({"-a", "-e", "-n", "-o", "-p", "-s", "-u", "-D", "-F", "-l", "-w", "-x"})
    ),
    "ionice": PassthroughSpec(
        frozenset({"-c", "-n", "-p", "-P", "-u", "--class", "--classdata", "--pid", "--pgid", "--uid"})
    ),
    "runuser": PassthroughSpec(
        frozenset({"-u", "-g", "-G", "--user", "--group", "--supp-group"})
    ),
    "setsid": PassthroughSpec(),
    "stdbuf": PassthroughSpec(frozenset({"-i", "-o", "-e"})),
    "command": PassthroughSpec(),
    "builtin": PassthroughSpec(skip_flags=False),
    "exec": PassthroughSpec(frozenset({"-a"})),
}

SHELLS = frozenset({"sh", "bash", "zsh", "dash", "fish", "ksh", "csh", "tcsh"})
SHELL_C_USERS = frozenset({"su", "runuser"})
SHELL_OPTIONS_WITH_ARGS = frozenset({"-o", "+o", "-O", "+O", "--rcfile", "--init-file"})

DYNAMIC_EXECUTORS: dict[str, frozenset[str]] = {
    "xargs": frozenset(
        {
            "-I", "-L", "-n", "-P", "-s", "-E", "-d", "-a",
            "--delimiter", "--arg-file", "--max-args", "--max-procs",
            "--max-lines", "--max-chars", "--eof", "--replace",
        }
    ),
    "parallel": frozenset(
        {
            "-I", "-L", "-n", "-P", "-s", "-E", "-d", "-a", "-j", "-S",
            "--delimiter", "--arg-file", "--jobs", "--sshlogin", "--retries",
        }
    ),
}

CHROOT_FLAGS_WITH_ARGS = frozenset({"--userspec", "--groups"})
FIND_EXEC_ACTIONS = frozenset({"-exec", "-execdir", "-ok", "-okdir"})
FIND_EXEC_TERMINATORS = frozenset({";", "\\;", "+"})
FIND_PLACEHOLDER = "{}"


def base_name(command: str) -> str:
    return posixpath.basename(command)


def is_flag(arg: str) -> bool:
    return arg.startswith("-") and arg != "-"


def _is_assignment(arg: str) -> bool:
    name, sep, _ = arg.partition("=")
    return bool(sep) and name.replace("_", "a").isalnum() and not name[0].isdigit()


def _find_command_string(base: str, args: Sequence[str]) -> int | None:
    """Return the index of the argument holding the ``-c`` command string.

    Shell options end at the first operand (the script name), while ``su``
    accepts its user operand before ``-c``.
    """
    idx = 0
    while idx < len(args):
        arg = args[idx]
        if arg == "-c" or (base in SHELL_C_USERS and arg == "--command"):
            return idx + 1
        if arg.startswith("-") and not arg.startswith("--") and arg[1:].isalpha() and "c" in arg:
            return idx + 1
        if base in SHELLS:
            if arg in SHELL_OPTIONS_WITH_ARGS:
                idx += 2
                continue
            if not is_flag(arg) and not arg.startswith("+"):
                return None
        idx += 1
    return None


def _has_command_string(base: str, args: Sequence[str]) -> bool:
    if base in SHELL_C_USERS and any(arg.startswith("--command=") for arg in args):
        return True
    return _find_command_string(base, args) is not None


def classify(command: str, args: Sequence[str]) -> WrapperKind:
    """Decide which wrapper kind a command is, if any."""
    base = base_name(command)
    if base == "chroot":
        return WrapperKind.CHROOT
    if base in SHELLS or base in SHELL_C_USERS:
        if _has_command_string(base, args):
            return WrapperKind.SHELL_C
    if base in PASSTHROUGH_WRAPPERS:
        return WrapperKind.PASSTHROUGH
    if base in DYNAMIC_EXECUTORS:
        return WrapperKind.DYNAMIC_EXECUTOR
    if base == "find":
        return WrapperKind.FIND
    return WrapperKind.NONE


def skip_options(
    args: Sequence[str],
    flags_with_args: frozenset[str],
    *,
    skip_assignments: bool = False,
    leading_operand: bool = False,
) -> int:
    """Return the index of the first argument after a wrapper's own options."""
    i = 0
    operand_consumed = not leading_operand
    while i < len(args):
        arg = args[i]
        if arg == "--":
            return i + 1
        if is_flag(arg):
            i += 2 if arg in flags_with_args else 1
            continue
        if skip_assignments and _is_assignment(arg):
            i += 1
            continue
        if not operand_consumed:
            operand_consumed = True
            i += 1
            continue
        break
    return i


def split_shell_string(text: str) -> list[CommandSegment]:
    """Split a ``-c`` command string into segments.

    Quotes are honoured and removed; nothing is expanded.
    """
    segments: list[CommandSegment] = []
    words: list[str] = []
    for value, _original, _position, is_operator in split_words(handle_escapes(text)):
        value = restore_escapes(value)
        if is_operator:
            if words:
                segments.append(CommandSegment(words[0], tuple(words[1:]), value))
            words = []
            continue
        words.append(value)
    if words:
        segments.append(CommandSegment(words[0], tuple(words[1:])))
    return segments


def split_shell_words(text: str) -> list[str]:
    """Split text into quote-aware words; operators are kept as plain words."""
    return [restore_escapes(value) for value, _o, _p, _op in split_words(handle_escapes(text))]


def _split_flag_value(arg: str, split_flags: frozenset[str]) -> str | None:
    for flag in split_flags:
        if flag.startswith("--"):
            if arg.startswith(flag + "="):
                return arg[len(flag) + 1 :]
        elif arg.startswith(flag) and len(arg) > len(flag):
            return arg[len(flag) :]
    return None


def expand_split_string(args: tuple[str, ...], spec: PassthroughSpec) -> tuple[str, ...]:
    """Replace ``-S STRING`` style options with the words of STRING.

    Each expansion consumes the option itself, so the loop always terminates.
    """
    if not spec.split_flags:
        return args
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--":
            break
        if arg in spec.split_flags:
            if i + 1 >= len(args):
                break
            args = (*args[:i], *split_shell_words(args[i + 1]), *args[i + 2 :])
            continue
        value = _split_flag_value(arg, spec.split_flags)
        if value is not None:
            args = (*args[:i], *split_shell_words(value), *args[i + 1 :])
            continue
        if is_flag(arg):
            i += 2 if arg in spec.flags_with_args else 1
            continue
        if spec.skip_assignments and _is_assignment(arg):
            i += 1
            continue
        break
    return args


def passthrough_operands(
    spec: PassthroughSpec, args: tuple[str, ...]
) -> tuple[tuple[str, ...], bool]:
    """Return the words a passthrough wrapper runs and whether they form one shell string."""
    args = expand_split_string(args, spec)
    if spec.skip_flags:
        start = skip_options(
            args,
            spec.flags_with_args,
            skip_assignments=spec.skip_assignments,
            leading_operand=spec.leading_operand,
        )
    else:
        start = 0
    remaining = args[start:]
    as_shell = spec.shell_string and bool(remaining) and not spec.exec_flags.intersection(args[:start])
    return remaining, as_shell


def _mark_dynamic(results: list[UnwrappedCommand], reason: str) -> list[UnwrappedCommand]:
    return [
        UnwrappedCommand(
            command=item.command,
            args=item.args,
            wrappers=item.wrappers,
            has_dynamic_args=True,
            dynamic_reason=item.dynamic_reason or reason,
        )
        for item in results
    ]


class CommandUnwrapper:
    """Recover the underlying commands of a segment."""

    def __init__(self, max_depth: int = MAX_UNWRAP_DEPTH):
        self.max_depth = max_depth
        self._handlers: dict[WrapperKind, Callable[..., list[UnwrappedCommand]]] = {
            WrapperKind.PASSTHROUGH: self._unwrap_passthrough,
            WrapperKind.SHELL_C: self._unwrap_shell_c,
            WrapperKind.DYNAMIC_EXECUTOR: self._unwrap_dynamic,
            WrapperKind.FIND: self._unwrap_find,
            WrapperKind.CHROOT: self._unwrap_chroot,
            WrapperKind.NONE: self._unwrap_none,
        }

    def unwrap(self, segment: CommandSegment) -> list[UnwrappedCommand]:
        """Unwrap one segment; an empty list means nothing executable was found.

        Past the nesting cap, plain passthrough wrappers are still peeled
        and the deepest command reached is returned with its wrapper trail.
        """
        return self._unwrap(segment.command, tuple(segment.args), (), 0)

    def _unwrap(
        self,
        command: str,
        args: tuple[str, ...],
        wrappers: tuple[str, ...],
        depth: int,
    ) -> list[UnwrappedCommand]:
        if depth > self.max_depth:
            deepest = self._peel_passthrough(command, args, wrappers)
            logger.warning(
                "Unwrap depth {} exceeded, stopping at {!r}", self.max_depth, deepest.command
            )
            return [deepest]
        kind = classify(command, args)
        return self._handlers[kind](command, args, wrappers, depth)

    def _peel_passthrough(self, command, args, wrappers) -> UnwrappedCommand:
        # Iterative; each pass strips one wrapper word.
        while classify(command, args) is WrapperKind.PASSTHROUGH:
            base = base_name(command)
            remaining, as_shell = passthrough_operands(PASSTHROUGH_WRAPPERS[base], args)
            if not remaining or as_shell:
                break
            command, args, wrappers = remaining[0], tuple(remaining[1:]), (*wrappers, base)
        return UnwrappedCommand(command, args, wrappers)

    def _recurse(
        self,
        remaining: Sequence[str],
        wrappers: tuple[str, ...],
        depth: int,
    ) -> list[UnwrappedCommand]:
        if not remaining:
            return []
        return self._unwrap(remaining[0], tuple(remaining[1:]), wrappers, depth + 1)

    def _unwrap_passthrough(self, command, args, wrappers, depth):
        base = base_name(command)
        remaining, as_shell = passthrough_operands(PASSTHROUGH_WRAPPERS[base], args)
        trail = (*wrappers, base)
        if as_shell:
            return self._unwrap_segments(split_shell_string(" ".join(remaining)), trail, depth)
        return self._recurse(remaining, trail, depth)

    def _unwrap_shell_c(self, command, args, wrappers, depth):
        base = base_name(command)
        inline = next((arg for arg in args if arg.startswith("--command=")), None)
        if inline is not None and base in SHELL_C_USERS:
            script = inline.partition("=")[2]
        else:
            idx = _find_command_string(base, args)
            if idx is None or idx >= len(args):
                return []
            script = args[idx]
        return self._unwrap_segments(split_shell_string(script), (*wrappers, f"{base} -c"), depth)

    def _unwrap_segments(self, segments, wrappers, depth):
        results: list[UnwrappedCommand] = []
        for inner in segments:
            results.extend(self._unwrap(inner.command, inner.args, wrappers, depth + 1))
        return results

    def _unwrap_dynamic(self, command, args, wrappers, depth):
        base = base_name(command)
        start = skip_options(args, DYNAMIC_EXECUTORS[base])
        inner = self._recurse(args[start:], (*wrappers, base), depth)
        return _mark_dynamic(inner, f"{base} - arguments come from stdin/pipeline")

    def _unwrap_find(self, command, args, wrappers, depth):
        results: list[UnwrappedCommand] = []
        if "-delete" in args:
            results.append(
                UnwrappedCommand(
                    command=command,
                    args=args,
                    wrappers=wrappers,
                    has_dynamic_args=True,
                    dynamic_reason="find -delete - targets are dynamically matched",
                )
            )
        i = 0
        while i < len(args):
            action = args[i]
            if action not in FIND_EXEC_ACTIONS:
                i += 1
                continue
            j = i + 1
            block: list[str] = []
            while j < len(args) and args[j] not in FIND_EXEC_TERMINATORS:
                if args[j] != FIND_PLACEHOLDER:
                    block.append(args[j])
                j += 1
            inner = self._recurse(block, (*wrappers, f"find {action}"), depth)
            results.extend(
                _mark_dynamic(inner, f"find {action} - targets are dynamically matched files")
            )
            i = j + 1
        if results:
            return results
        return [UnwrappedCommand(command, args, wrappers)]

    def _unwrap_chroot(self, command, args, wrappers, depth):
        start = skip_options(args, CHROOT_FLAGS_WITH_ARGS, leading_operand=True)
        return self._recurse(args[start:], (*wrappers, "chroot"), depth)

    def _unwrap_none(self, command, args, wrappers, depth):
        return [UnwrappedCommand(command, args, wrappers)]


def find_search_roots(args: Sequence[str]) -> list[str]:
    """Starting points of a ``find`` invocation (``.`` when none are given)."""
    roots: list[str] = []
    for arg in args:
        if arg in ("-H", "-L", "-P") and not roots:
            continue
        if arg.startswith(("-", "(", "!")) or arg == ")":
            break
        roots.append(arg)
    return roots or ["."]


_default_unwrapper = CommandUnwrapper()


def unwrap(segment: CommandSegment) -> list[UnwrappedCommand]:
    return _default_unwrapper.unwrap(segment)
