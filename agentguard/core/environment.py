"""Explicit environment-lookup capability for tokenization and pattern expansion."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

_BRACED_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_BARE_VAR = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


@dataclass(frozen=True, slots=True)
class Environment:
    """Variables, home directory and working directory seen by a validation.

    Threaded through the tokenizer and matcher so tests can supply a
    synthetic environment instead of the process one.
    """

    variables: Mapping[str, str] = field(default_factory=dict)
    home: str = "/"
    cwd: str = "/"

    @classmethod
    def from_process(cls) -> Environment:
        variables = dict(os.environ)
        home = variables.get("HOME") or os.path.expanduser("~")
        return cls(variables=MappingProxyType(variables), home=home, cwd=os.getcwd())

    @classmethod
    def synthetic(
        cls,
        variables: Mapping[str, str] | None = None,
        *,
        home: str = "/home/agent",
        cwd: str = "/workspace",
    ) -> Environment:
        merged = {"HOME": home}
        merged.update(variables or {})
        return cls(variables=MappingProxyType(merged), home=home, cwd=cwd)

    def lookup(self, name: str) -> str | None:
        """Return the variable value, or ``None`` when unset or empty."""
        value = self.variables.get(name)
        return value or None

    def expand_variables(self, text: str) -> str:
        """Replace ``${VAR}`` and ``$VAR``; undefined variables stay as written."""
        if "$" not in text:
            return text

        def _sub(match: re.Match[str]) -> str:
            value = self.lookup(match.group(1))
            return value if value is not None else match.group(0)

        return _BARE_VAR.sub(_sub, _BRACED_VAR.sub(_sub, text))

    def expand_user(self, text: str) -> str:
        """Expand a leading ``~`` or ``~/`` to the home directory."""
        if text == "~":
            return self.home
        if text.startswith("~/"):
            return self.home.rstrip("/") + text[1:]
        return text

    def expand(self, text: str) -> str:
        return self.expand_user(self.expand_variables(text))
