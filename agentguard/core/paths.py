"""Catastrophic-path set and path normalization."""

from __future__ import annotations

import posixpath

from agentguard.core.environment import Environment

# Locations whose deletion would critically damage the system. The user's
# home directory is added per environment.
CATASTROPHIC_PATHS: tuple[str, ...] = (
    "/",
    "/home",
    "/root",
    "/etc",
    "/usr",
    "/var",
    "/bin",
    "/sbin",
    "/lib",
    "/lib64",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
)


def catastrophic_paths(env: Environment) -> tuple[str, ...]:
    home = normalize_path(env.home, env)
    if home in CATASTROPHIC_PATHS:
        return CATASTROPHIC_PATHS
    return (*CATASTROPHIC_PATHS, home)


def normalize_path(raw: str, env: Environment, base: str | None = None) -> str:
    """Expand, absolutize and clean a path.

    Variables and ``~`` are expanded, relative paths are joined onto ``base``
    (defaulting to the environment's cwd), ``.``/``..`` are collapsed and
    trailing slashes stripped. The root stays ``/``.
    """
    path = env.expand(raw.strip())
    if not path.startswith("/"):
        path = posixpath.join(base or env.cwd, path)
    path = posixpath.normpath(path)
    # normpath keeps a leading double slash (POSIX allows it to be special).
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    return path.rstrip("/") or "/"


def is_catastrophic_path(raw: str, env: Environment, base: str | None = None) -> bool:
    """Whether removing ``raw`` would hit a catastrophic location.

    True when the path equals a catastrophic path, is a parent of one, or is
    a ``*`` wildcard whose directory is catastrophic (``/*``, ``~/*``,
    a bare ``*`` issued from ``/etc``).
    """
    if not raw.strip():
        return False
    path = normalize_path(raw, env, base)
    protected = catastrophic_paths(env)
    if path in protected:
        return True
    prefix = path.rstrip("/") + "/"
    if any(candidate.startswith(prefix) for candidate in protected):
        return True
    if posixpath.basename(path) == "*":
        return (posixpath.dirname(path) or "/") in protected
    return False


def find_catastrophic(paths: list[str] | tuple[str, ...], env: Environment) -> list[str]:
    """Return the subset of ``paths`` that are catastrophic, order preserved."""
    return [path for path in paths if is_catastrophic_path(path, env)]
