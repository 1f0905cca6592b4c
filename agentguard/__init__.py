"""AgentGuard - A local policy engine for shell commands proposed by AI agents."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agentguard-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+local"
__logo__ = "🛡"
__app_name__ = "AgentGuard"
