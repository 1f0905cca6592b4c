"""Script content analysis."""

from agentguard.analysis.script_analyzer import ScriptAnalyzer, ScriptLimits

__all__ = ["ScriptAnalyzer", "ScriptLimits"]
