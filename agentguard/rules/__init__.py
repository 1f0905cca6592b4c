"""Rule parsing, matching and evaluation."""

from agentguard.rules.engine import RuleEngine
from agentguard.rules.matcher import PatternMatcher
from agentguard.rules.parser import RuleParser, merge_rules

__all__ = ["PatternMatcher", "RuleEngine", "RuleParser", "merge_rules"]
