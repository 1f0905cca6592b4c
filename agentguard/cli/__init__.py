"""CLI module for agentguard."""
