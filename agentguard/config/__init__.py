"""Configuration module for agentguard."""

from agentguard.config.loader import get_config_path, load_config
from agentguard.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
