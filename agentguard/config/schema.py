"""Configuration schema using Pydantic."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RulesConfig(Base):
    """Where the three rule tiers live."""

    global_path: str = "/etc/agentguard/rules"
    user_path: str = "~/.config/agentguard/rules"
    project_file: str = ".agentguard"


class AuditConfig(Base):
    """Append-only decision log."""

    enabled: bool = True
    path: str = ""  # empty means <data dir>/audit.log
    rotate_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    max_backups: int = Field(default=3, ge=0)


class ConfirmationConfig(Base):
    """Interactive confirmation prompt."""

    timeout: float = 30.0
    default_action: Literal["block", "allow"] = "block"

    @field_validator("timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("confirmation timeout must be greater than zero")
        return v


class ScriptAnalysisConfig(Base):
    """Limits for reading executed script files."""

    enabled: bool = True
    max_file_size: int = Field(default=1024 * 1024, gt=0)
    max_lines: int = Field(default=10_000, gt=0)
    follow_symlinks: bool = False
    fail_closed: bool = False


class Config(Base):
    """Root configuration for agentguard."""

    rules: RulesConfig = Field(default_factory=RulesConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)
    script_analysis: ScriptAnalysisConfig = Field(default_factory=ScriptAnalysisConfig)
