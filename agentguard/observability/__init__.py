"""Audit logging and redaction."""

from agentguard.observability.audit import AuditLog
from agentguard.observability.redaction import redact_command

__all__ = ["AuditLog", "redact_command"]
