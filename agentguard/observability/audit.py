"""Append-only JSONL audit log of decisions, with rotation and querying."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from agentguard.core.types import AuditEntry
from agentguard.observability.redaction import redact_entry


class AuditLog:
    """Redacted, rotated JSONL record of every enforced decision."""

    def __init__(
        self,
        path: Path,
        rotate_bytes: int = 10 * 1024 * 1024,
        max_backups: int = 3,
    ) -> None:
        self.path = path
        self.rotate_bytes = rotate_bytes
        self.max_backups = max(0, max_backups)
        self._lock = asyncio.Lock()

    async def record(self, entry: AuditEntry) -> bool:
        """Append one entry. Failures are logged and reported as ``False``."""
        line = json.dumps(redact_entry(entry.to_dict()), ensure_ascii=False)
        async with self._lock:
            try:
                await asyncio.to_thread(self._append_line_sync, line)
            except OSError as exc:
                logger.warning("Failed to write audit entry to {}: {}", self.path, exc)
                return False
        return True

    def _backup(self, index: int) -> Path:
        return self.path.with_name(f"{self.path.name}.{index}")

    def _append_line_sync(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        encoded = (line + "\n").encode("utf-8")
        if self.path.exists() and self.path.stat().st_size + len(encoded) > self.rotate_bytes:
            self._rotate_sync()
        with self.path.open("ab") as handle:
            handle.write(encoded)

    def _rotate_sync(self) -> None:
        if self.max_backups <= 0:
            self.path.unlink(missing_ok=True)
            return
        self._backup(self.max_backups).unlink(missing_ok=True)
        for index in range(self.max_backups - 1, 0, -1):
            src = self._backup(index)
            if src.exists():
                src.replace(self._backup(index + 1))
        if self.path.exists():
            self.path.replace(self._backup(1))

    def _log_files(self) -> list[Path]:
        """Oldest backup first, active file last."""
        files = [self._backup(i) for i in range(self.max_backups, 0, -1)]
        files.append(self.path)
        return [path for path in files if path.exists()]

    @staticmethod
    def _decode_line(raw: str) -> dict[str, Any] | None:
        line = raw.strip()
        if not line:
            return None
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _matches(entry: dict[str, Any], *, action: str | None, since: datetime | None) -> bool:
        if action and entry.get("action") != action:
            return False
        if since is not None:
            try:
                stamp = datetime.fromisoformat(str(entry.get("timestamp")))
            except ValueError:
                return False
            if stamp < since:
                return False
        return True

    def query(
        self,
        *,
        action: str | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Return the latest matching entries, oldest first."""
        if limit <= 0:
            return []
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        rows: list[dict[str, Any]] = []
        for path in self._log_files():
            with path.open(encoding="utf-8") as handle:
                for raw in handle:
                    entry = self._decode_line(raw)
                    if entry is None or not self._matches(entry, action=action, since=since):
                        continue
                    rows.append(entry)
                    if len(rows) > limit:
                        rows = rows[-limit:]
        return rows
