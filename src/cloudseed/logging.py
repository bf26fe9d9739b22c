"""Structured operation logging for cloudseed commands.

Each CLI command runs inside :meth:`StructuredLogger.operation`, which appends
a single JSON line to ``operations.jsonl`` describing the command, its
arguments, the outcome and timing. Logging never breaks a command: when the
log directory cannot be created or a write fails the logger disables itself
and carries on silently.
"""
from __future__ import annotations

import json
import os
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

OPERATIONS_LOG = "operations.jsonl"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitise(value: object) -> object:
    """Return a JSON-safe copy of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    return str(value)


class OperationScope:
    """Collects the outcome of a single logged operation."""

    def __init__(self, command: str) -> None:
        """Start a scope for *command* with no recorded result."""
        self.command = command
        self.result: dict[str, object] | None = None

    def _record(
        self,
        status: str,
        message: str,
        *,
        changed: int | None,
        warnings: Sequence[str] | None,
        errors: Sequence[str] | None,
        rc: int | None,
        context: Mapping[str, object] | None,
    ) -> None:
        result: dict[str, object] = {"status": status, "message": message}
        if changed is not None:
            result["changed"] = changed
        result["warnings"] = list(warnings or [])
        result["errors"] = list(errors or [])
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitise(context)
        self.result = result

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a successful outcome."""
        self._record(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            rc=0,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a completed outcome that deserves attention."""
        self._record(
            "warning",
            message,
            changed=changed,
            warnings=warnings or [message],
            errors=errors,
            rc=0,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        warnings: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a failed outcome."""
        self._record(
            "error",
            message,
            changed=0,
            warnings=warnings,
            errors=errors or [message],
            rc=rc,
            context=context,
        )


class StructuredLogger:
    """Append operation records as JSON lines under *log_dir*."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*, disabling logging when it is unusable."""
        self._log_dir = Path(log_dir).expanduser()
        self._operations_log_path = self._log_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return ``True`` while records are being written."""
        return self._enabled

    @property
    def operations_log_path(self) -> Path:
        """Return the JSON-lines file receiving operation records."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Log the enclosed block as one operation named *command*."""
        scope = OperationScope(command)
        started_at = _now_iso()
        start = time.perf_counter()
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__, rc=1)
            raise
        finally:
            record: dict[str, object] = {
                "command": command,
                "args": _sanitise(dict(args or {})),
                "target": _sanitise(dict(target or {})),
                "started_at": started_at,
                "duration_ms": int((time.perf_counter() - start) * 1000),
                "pid": os.getpid(),
                "result": scope.result or {"status": "unknown", "message": ""},
            }
            self._write(record)

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False))
                handle.write("\n")
        except OSError:
            self._enabled = False


__all__ = ["OPERATIONS_LOG", "OperationScope", "StructuredLogger"]
