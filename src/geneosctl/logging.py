"""Structured operation logging for geneosctl.

Every CLI command runs inside :meth:`StructuredLogger.operation`, which
appends one JSON object per operation to ``operations.jsonl`` under the
configured logs directory. Logging must never break a command: when the
directory cannot be created or a write fails the logger disables itself and
carries on silently.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG = "operations.jsonl"


def _json_safe(value: object) -> object:
    """Return a JSON-serialisable rendering of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationScope:
    """Mutable record for a single in-flight operation."""

    operation_id: str
    command: str
    args: dict[str, object]
    target: dict[str, object]
    started: float
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None
    rc: int = 0

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._finish("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._finish(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
        rc: int = 1,
    ) -> None:
        """Mark the operation as failed."""
        self.rc = rc
        self._finish(
            "error",
            message,
            errors=[message] if errors is None else errors,
            context=context,
        )

    def _finish(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        context: Mapping[str, object] | None = None,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": [str(item) for item in warnings],
            "errors": [str(item) for item in errors],
            "context": _json_safe(dict(context or {})),
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON record for this operation."""
        result = self.result or {
            "status": "error",
            "message": "Operation ended without a recorded result.",
            "changed": 0,
            "warnings": [],
            "errors": [],
            "context": {},
        }
        return {
            "id": self.operation_id,
            "timestamp": datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "command": self.command,
            "args": _json_safe(self.args),
            "target": _json_safe(self.target),
            "duration_ms": int((time.monotonic() - self.started) * 1000),
            "steps": list(self.steps),
            "result": result,
            "rc": self.rc,
        }


class StructuredLogger:
    """Append JSON operation records beneath *logs_dir*."""

    def __init__(self, logs_dir: Path) -> None:
        self._logs_dir = Path(logs_dir).expanduser()
        self._operations_log_path = self._logs_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("structured logging disabled, cannot create %s: %s", self._logs_dir, exc)
            self._enabled = False

    @property
    def path(self) -> Path:
        """Return the path of the operations log."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Open an operation scope and persist it when the block exits."""
        scope = OperationScope(
            operation_id=uuid.uuid4().hex,
            command=command,
            args=dict(args or {}),
            target=dict(target or {}),
            started=time.monotonic(),
        )
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(str(exc) or exc.__class__.__name__)
            raise
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.debug("structured logging disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
