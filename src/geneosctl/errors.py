"""Error kinds and per-instance action results shared by the core."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exit_codes import ExitCode


class GeneosError(RuntimeError):
    """Base class for errors raised by the geneosctl core."""

    exit_code: ExitCode = ExitCode.PROVIDER


class InvalidArgumentError(GeneosError):
    """Malformed address syntax or conflicting arguments."""

    exit_code = ExitCode.VALIDATION


class ReservedNameError(InvalidArgumentError):
    """A literal, user-typed instance name collides with a reserved word."""


class NotFoundError(GeneosError):
    """No instance, host or version matched a filter."""

    exit_code = ExitCode.NOT_FOUND


class UnsupportedError(GeneosError):
    """The action is not implemented by the component type."""


class ProcessStoppedError(GeneosError):
    """The instance has no discoverable process."""

    exit_code = ExitCode.OK


class DisabledError(GeneosError):
    """The instance carries a disable marker and must not be started."""

    exit_code = ExitCode.VALIDATION


class HostError(GeneosError):
    """Filesystem or remote-shell failure on a host."""

    exit_code = ExitCode.ENVIRONMENT


class ActionStatus(str, Enum):
    """Outcome of applying one action to one instance."""

    OK = "ok"
    STOPPED = "stopped"
    NOT_FOUND = "not-found"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        """Return ``True`` for outcomes that count as real failures."""
        return self in {ActionStatus.NOT_FOUND, ActionStatus.FAILED}


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Result of one per-instance action inside a fan-out."""

    instance: str
    status: ActionStatus
    cause: BaseException | None = None
    value: Any = None

    @classmethod
    def from_exception(cls, instance: str, exc: BaseException) -> ActionResult:
        """Classify *exc* into a result for *instance*."""
        if isinstance(exc, ProcessStoppedError):
            status = ActionStatus.STOPPED
        elif isinstance(exc, UnsupportedError):
            status = ActionStatus.UNSUPPORTED
        elif isinstance(exc, NotFoundError):
            status = ActionStatus.NOT_FOUND
        else:
            status = ActionStatus.FAILED
        return cls(instance=instance, status=status, cause=exc)

    def describe(self) -> str:
        """Return a short human readable description."""
        if self.cause is None:
            return f"{self.instance}: {self.status.value}"
        return f"{self.instance}: {self.status.value} ({self.cause})"


__all__ = [
    "ActionResult",
    "ActionStatus",
    "DisabledError",
    "GeneosError",
    "HostError",
    "InvalidArgumentError",
    "NotFoundError",
    "ProcessStoppedError",
    "ReservedNameError",
    "UnsupportedError",
]
