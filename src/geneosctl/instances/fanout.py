"""Apply one action to every instance matched by a list of tokens."""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..components.base import Instance
from ..components.registry import Component
from ..errors import ActionResult, ActionStatus, NotFoundError
from .expand import token_names
from .fleet import Fleet

LOGGER = logging.getLogger(__name__)

Action = Callable[[Instance, Sequence[str]], Any]


@dataclass(slots=True)
class FanOutReport:
    """Per-instance outcomes of one fan-out, in execution order."""

    results: list[ActionResult] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    matched_tokens: int = 0

    @property
    def failures(self) -> list[ActionResult]:
        return [result for result in self.results if result.status.is_failure]

    @property
    def ok(self) -> bool:
        return not self.failures

    def values(self) -> list[Any]:
        """Return the values returned by successful actions."""
        return [result.value for result in self.results if result.status is ActionStatus.OK]


def for_all(
    fleet: Fleet,
    component: Component | None,
    action: Action,
    tokens: Sequence[str],
    params: Sequence[str] = (),
) -> FanOutReport:
    """Run *action* for each instance matched by each token.

    Each token is expanded like a command line token: ``@HOST`` selects
    every instance on that host and a bare ``NAME`` is looked up on every
    host. A token matching nothing is logged and skipped. Errors raised by the
    action are caught per instance and logged with the instance identity;
    "already stopped" and "unsupported" outcomes are not failures. Only when
    tokens were given and none matches anything is :class:`NotFoundError` raised.
    """
    report = FanOutReport()
    for token in tokens:
        instances: list[Instance] = []
        for name in token_names(fleet, token, component):
            instances.extend(fleet.find_instances(component, name))
        if not instances:
            LOGGER.info("no matches for %s %s", component or "any", token)
            report.unmatched.append(token)
            continue
        report.matched_tokens += 1
        for instance in instances:
            label = str(instance.common)
            try:
                value = action(instance, params)
            except Exception as exc:  # noqa: BLE001 - isolate per-instance failures
                result = ActionResult.from_exception(label, exc)
                if result.status is ActionStatus.STOPPED:
                    LOGGER.debug("%s: %s", label, exc)
                elif result.status is ActionStatus.UNSUPPORTED:
                    LOGGER.info("%s: %s", label, exc)
                else:
                    LOGGER.error("%s: %s", label, exc)
            else:
                result = ActionResult(instance=label, status=ActionStatus.OK, value=value)
            report.results.append(result)
    if tokens and report.matched_tokens == 0:
        raise NotFoundError(f"no instances matched {' '.join(tokens) or 'any name'}")
    return report


__all__ = ["Action", "FanOutReport", "for_all"]
