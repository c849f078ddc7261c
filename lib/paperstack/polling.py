from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable

from .errors import ReadinessError

log = logging.getLogger(__name__)


class PollPolicy(str, enum.Enum):
    FATAL = "fatal"
    SOFT = "soft"


class PollTimeout(ReadinessError):
    def __init__(self, label: str, attempts: int, *, hint: str | None = None):
        super().__init__(f"{label} not ready after {attempts} attempts", hint=hint)
        self.label = label
        self.attempts = attempts


@dataclass(frozen=True)
class PollResult:
    ok: bool
    attempts: int


def poll_until(
        predicate: Callable[[], bool],
        *,
        label: str,
        interval: float,
        ceiling: int,
        policy: PollPolicy,
        hint: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_attempt: Callable[[int, int], None] | None = None,
) -> PollResult:
    """Probe ``predicate`` at most ``ceiling`` times, ``interval`` seconds apart.

    On exhaustion a FATAL poll raises :class:`PollTimeout`; a SOFT poll returns
    a result with ``ok=False`` and lets the caller continue.
    """
    if ceiling < 1:
        raise ValueError("ceiling must be at least 1")
    for attempt in range(1, ceiling + 1):
        if on_attempt:
            on_attempt(attempt, ceiling)
        if predicate():
            log.debug("%s ready after %d attempt(s)", label, attempt)
            return PollResult(ok=True, attempts=attempt)
        if attempt < ceiling:
            sleep(interval)
    log.debug("%s not ready after %d attempts (policy=%s)", label, ceiling, policy.value)
    if policy is PollPolicy.FATAL:
        raise PollTimeout(label, ceiling, hint=hint)
    return PollResult(ok=False, attempts=ceiling)
