from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable

from .health import Probe
from .settings import Settings


logger = logging.getLogger(__name__)


class DependencyNotReady(Exception):
    """A dependency never passed its readiness gate within the retry budget."""

    def __init__(self, name: str, attempts: int, last_message: str) -> None:
        self.name = name
        self.attempts = attempts
        self.last_message = last_message
        super().__init__(f"{name} never became ready after {attempts} attempts (last: {last_message})")


@dataclass(frozen=True)
class RetryPolicy:
    interval_s: float = 1.0
    max_attempts: int | None = None
    deadline_s: float | None = None
    backoff: float = 1.0
    max_interval_s: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings, interval_s: float | None = None) -> "RetryPolicy":
        """Non-positive timeout, attempt cap or interval cap means no limit."""
        interval = settings.poll_interval_s if interval_s is None else interval_s
        return cls(
            interval_s=interval,
            max_attempts=settings.ready_max_attempts if settings.ready_max_attempts > 0 else None,
            deadline_s=float(settings.ready_timeout_s) if settings.ready_timeout_s > 0 else None,
            backoff=max(1.0, settings.ready_backoff),
            max_interval_s=settings.ready_max_interval_s if settings.ready_max_interval_s > 0 else None,
        )

    def delay(self, attempt: int) -> float:
        d = self.interval_s * (self.backoff ** max(0, attempt - 1))
        if self.max_interval_s is not None:
            d = min(d, self.max_interval_s)
        return d


def _dot() -> None:
    sys.stdout.write(".")
    sys.stdout.flush()


def wait_until_ready(
    name: str,
    probe: Probe,
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    progress: Callable[[], None] = _dot,
) -> int:
    """Block until `probe` succeeds and return the number of attempts it took.

    Failed attempts print one progress marker each. Raises DependencyNotReady
    once the policy's attempt or time budget is spent.
    """
    start = clock()
    attempt = 0
    msg = "not attempted"
    while True:
        attempt += 1
        ok, msg = probe()
        if ok:
            logger.debug("%s ready after %d attempt(s)", name, attempt)
            return attempt

        progress()
        logger.debug("%s not ready (attempt %d): %s", name, attempt, msg)
        if policy.max_attempts is not None and attempt >= policy.max_attempts:
            break
        delay = policy.delay(attempt)
        if policy.deadline_s is not None and clock() - start + delay > policy.deadline_s:
            break
        sleep(delay)

    raise DependencyNotReady(name, attempt, msg)
