from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone


logger = logging.getLogger("stackboot")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr; stdout is reserved for operator-facing progress."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    # docker/httpx are chatty at DEBUG
    for name in ("urllib3", "docker", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


@dataclass(frozen=True)
class Event:
    level: str
    message: str
    service: str | None = None
    ts: str = field(default_factory=utc_now)


class RunState:
    """In-memory state for a single orchestrator run.

    Nothing survives the process; the event list exists so a caller (or a test)
    can see what happened in which phase.
    """

    def __init__(self) -> None:
        self.phase: str | None = None
        self.completed: list[str] = []
        self.events: list[Event] = []

    def enter(self, phase: str) -> None:
        self.phase = phase
        self.log_event("INFO", f"Phase {phase} started")

    def finish(self, phase: str) -> None:
        self.completed.append(phase)
        self.phase = None

    def log_event(self, level: str, message: str, service: str | None = None) -> Event:
        ev = Event(level=level.upper(), message=message, service=service)
        self.events.append(ev)
        text = f"[{service}] {message}" if service else message
        logger.log(_LEVELS.get(ev.level, logging.INFO), text)
        return ev

    def messages(self, service: str | None = None) -> list[str]:
        return [e.message for e in self.events if service is None or e.service == service]
