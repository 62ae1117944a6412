"""Notifiers told about every correction outcome."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import List

LOG = logging.getLogger("zonectl")


class Notifier(abc.ABC):
    """Receives one call per correction, plus a final flush."""

    @abc.abstractmethod
    def notify(self, domain: str, provider: str, msg: str, error: Exception | None, preview: bool) -> None:
        """Report one correction."""

    def done(self) -> None:
        """Called once at the end of the run."""


class NullNotifier(Notifier):
    """Discards everything."""

    def notify(self, domain: str, provider: str, msg: str, error: Exception | None, preview: bool) -> None:
        return None


class LogNotifier(Notifier):
    """Writes each outcome to the ``zonectl`` logger."""

    def notify(self, domain: str, provider: str, msg: str, error: Exception | None, preview: bool) -> None:
        first_line = msg.splitlines()[0] if msg else ""
        if error is not None:
            LOG.error("%s[%s]: %s failed: %s", domain, provider, first_line, error)
        elif preview:
            LOG.info("%s[%s]: would run %s", domain, provider, first_line)
        else:
            LOG.info("%s[%s]: ran %s", domain, provider, first_line)


@dataclass
class Notification:
    domain: str
    provider: str
    msg: str
    error: Exception | None
    preview: bool


@dataclass
class MemoryNotifier(Notifier):
    """Keeps notifications in memory; handy for embedding and tests."""

    items: List[Notification] = field(default_factory=list)
    finished: bool = False

    def notify(self, domain: str, provider: str, msg: str, error: Exception | None, preview: bool) -> None:
        self.items.append(Notification(domain, provider, msg, error, preview))

    def done(self) -> None:
        self.finished = True


def init_notifier(enabled: bool) -> Notifier:
    """Return the notifier for this run."""
    return LogNotifier() if enabled else NullNotifier()
