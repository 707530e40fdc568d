"""User-facing notifications (the transient "toast" channel)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from studiodesk.gateway.errors import AuthorizationError, GatewayError

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(slots=True)
class Notice:
    level: NoticeLevel
    title: str
    description: str = ""


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


@dataclass
class LogNotifier:
    """Notifier that logs every notice and keeps them for inspection."""

    history: list[Notice] = field(default_factory=list)

    def notify(self, notice: Notice) -> None:
        self.history.append(notice)
        if notice.level is NoticeLevel.ERROR:
            logger.error("notice: %s - %s", notice.title, notice.description)
        else:
            logger.info("notice: %s - %s", notice.title, notice.description)

    @property
    def errors(self) -> list[Notice]:
        return [n for n in self.history if n.level is NoticeLevel.ERROR]


def success(notifier: Notifier, title: str, description: str = "") -> None:
    notifier.notify(Notice(NoticeLevel.SUCCESS, title, description))


def error(notifier: Notifier, title: str, description: str = "") -> None:
    notifier.notify(Notice(NoticeLevel.ERROR, title, description))


def describe_failure(exc: GatewayError, action: str) -> str:
    """Single user-facing sentence for a failed remote call."""
    if isinstance(exc, AuthorizationError):
        return f"You do not have permission to {action}. Please sign in again."
    return f"Failed to {action}. Please try again."
