"""Notification delivery seam for household members."""

import logging
from typing import Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    """Delivers a short text message to a user (push, chat, email...)."""

    async def notify(self, user_id: str, message: str) -> bool:
        """Send `message` to `user_id`. Returns True if it was delivered."""
        ...


class LoggingNotifier:
    """Default notifier used when no delivery backend is wired: writes to the log."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def notify(self, user_id: str, message: str) -> bool:
        self.sent.append((user_id, message))
        logger.info("Notification for %s: %s", user_id, message)
        return True
