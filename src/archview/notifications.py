"""🔔 Notifications - User-facing notices raised by the session.

Presentation (toasts, console output) is up to the caller; the notifier only
collects notices and logs them.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

logger = logging.getLogger(__name__)

NoticeVariant = Literal["default", "destructive"]


@dataclass
class Notice:
    title: str
    description: str = ""
    variant: NoticeVariant = "default"
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


class Notifier:
    """Collects notices and forwards them to optional listeners.

    Only the most recent ``max_notices`` are kept; older ones are dropped.

    Example:
        notifier = Notifier()
        notifier.subscribe(lambda n: console.print(n.title))
        notifier.info("Data Loaded", "Displaying data based on current filters.")
    """

    def __init__(self, max_notices: int = 100) -> None:
        self.notices: deque[Notice] = deque(maxlen=max_notices)
        self._listeners: list[Callable[[Notice], None]] = []

    def subscribe(self, listener: Callable[[Notice], None]) -> None:
        self._listeners.append(listener)

    def notify(self, notice: Notice) -> Notice:
        self.notices.append(notice)
        if notice.is_error:
            logger.warning("%s: %s", notice.title, notice.description)
        else:
            logger.info("%s: %s", notice.title, notice.description)
        for listener in self._listeners:
            listener(notice)
        return notice

    def info(self, title: str, description: str = "") -> Notice:
        return self.notify(Notice(title, description))

    def error(self, title: str, description: str = "") -> Notice:
        return self.notify(Notice(title, description, variant="destructive"))

    @property
    def errors(self) -> list[Notice]:
        return [n for n in self.notices if n.is_error]

    def clear(self) -> None:
        self.notices.clear()
