"""
Notification queue for gamification events.

The engine reports new badges and level-ups as returned data; the UI pushes
that data here and drains it at its own pace. Badges are shown first-in
first-out, a level-up is a single pending value (a newer one replaces it).
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from mini_trainer.core.models import Badge


class NotificationQueue:
    """FIFO of earned badges plus at most one pending level-up."""

    def __init__(self) -> None:
        self._badges: deque[Badge] = deque()
        self._level_up: int | None = None

    def push_badges(self, badges: Iterable[Badge]) -> None:
        queued = {badge.id for badge in self._badges}
        for badge in badges:
            if badge.id not in queued:
                self._badges.append(badge)
                queued.add(badge.id)

    def set_level_up(self, level: int | None) -> None:
        self._level_up = level

    @property
    def current_badge(self) -> Badge | None:
        return self._badges[0] if self._badges else None

    @property
    def pending_badges(self) -> list[Badge]:
        return list(self._badges)

    @property
    def level_up(self) -> int | None:
        return self._level_up

    @property
    def has_active(self) -> bool:
        return bool(self._badges) or self._level_up is not None

    def dismiss(self) -> Badge | None:
        """Drop the badge currently shown and return it."""
        return self._badges.popleft() if self._badges else None

    def clear(self) -> None:
        """Clear the pending level-up celebration."""
        self._level_up = None

    def reset(self) -> None:
        self._badges.clear()
        self._level_up = None
