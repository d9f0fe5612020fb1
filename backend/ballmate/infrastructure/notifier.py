from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import Notifier
from ..models import Notification

_TITLES = {
    "created": "Booking received",
    "cancelled": "Booking cancelled",
}


class SqlAlchemyNotifier(Notifier):
    """
    Stores an in-app notification row for the player.

    The insert runs in a SAVEPOINT so a failure here rolls back only the
    notification, never the enclosing booking transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def notify(self, player_id: int, kind: str, details: dict[str, Any]) -> None:
        async with self.session.begin_nested():
            self.session.add(
                Notification(
                    player_id=player_id,
                    kind=kind,
                    title=_TITLES.get(kind, "Booking update"),
                    payload=details,
                    is_read=False,
                    created_at=datetime.now(timezone.utc).replace(tzinfo=None),
                )
            )
