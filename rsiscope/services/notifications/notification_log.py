"""Capped notification log (newest first, oldest dropped past the limit)."""

from __future__ import annotations

from typing import List

from rsiscope.infrastructure.storage.sqlite_repository import SQLiteRepository
from rsiscope.infrastructure.utils.timeutils import utc_now
from rsiscope.models.alert_models import AlertEvent, AlertKind, Notification


DEFAULT_NOTIFICATION_LIMIT = 50


class NotificationLog:
    def __init__(self, repo: SQLiteRepository, limit: int = DEFAULT_NOTIFICATION_LIMIT) -> None:
        self._repo = repo
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def add(self, event: AlertEvent) -> Notification:
        created_at = utc_now().isoformat()
        row_id = self._repo.insert_notification(
            created_at=created_at,
            symbol=event.symbol,
            timeframe=event.timeframe,
            type=event.type.value,
            rsi=event.rsi,
            body=event.body,
        )
        self._repo.trim_notifications(self._limit)
        return Notification(
            id=row_id,
            created_at=created_at,
            symbol=event.symbol,
            timeframe=event.timeframe,
            type=event.type,
            rsi=event.rsi,
            body=event.body,
        )

    def add_many(self, events: List[AlertEvent]) -> List[Notification]:
        return [self.add(ev) for ev in events]

    def list(self) -> List[Notification]:
        out: List[Notification] = []
        for r in self._repo.list_notifications(self._limit):
            try:
                kind = AlertKind(r.type)
            except ValueError:
                # Rows written by an older build with a since-removed kind
                continue
            out.append(
                Notification(
                    id=r.id,
                    created_at=r.created_at,
                    symbol=r.symbol,
                    timeframe=r.timeframe,
                    type=kind,
                    read=r.read,
                    rsi=r.rsi,
                    body=r.body,
                )
            )
        return out

    def mark_all_read(self) -> None:
        self._repo.mark_notifications_read()

    def clear(self) -> None:
        self._repo.clear_notifications()

    def unread_count(self) -> int:
        return self._repo.count_unread_notifications()
