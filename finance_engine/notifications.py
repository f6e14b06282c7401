"""Owner notifications: write-once records with a read flag."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from . import config
from .exceptions import ValidationError
from .models import NOTIFICATION_TYPES, Notification, utcnow
from .store.base import NotificationStore

logger = logging.getLogger(__name__)


class NotificationCenter:

    def __init__(self, store: NotificationStore):
        self.store = store

    def notify(
        self,
        owner_id: str,
        title: str,
        message: str,
        type: str = 'info',
        dedup_key: Optional[str] = None,
    ) -> Notification:
        if type not in NOTIFICATION_TYPES:
            raise ValidationError('Invalid notification', {'type': f"Unknown notification type {type!r}"})
        notification = Notification(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            title=title,
            message=message,
            type=type,
            dedup_key=dedup_key,
            created_at=utcnow(),
        )
        self.store.insert(notification)
        logger.info("Notification %s (%s) for owner %s", notification.id, type, owner_id)
        return notification

    def has_unread(self, owner_id: str, dedup_key: str) -> bool:
        return self.store.has_unread(owner_id, dedup_key)

    def list_notifications(self, owner_id: str, limit: int = config.NOTIFICATION_LIMIT) -> Tuple[List[Notification], int]:
        """Newest notifications plus the owner's total unread count."""
        return self.store.list(owner_id, limit), self.store.unread_count(owner_id)

    def mark_read(self, owner_id: str, notification_id: str) -> None:
        self.store.mark_read(notification_id, owner_id)

    def mark_all_read(self, owner_id: str) -> int:
        return self.store.mark_all_read(owner_id)
