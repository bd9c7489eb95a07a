"""
Notification emitter.

Records notifications in the notifications table. Environmental alerts are
written on every call by default, so an alert that stays active is repeated
on every checker cycle. Setting NOTIFICATION_SUPPRESSION_MINUTES turns on a
suppression window: an alert identical to one recorded within the window
(same user, type and identifying metadata) is skipped.

Types in `dedupe_types` (task_overdue by default) are recorded once per
subject no matter the window: an overdue task stays overdue until the user
acts, so one notice per task and due date is enough.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from app.core.config import settings
from app.domain.schemas import NotificationCreate
from app.domain.tasks import TASK_OVERDUE
from app.repositories.notification import NotificationRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EmitResult:
    row: Optional[dict] = None
    suppressed: bool = False


class NotificationEmitter:

    def __init__(
        self,
        repository=NotificationRepository,
        suppression_window: Optional[timedelta] = None,
        dedupe_types: Iterable[str] = (TASK_OVERDUE,),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.suppression_window = suppression_window
        self.dedupe_types = frozenset(dedupe_types)
        self._clock = clock

    async def is_suppressed(self, notification: NotificationCreate) -> bool:
        if notification.type in self.dedupe_types:
            since = None
        elif self.suppression_window:
            since = self._clock() - self.suppression_window
        else:
            return False

        existing = await asyncio.to_thread(
            self.repository.find_recent,
            notification.user_id,
            notification.type,
            notification.dedup_match(),
            since,
        )
        return existing is not None

    async def emit(self, notification: NotificationCreate) -> EmitResult:
        """Record a notification unless an identical one is suppressing it."""
        if await self.is_suppressed(notification):
            logger.debug(
                f"Suppressed {notification.type} for user {notification.user_id}: "
                f"{notification.dedup_match()}"
            )
            return EmitResult(suppressed=True)

        row = await asyncio.to_thread(self.repository.create, notification.model_dump())
        if row is None:
            logger.warning(f"Insert of {notification.type} for user {notification.user_id} returned no row")
        else:
            logger.info(f"Recorded {notification.type} notification for user {notification.user_id}")
        return EmitResult(row=row)


def create_notification_emitter() -> NotificationEmitter:
    """Emitter configured from settings."""
    window = None
    if settings.notification_suppression_minutes > 0:
        window = timedelta(minutes=settings.notification_suppression_minutes)
    return NotificationEmitter(suppression_window=window)
