from typing import Optional

from fastapi import Request

from app.services.notification_checker import NotificationChecker


def get_notification_checker(request: Request) -> Optional[NotificationChecker]:
    """The process-wide checker created in the app lifespan, if enabled."""
    return getattr(request.app.state, "notification_checker", None)
