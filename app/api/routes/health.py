from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_notification_checker
from app.services.notification_checker import NotificationChecker

router = APIRouter()


@router.get("/health")
def health_check(checker: Optional[NotificationChecker] = Depends(get_notification_checker)):
    """Liveness check with notification checker status."""
    if checker is None:
        return {"status": "ok", "notification_checker": None}

    report = checker.last_report
    return {
        "status": "ok",
        "notification_checker": {
            "state": checker.state.value,
            "interval_seconds": checker.interval_seconds,
            "cycles_run": checker.cycles_run,
            "last_cycle": report.to_dict() if report else None,
        },
    }
