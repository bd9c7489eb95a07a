import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.domain.schemas import NotificationCreate
from app.services.notifications import NotificationEmitter, create_notification_emitter

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def overdue(task_id="task-1"):
    return NotificationCreate(
        user_id="user-1",
        type="task_overdue",
        title="Task Overdue",
        message='Task "Flush nutrients" is overdue',
        link=f"/app/tasks?id={task_id}",
        priority="high",
        metadata={"taskId": task_id, "dueDate": "2026-07-21T09:00:00+00:00"},
    )


def alert(metric="temperature"):
    return NotificationCreate(
        user_id="user-1",
        type="environmental_alert",
        title="Temperature Alert",
        message='Temperature is outside optimal range for "Tent A"',
        link="/app/grows/grow-1",
        priority="high",
        metadata={"growId": "grow-1", "metric": metric, "value": 31, "target": 24},
    )


def fake_repository(recent=None):
    repo = MagicMock()
    repo.create.side_effect = lambda data: {"id": "n-1", **data}
    repo.find_recent.return_value = recent
    return repo


def test_emit_records_every_call_by_default():
    repo = fake_repository(recent={"id": "older"})
    emitter = NotificationEmitter(repository=repo)

    first = asyncio.run(emitter.emit(alert()))
    second = asyncio.run(emitter.emit(alert()))

    assert first.row["type"] == "environmental_alert"
    assert not second.suppressed
    assert repo.create.call_count == 2
    repo.find_recent.assert_not_called()


def test_emit_inserts_full_record():
    repo = fake_repository()
    asyncio.run(NotificationEmitter(repository=repo).emit(alert()))

    data = repo.create.call_args.args[0]
    assert data["user_id"] == "user-1"
    assert data["link"] == "/app/grows/grow-1"
    assert data["metadata"] == {"growId": "grow-1", "metric": "temperature", "value": 31, "target": 24}


def test_suppression_skips_recent_duplicate():
    repo = fake_repository(recent={"id": "n-0"})
    emitter = NotificationEmitter(repository=repo, suppression_window=timedelta(minutes=60), clock=lambda: NOW)

    assert asyncio.run(emitter.emit(alert())).suppressed
    repo.create.assert_not_called()
    repo.find_recent.assert_called_once_with(
        "user-1",
        "environmental_alert",
        {"growId": "grow-1", "metric": "temperature"},
        NOW - timedelta(minutes=60),
    )


def test_suppression_allows_new_alert():
    repo = fake_repository(recent=None)
    emitter = NotificationEmitter(repository=repo, suppression_window=timedelta(minutes=60), clock=lambda: NOW)

    result = asyncio.run(emitter.emit(alert("humidity")))
    assert result.row is not None
    assert not result.suppressed
    repo.create.assert_called_once()


def test_repository_errors_propagate():
    repo = fake_repository()
    repo.create.side_effect = RuntimeError("insert failed")
    emitter = NotificationEmitter(repository=repo)

    with pytest.raises(RuntimeError, match="insert failed"):
        asyncio.run(emitter.emit(alert()))


def test_factory_reads_suppression_setting():
    with patch("app.services.notifications.settings") as settings:
        settings.notification_suppression_minutes = 0
        assert create_notification_emitter().suppression_window is None

        settings.notification_suppression_minutes = 30
        assert create_notification_emitter().suppression_window == timedelta(minutes=30)


def test_overdue_task_is_recorded_once_without_window():
    repo = fake_repository(recent=None)
    emitter = NotificationEmitter(repository=repo, clock=lambda: NOW)

    assert not asyncio.run(emitter.emit(overdue())).suppressed
    repo.find_recent.assert_called_once_with(
        "user-1",
        "task_overdue",
        {"taskId": "task-1", "dueDate": "2026-07-21T09:00:00+00:00"},
        None,
    )

    repo.find_recent.return_value = {"id": "n-1"}
    assert asyncio.run(emitter.emit(overdue())).suppressed
    assert repo.create.call_count == 1


def test_overdue_dedupe_ignores_suppression_window():
    repo = fake_repository(recent={"id": "n-0"})
    emitter = NotificationEmitter(repository=repo, suppression_window=timedelta(minutes=5), clock=lambda: NOW)

    assert asyncio.run(emitter.emit(overdue())).suppressed
    assert repo.find_recent.call_args.args[3] is None


def test_empty_insert_is_not_reported_as_suppressed():
    repo = fake_repository()
    repo.create.side_effect = None
    repo.create.return_value = None
    emitter = NotificationEmitter(repository=repo)

    result = asyncio.run(emitter.emit(alert()))

    assert result.row is None
    assert not result.suppressed
