"""
Background notification checker.

Periodically scans for conditions users should hear about:
1. open tasks past their due date
2. grows in a monitored stage whose newest environmental reading is
   outside the target band

and records a notification for each. The loop is single-flight: a cycle
always runs to completion before the next one is scheduled, and the next
cycle starts `interval_seconds` after the previous one *started* (or right
away if the cycle overran the interval).

States:
    stopped  -> start() ->  idle <-> in_cycle
    idle/in_cycle -> stop() -> stopped (an in-flight cycle still completes)

Repository calls are blocking Supabase requests; they run in worker threads
so the event loop stays responsive.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

from app.core.config import settings
from app.domain.conditions import HUMIDITY_DEADBAND, TEMPERATURE_DEADBAND, evaluate_reading
from app.domain.schemas import EnvironmentalReading, Grow, NotificationCreate, Task
from app.domain.tasks import find_overdue_tasks, overdue_notification
from app.repositories.environmental import EnvironmentalRepository
from app.repositories.grow import GrowRepository
from app.repositories.task import TaskRepository
from app.services.notifications import NotificationEmitter, create_notification_emitter

logger = logging.getLogger(__name__)


class TaskSource(Protocol):
    def list_overdue(self, now: datetime) -> list[dict]: ...


class GrowSource(Protocol):
    def list_by_stages(self, stages: list[str]) -> list[dict]: ...


class ReadingSource(Protocol):
    def get_latest(self, grow_id: str, limit: int = 1) -> list[dict]: ...


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    IN_CYCLE = "in_cycle"


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    overdue_tasks: int = 0
    grows_checked: int = 0
    notifications: list[dict] = field(default_factory=list)
    suppressed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "overdue_tasks": self.overdue_tasks,
            "grows_checked": self.grows_checked,
            "notifications": len(self.notifications),
            "suppressed": self.suppressed,
            "errors": list(self.errors),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationChecker:

    def __init__(
        self,
        emitter: NotificationEmitter,
        tasks: TaskSource = TaskRepository,
        grows: GrowSource = GrowRepository,
        readings: ReadingSource = EnvironmentalRepository,
        interval_seconds: float = 300,
        stages: Iterable[str] = ("vegetative",),
        temperature_deadband: float = TEMPERATURE_DEADBAND,
        humidity_deadband: float = HUMIDITY_DEADBAND,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.emitter = emitter
        self.tasks = tasks
        self.grows = grows
        self.readings = readings
        self.interval_seconds = interval_seconds
        self.stages = list(stages)
        self.temperature_deadband = temperature_deadband
        self.humidity_deadband = humidity_deadband
        self._clock = clock

        self._state = SchedulerState.STOPPED
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._cycle_lock = asyncio.Lock()

        self.cycles_run = 0
        self.last_report: Optional[CycleReport] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Start the polling loop. Must be called from a running event loop.

        The first cycle runs immediately. Calling start() while running is a no-op.
        """
        if self.is_running:
            return

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._state = SchedulerState.IDLE
        self._task = asyncio.get_running_loop().create_task(
            self._run(stop_event), name="notification-checker"
        )
        logger.info(
            f"Notification checker started (interval={self.interval_seconds}s, stages={self.stages})"
        )

    def stop(self) -> None:
        """Stop scheduling cycles. An in-flight cycle runs to completion."""
        if not self.is_running:
            return
        self._stop_event.set()
        self._state = SchedulerState.STOPPED
        logger.info("Notification checker stopped")

    async def wait_stopped(self) -> None:
        """Wait for the loop task to exit after stop()."""
        if self._task is not None:
            await self._task

    def _set_state(self, stop_event: asyncio.Event, state: SchedulerState) -> None:
        # A loop left over from before a restart must not overwrite the new loop's state
        if stop_event is self._stop_event and not stop_event.is_set():
            self._state = state

    async def _run(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        while not stop_event.is_set():
            started = loop.time()
            self._set_state(stop_event, SchedulerState.IN_CYCLE)
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Notification cycle crashed")
            if stop_event.is_set():
                break
            self._set_state(stop_event, SchedulerState.IDLE)

            delay = max(0.0, self.interval_seconds - (loop.time() - started))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def run_cycle(self) -> CycleReport:
        """Run one full check. Never raises; failures are logged and reported."""
        async with self._cycle_lock:
            report = CycleReport(started_at=self._clock())
            try:
                await self._check_overdue_tasks(report)
                await self._check_environment(report)
            except Exception as e:
                logger.error(f"Error checking for notifications: {e}")
                report.errors.append(f"cycle: {e}")

            report.finished_at = self._clock()
            self.cycles_run += 1
            self.last_report = report

            if report.errors:
                logger.warning(f"Notification cycle finished with {len(report.errors)} error(s)")
            else:
                logger.debug(
                    f"Notification cycle finished: {report.grows_checked} grows checked, "
                    f"{len(report.notifications)} notifications"
                )
            return report

    async def _emit(self, notification: NotificationCreate, report: CycleReport) -> None:
        result = await self.emitter.emit(notification)
        if result.suppressed:
            report.suppressed += 1
        elif result.row is not None:
            report.notifications.append(result.row)

    async def _check_overdue_tasks(self, report: CycleReport) -> None:
        # A failure here must not prevent the environmental checks
        try:
            now = self._clock()
            rows = await asyncio.to_thread(self.tasks.list_overdue, now)
            overdue = find_overdue_tasks([Task(**row) for row in rows], now)
            report.overdue_tasks = len(overdue)
            for task in overdue:
                await self._emit(overdue_notification(task), report)
        except Exception as e:
            logger.error(f"Overdue task check failed: {e}")
            report.errors.append(f"overdue_tasks: {e}")

    async def _check_environment(self, report: CycleReport) -> None:
        rows = await asyncio.to_thread(self.grows.list_by_stages, self.stages)

        for row in rows:
            grow_id = row.get("id")
            try:
                grow = Grow(**row)
                readings = await asyncio.to_thread(self.readings.get_latest, grow.id)
                report.grows_checked += 1
                if not readings:
                    continue

                latest = EnvironmentalReading(**readings[0])
                violations = evaluate_reading(
                    grow,
                    latest,
                    temperature_deadband=self.temperature_deadband,
                    humidity_deadband=self.humidity_deadband,
                )
                for violation in violations:
                    await self._emit(violation.to_notification(), report)
            except Exception as e:
                logger.error(f"Environmental check failed for grow {grow_id}: {e}")
                report.errors.append(f"grow {grow_id}: {e}")


def create_notification_checker() -> NotificationChecker:
    """Checker wired to the Supabase repositories and configured from settings."""
    return NotificationChecker(
        emitter=create_notification_emitter(),
        interval_seconds=settings.notification_check_interval_seconds,
        stages=settings.notification_monitored_stages,
        temperature_deadband=settings.temperature_deadband,
        humidity_deadband=settings.humidity_deadband,
    )
