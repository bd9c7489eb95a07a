"""
Environmental condition checks.

Compares the newest reading of a grow against the grow's target and reports
a violation when the value leaves the deadband around the target. The
boundary itself is inside the band: target + 5 degrees is fine, target + 6
is not.
"""
from dataclasses import dataclass
from typing import Optional

from app.domain.schemas import EnvironmentalReading, Grow, NotificationCreate

ENVIRONMENTAL_ALERT = "environmental_alert"

TEMPERATURE_DEADBAND = 5.0
HUMIDITY_DEADBAND = 10.0


@dataclass(frozen=True)
class ConditionViolation:
    grow_id: str
    grow_name: str
    metric: str
    value: float
    target: float
    user_id: Optional[str] = None

    def to_notification(self) -> NotificationCreate:
        label = self.metric.capitalize()
        return NotificationCreate(
            user_id=self.user_id,
            type=ENVIRONMENTAL_ALERT,
            title=f"{label} Alert",
            message=f'{label} is outside optimal range for "{self.grow_name}"',
            link=f"/app/grows/{self.grow_id}",
            priority="high",
            metadata={
                "growId": self.grow_id,
                "metric": self.metric,
                "value": self.value,
                "target": self.target,
            },
        )


def outside_band(value: float, target: float, deadband: float) -> bool:
    return value < target - deadband or value > target + deadband


def _check(grow: Grow, metric: str, value: float, target: Optional[float], deadband: float):
    if target is None or not outside_band(value, target, deadband):
        return None
    return ConditionViolation(
        grow_id=grow.id,
        grow_name=grow.name,
        metric=metric,
        value=value,
        target=target,
        user_id=grow.user_id,
    )


def check_temperature(
    grow: Grow,
    reading: EnvironmentalReading,
    deadband: float = TEMPERATURE_DEADBAND,
) -> Optional[ConditionViolation]:
    return _check(grow, "temperature", reading.temperature, grow.temperature_target(), deadband)


def check_humidity(
    grow: Grow,
    reading: EnvironmentalReading,
    deadband: float = HUMIDITY_DEADBAND,
) -> Optional[ConditionViolation]:
    return _check(grow, "humidity", reading.humidity, grow.humidity_target(), deadband)


def evaluate_reading(
    grow: Grow,
    reading: EnvironmentalReading,
    temperature_deadband: float = TEMPERATURE_DEADBAND,
    humidity_deadband: float = HUMIDITY_DEADBAND,
) -> list[ConditionViolation]:
    """Run every checker against a reading, temperature first."""
    results = [
        check_temperature(grow, reading, temperature_deadband),
        check_humidity(grow, reading, humidity_deadband),
    ]
    return [v for v in results if v is not None]
