from pydantic import BaseModel, Field
from typing import Any, Optional
from datetime import datetime

from app.core.features import SubscriptionTier


# ============================================
# Profile Schemas
# ============================================

class Profile(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    tier: SubscriptionTier = SubscriptionTier.FREE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TierUpdate(BaseModel):
    tier: SubscriptionTier


class EntitlementsResponse(BaseModel):
    tier: Optional[SubscriptionTier] = None
    batch_size_limit: int
    can_use_batch: bool
    features: list[str] = []


class BatchSizeCheck(BaseModel):
    size: int = Field(..., ge=1)


class BatchSizeCheckResponse(BaseModel):
    allowed: bool
    size: int
    limit: int


# ============================================
# Grow / Environment Schemas
# ============================================

class Grow(BaseModel):
    id: str
    user_id: Optional[str] = None
    name: str
    stage: str
    start_date: Optional[datetime] = None
    target_temperature: Optional[float] = None
    target_humidity: Optional[float] = None
    target_temp_low: Optional[float] = None
    target_temp_high: Optional[float] = None
    target_humidity_low: Optional[float] = None
    target_humidity_high: Optional[float] = None

    def temperature_target(self) -> Optional[float]:
        """Center of the temperature band, explicit target first."""
        return _band_center(self.target_temperature, self.target_temp_low, self.target_temp_high)

    def humidity_target(self) -> Optional[float]:
        """Center of the humidity band, explicit target first."""
        return _band_center(self.target_humidity, self.target_humidity_low, self.target_humidity_high)


def _band_center(target: Optional[float], low: Optional[float], high: Optional[float]) -> Optional[float]:
    if target is not None:
        return target
    if low is not None and high is not None:
        return (low + high) / 2
    return None


class EnvironmentalReading(BaseModel):
    grow_id: str
    temperature: float
    humidity: float
    timestamp: Optional[datetime] = None


# ============================================
# Task Schemas
# ============================================

class Task(BaseModel):
    id: str
    user_id: Optional[str] = None
    title: str
    due_date: Optional[datetime] = None
    completed: bool = False
    priority: Optional[str] = None


# ============================================
# Notification Schemas
# ============================================

class NotificationCreate(BaseModel):
    """A notification about to be recorded for a user."""
    user_id: Optional[str] = None
    type: str
    title: str
    message: str
    link: Optional[str] = None
    priority: str = "normal"
    metadata: dict[str, Any] = {}

    def dedup_match(self) -> dict[str, Any]:
        """Metadata subset identifying "the same" alert for suppression."""
        keys = ("growId", "metric") if "growId" in self.metadata else ("taskId", "dueDate")
        return {k: self.metadata[k] for k in keys if k in self.metadata}
