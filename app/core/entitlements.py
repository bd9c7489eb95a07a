"""
Entitlement checking for tier-gated features.

TierEvaluator answers "does this user's tier satisfy X" and "how large a
batch may they submit". It never raises: a missing profile or a failed
profile fetch reads as no entitlement (fail-closed).

Profiles are cached per user for a short freshness window. The cache is
invalidated whenever the tier changes through this service (Stripe webhook,
admin override); changes made elsewhere show up once the window lapses.

Usage:
    @router.post("/plants/batch")
    def create_batch(
        evaluator: TierEvaluator = Depends(require_tier(SubscriptionTier.PREMIUM)),
    ):
        limit = evaluator.batch_size_limit()
"""
import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status

from app.core.config import settings
from app.core.features import (
    SubscriptionTier,
    get_batch_size_limit,
    get_plan,
    parse_tier,
    satisfies,
)
from app.core.security import require_auth
from app.repositories.profile import ProfileRepository

logger = logging.getLogger(__name__)


class ProfileCache:
    """In-memory profile cache with a time-based freshness window.

    Bounded to `maxsize` users; the least recently used entry is evicted
    first, and expired entries are purged on every write.
    """

    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.maxsize = max(1, maxsize)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Optional[dict], float]] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, user_id: str) -> tuple[bool, Optional[dict]]:
        """Return (hit, profile). Expired entries are dropped."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return False, None
            profile, stored_at = entry
            if self._clock() - stored_at < self.ttl_seconds:
                self._entries.move_to_end(user_id)
                return True, profile
            del self._entries[user_id]
        return False, None

    def set(self, user_id: str, profile: Optional[dict]) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries[user_id] = (profile, now)
            self._entries.move_to_end(user_id)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def _purge_expired(self, now: float) -> None:
        expired = [
            user_id for user_id, (_, stored_at) in self._entries.items()
            if now - stored_at >= self.ttl_seconds
        ]
        for user_id in expired:
            del self._entries[user_id]

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


profile_cache = ProfileCache(
    ttl_seconds=settings.profile_cache_ttl_seconds,
    maxsize=settings.profile_cache_maxsize,
)


class TierEvaluator:
    """Tier and quota questions for one user."""

    def __init__(
        self,
        user_id: Optional[str],
        loader: Optional[Callable[[str], Optional[dict]]] = None,
        cache: Optional[ProfileCache] = None,
    ):
        self.user_id = user_id
        self._loader = loader or ProfileRepository.get_by_id
        self._cache = cache

    def profile(self) -> Optional[dict]:
        if not self.user_id:
            return None

        if self._cache is not None:
            hit, cached = self._cache.get(self.user_id)
            if hit:
                return cached

        try:
            profile = self._loader(self.user_id)
        except Exception as e:
            logger.warning(f"Profile fetch failed for user {self.user_id}: {e}")
            return None

        if self._cache is not None:
            self._cache.set(self.user_id, profile)
        return profile

    @property
    def tier(self) -> Optional[SubscriptionTier]:
        profile = self.profile()
        if not profile:
            return None
        return parse_tier(profile.get("tier"))

    def has_required_tier(self, required: SubscriptionTier) -> bool:
        tier = self.tier
        if tier is None:
            return False
        return satisfies(tier, required)

    def batch_size_limit(self) -> int:
        return get_batch_size_limit(self.tier)

    def can_use_batch(self) -> bool:
        return self.has_required_tier(SubscriptionTier.PREMIUM)

    def summary(self) -> dict:
        tier = self.tier
        return {
            "tier": tier,
            "batch_size_limit": get_batch_size_limit(tier),
            "can_use_batch": self.can_use_batch(),
            "features": get_plan(tier)["features"] if tier else [],
        }


class TierRequiredError(HTTPException):
    """Raised when the caller's tier is below what an operation needs."""

    def __init__(self, required: SubscriptionTier, current: Optional[SubscriptionTier]):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "TIER_REQUIRED",
                "required_tier": required.value,
                "current_tier": current.value if current else None,
                "message": f"This feature requires a {required.value.capitalize()} subscription.",
                "upgrade_required": True,
            }
        )


class LimitExceededError(HTTPException):
    """Raised when a request would exceed the tier's batch quota."""

    def __init__(self, resource: str, limit: int, requested: int):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "LIMIT_EXCEEDED",
                "resource": resource,
                "limit": limit,
                "requested": requested,
                "message": f"Your plan allows {limit} {resource} per batch. You requested {requested}.",
                "upgrade_required": True,
            }
        )


def get_tier_evaluator(auth_payload: dict = Depends(require_auth)) -> TierEvaluator:
    """Evaluator for the authenticated caller, backed by the shared profile cache."""
    return TierEvaluator(auth_payload.get("sub"), cache=profile_cache)


def require_tier(required: SubscriptionTier):
    """Factory to create a dependency that requires at least `required` tier.

    Usage:
        @router.post("/batch")
        def batch(evaluator: TierEvaluator = Depends(require_tier(SubscriptionTier.PREMIUM))):
            pass
    """
    def dependency(evaluator: TierEvaluator = Depends(get_tier_evaluator)) -> TierEvaluator:
        if not evaluator.has_required_tier(required):
            raise TierRequiredError(required, evaluator.tier)
        return evaluator

    return dependency


def ensure_batch_size(evaluator: TierEvaluator, requested: int, resource: str = "items") -> int:
    """Raise LimitExceededError if `requested` exceeds the caller's batch quota.

    Returns:
        The caller's batch size limit
    """
    limit = evaluator.batch_size_limit()
    if requested > limit:
        raise LimitExceededError(resource, limit, requested)
    return limit
