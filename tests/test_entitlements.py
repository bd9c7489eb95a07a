from unittest.mock import MagicMock, patch

import pytest

from app.core.entitlements import (
    LimitExceededError,
    ProfileCache,
    TierEvaluator,
    ensure_batch_size,
    profile_cache,
)
from app.core.features import SubscriptionTier
from app.repositories.profile import ProfileRepository


def evaluator_for(tier, cache=None):
    profile = {"id": "user-1", "email": "grower@example.com", "tier": tier} if tier else None
    return TierEvaluator("user-1", loader=lambda user_id: profile, cache=cache)


# =============================================================================
# TierEvaluator
# =============================================================================

class TestTierEvaluator:

    def test_no_profile_fails_closed(self):
        evaluator = evaluator_for(None)
        assert evaluator.tier is None
        assert not evaluator.has_required_tier(SubscriptionTier.FREE)
        assert evaluator.batch_size_limit() == 0
        assert not evaluator.can_use_batch()

    def test_no_user_fails_closed(self):
        loader = MagicMock()
        evaluator = TierEvaluator(None, loader=loader)
        assert not evaluator.has_required_tier(SubscriptionTier.FREE)
        loader.assert_not_called()

    def test_loader_error_is_not_raised(self):
        def broken(user_id):
            raise RuntimeError("supabase down")

        evaluator = TierEvaluator("user-1", loader=broken)
        assert not evaluator.has_required_tier(SubscriptionTier.FREE)
        assert evaluator.batch_size_limit() == 0

    @pytest.mark.parametrize("tier,limit", [("free", 0), ("premium", 10), ("enterprise", 50)])
    def test_batch_size_limit(self, tier, limit):
        assert evaluator_for(tier).batch_size_limit() == limit

    def test_premium_requirement(self):
        assert not evaluator_for("free").has_required_tier(SubscriptionTier.PREMIUM)
        assert evaluator_for("premium").has_required_tier(SubscriptionTier.PREMIUM)
        assert evaluator_for("enterprise").has_required_tier(SubscriptionTier.PREMIUM)

    def test_can_use_batch_requires_premium(self):
        assert not evaluator_for("free").can_use_batch()
        assert evaluator_for("premium").can_use_batch()

    def test_unknown_stored_tier_reads_as_none(self):
        evaluator = evaluator_for("gold")
        assert evaluator.tier is None
        assert evaluator.batch_size_limit() == 0

    def test_summary(self):
        summary = evaluator_for("premium").summary()
        assert summary["tier"] is SubscriptionTier.PREMIUM
        assert summary["batch_size_limit"] == 10
        assert summary["can_use_batch"] is True
        assert "batch_measurements" in summary["features"]

    def test_uses_cache_within_window(self):
        cache = ProfileCache(ttl_seconds=30)
        loader = MagicMock(return_value={"id": "user-1", "tier": "premium"})
        evaluator = TierEvaluator("user-1", loader=loader, cache=cache)

        evaluator.has_required_tier(SubscriptionTier.PREMIUM)
        evaluator.batch_size_limit()
        TierEvaluator("user-1", loader=loader, cache=cache).can_use_batch()

        assert loader.call_count == 1

    def test_default_loader_reads_profiles(self):
        with patch.object(ProfileRepository, "get_by_id", return_value={"id": "u", "tier": "enterprise"}) as get:
            evaluator = TierEvaluator("u")
            assert evaluator.batch_size_limit() == 50
        get.assert_called_once_with("u")


# =============================================================================
# ProfileCache
# =============================================================================

class TestProfileCache:

    def test_entries_expire(self):
        now = [100.0]
        cache = ProfileCache(ttl_seconds=30, clock=lambda: now[0])
        cache.set("user-1", {"tier": "free"})

        now[0] = 129.0
        assert cache.get("user-1") == (True, {"tier": "free"})

        now[0] = 130.0
        assert cache.get("user-1") == (False, None)

    def test_caches_missing_profile(self):
        cache = ProfileCache(ttl_seconds=30)
        cache.set("user-1", None)
        assert cache.get("user-1") == (True, None)

    def test_invalidate(self):
        cache = ProfileCache(ttl_seconds=30)
        cache.set("user-1", {"tier": "free"})
        cache.invalidate("user-1")
        cache.invalidate("never-cached")
        assert cache.get("user-1") == (False, None)

    def test_size_is_bounded(self):
        cache = ProfileCache(ttl_seconds=30, maxsize=2)
        cache.set("user-1", {"tier": "free"})
        cache.set("user-2", {"tier": "free"})
        cache.get("user-1")
        cache.set("user-3", {"tier": "premium"})

        assert len(cache) == 2
        assert cache.get("user-2") == (False, None)
        assert cache.get("user-1")[0] is True
        assert cache.get("user-3")[0] is True

    def test_write_purges_expired_entries(self):
        now = [100.0]
        cache = ProfileCache(ttl_seconds=30, clock=lambda: now[0])
        for i in range(5):
            cache.set(f"user-{i}", {"tier": "free"})

        now[0] = 200.0
        cache.set("user-new", {"tier": "free"})

        assert len(cache) == 1


def test_ensure_batch_size():
    assert ensure_batch_size(evaluator_for("premium"), 10) == 10
    with pytest.raises(LimitExceededError) as exc:
        ensure_batch_size(evaluator_for("premium"), 11, resource="plants")
    assert exc.value.status_code == 403
    assert exc.value.detail["code"] == "LIMIT_EXCEEDED"
    assert exc.value.detail["limit"] == 10


# =============================================================================
# Routes
# =============================================================================

class TestEntitlementRoutes:

    def test_requires_auth(self, client):
        response = client.get("/profile/entitlements")
        assert response.status_code == 401

    def test_entitlements_for_free_user(self, client, login):
        login("user-1")
        with patch.object(ProfileRepository, "get_by_id", return_value={"id": "user-1", "email": "a@b.c", "tier": "free"}):
            response = client.get("/profile/entitlements")

        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "free"
        assert body["batch_size_limit"] == 0
        assert body["can_use_batch"] is False

    def test_entitlements_without_profile(self, client, login):
        login("user-1")
        with patch.object(ProfileRepository, "get_by_id", return_value=None):
            response = client.get("/profile/entitlements")

        assert response.status_code == 200
        assert response.json() == {
            "tier": None,
            "batch_size_limit": 0,
            "can_use_batch": False,
            "features": [],
        }

    def test_batch_check_rejects_free_tier(self, client, login):
        login("user-1")
        with patch.object(ProfileRepository, "get_by_id", return_value={"id": "user-1", "email": "a@b.c", "tier": "free"}):
            response = client.post("/profile/entitlements/batch", json={"size": 1})

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "TIER_REQUIRED"
        assert detail["required_tier"] == "premium"
        assert detail["current_tier"] == "free"

    def test_batch_check_within_quota(self, client, login):
        login("user-1")
        with patch.object(ProfileRepository, "get_by_id", return_value={"id": "user-1", "email": "a@b.c", "tier": "enterprise"}):
            response = client.post("/profile/entitlements/batch", json={"size": 50})

        assert response.status_code == 200
        assert response.json() == {"allowed": True, "size": 50, "limit": 50}

    def test_batch_check_over_quota(self, client, login):
        login("user-1")
        with patch.object(ProfileRepository, "get_by_id", return_value={"id": "user-1", "email": "a@b.c", "tier": "premium"}):
            response = client.post("/profile/entitlements/batch", json={"size": 11})

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "LIMIT_EXCEEDED"

    def test_profile_is_cached_between_requests(self, client, login):
        login("user-1")
        with patch.object(ProfileRepository, "get_by_id", return_value={"id": "user-1", "email": "a@b.c", "tier": "premium"}) as get:
            client.get("/profile/entitlements")
            client.get("/profile/entitlements")

        assert get.call_count == 1
        assert profile_cache.get("user-1")[0] is True


def test_get_my_profile(client, login):
    login("user-1")
    row = {"id": "user-1", "email": "grower@example.com", "full_name": "Sam", "tier": "premium"}
    with patch.object(ProfileRepository, "get_by_id", return_value=row):
        response = client.get("/profile/me")

    assert response.status_code == 200
    assert response.json()["tier"] == "premium"


def test_get_my_profile_missing(client, login):
    login("user-1")
    with patch.object(ProfileRepository, "get_by_id", return_value=None):
        response = client.get("/profile/me")

    assert response.status_code == 404
