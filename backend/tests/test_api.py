"""
API tests for the learning routers.

Uses the shared TestClient wired to an in-memory database.
"""
from app.config import SCOPE_AGGREGATION_WINDOW_DAYS, PRICING_AGGREGATION_WINDOW_DAYS
from app.models.db_models import (
    UserActionLogDB,
    PricingPatternDB,
    PhotoCategorizationDB,
    ScopeItemPatternDB,
    AggregationWatermarkDB,
    UserActionType,
)


CONTEXT = {
    "trade_id": "plumbing",
    "job_type_id": "water-heater-install",
    "zipcode": "78701",
    "city": "Austin",
    "state": "TX",
}


class TestAppInfo:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "1.0.0"}

    def test_root(self, client):
        data = client.get("/").json()

        assert data["name"] == "ScopeGen Learning API"
        assert data["docs"] == "/docs"


# =============================================================================
# TRACKING
# =============================================================================

class TestTrackingEndpoints:
    """POST /learning/track/*"""

    def test_requires_auth(self, client):
        response = client.post("/learning/track/action", json={"action_type": "scope_add"})

        # HTTPBearer answers 403 on older FastAPI releases, 401 on newer ones
        assert response.status_code in (401, 403)

    def test_rejects_bad_token(self, client):
        response = client.post(
            "/learning/track/action",
            json={"action_type": "scope_add"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    def test_track_action(self, client, auth_headers, db_session):
        response = client.post(
            "/learning/track/action",
            json={**CONTEXT, "action_type": "proposal_create", "payload": {"photoCount": 4}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        entry = db_session.query(UserActionLogDB).one()
        assert entry.user_id == "user-test-1"
        assert entry.payload == {"photo_count": 4}

    def test_invalid_action_type(self, client, auth_headers):
        response = client.post(
            "/learning/track/action",
            json={"action_type": "teleport"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "Invalid action_type" in response.json()["detail"]

    def test_scope_action(self, client, auth_headers, db_session):
        response = client.post(
            "/learning/track/scope-action",
            json={**CONTEXT, "scope_item": "Expansion tank", "action": "add"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert db_session.query(UserActionLogDB).one().action_type == UserActionType.SCOPE_ADD

    def test_scope_action_invalid_action(self, client, auth_headers):
        response = client.post(
            "/learning/track/scope-action",
            json={**CONTEXT, "scope_item": "Expansion tank", "action": "explode"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_scope_action_requires_job_context(self, client, auth_headers):
        response = client.post(
            "/learning/track/scope-action",
            json={"scope_item": "Expansion tank", "action": "add"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_pricing(self, client, auth_headers, db_session):
        response = client.post(
            "/learning/track/pricing",
            json={
                **CONTEXT,
                "suggested_low": 1000, "suggested_high": 2000,
                "final_low": 1100, "final_high": 2200,
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert db_session.query(PricingPatternDB).one().adjustment_percent == 10

    def test_pricing_job_size_range(self, client, auth_headers):
        response = client.post(
            "/learning/track/pricing",
            json={**CONTEXT, "final_low": 1, "final_high": 2, "job_size": 4},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_photo_category(self, client, auth_headers, db_session):
        response = client.post(
            "/learning/track/photo-category",
            json={**CONTEXT, "photo_order": 1, "category": "hero", "caption": "Garage view"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert db_session.query(PhotoCategorizationDB).one().assigned_caption == "Garage view"

    def test_photo_category_invalid(self, client, auth_headers):
        response = client.post(
            "/learning/track/photo-category",
            json={**CONTEXT, "photo_order": 1, "category": "selfie"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "Invalid category" in response.json()["detail"]

    def test_outcome(self, client, auth_headers, db_session):
        db_session.add(ScopeItemPatternDB(
            trade_id="plumbing", job_type_id="water-heater-install",
            scope_item="Expansion tank", added_count=5,
        ))
        db_session.commit()

        response = client.post(
            "/learning/track/outcome",
            json={
                **CONTEXT,
                "proposal_id": "prop-1",
                "outcome": "lost",
                "scope_items": ["Expansion tank"],
                "proposal_created_at": "2026-03-01T15:00:00Z",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert db_session.query(ScopeItemPatternDB).one().lost_with_item == 1

    def test_outcome_must_be_won_or_lost(self, client, auth_headers):
        response = client.post(
            "/learning/track/outcome",
            json={**CONTEXT, "proposal_id": "prop-1", "outcome": "pending"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_feedback(self, client, auth_headers, db_session):
        response = client.post(
            "/learning/track/feedback",
            json={**CONTEXT, "suggestion_type": "pricing", "feedback_type": "accepted"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        entry = db_session.query(UserActionLogDB).one()
        assert entry.action_type == UserActionType.PRICE_ACCEPT_SUGGESTION


# =============================================================================
# SUGGESTIONS
# =============================================================================

class TestSuggestionEndpoints:
    """POST /learning/* read endpoints."""

    def test_photo_suggestion_default(self, client, auth_headers):
        response = client.post(
            "/learning/photo-suggestion",
            json={**CONTEXT, "photo_order": 1},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "category": "hero",
            "confidence": 70,
            "reason": "First photo typically used as hero banner",
        }

    def test_photo_suggestions_with_knowledge_defaults(self, client, auth_headers):
        data = client.post(
            "/learning/photo-suggestions",
            json={**CONTEXT, "photo_count": 5},
            headers=auth_headers,
        ).json()

        assert len(data["suggestions"]) == 5
        assert data["knowledge_defaults"]["categories"]["5"] == "plumbing"

    def test_caption_suggestions_invalid_category(self, client, auth_headers):
        response = client.post(
            "/learning/caption-suggestions",
            json={**CONTEXT, "category": "selfie"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_scope_suggestions_include_essentials(self, client, auth_headers, db_session):
        db_session.add(ScopeItemPatternDB(
            trade_id="plumbing", job_type_id="water-heater-install",
            scope_item="Expansion tank", added_count=6,
        ))
        db_session.commit()

        data = client.post(
            "/learning/scope-suggestions",
            json={**CONTEXT, "current_scope": ["Install new water heater"]},
            headers=auth_headers,
        ).json()

        items = [a["item"] for a in data["additions"]]
        assert items == ["Expansion tank", "Test all fixtures for leaks after installation"]
        assert data["additions"][0]["confidence"] == 90
        assert data["removals"] == []

    def test_smart_scope(self, client, auth_headers):
        data = client.post(
            "/learning/smart-scope",
            json={**CONTEXT, "current_scope": ["Install new water heater"]},
            headers=auth_headers,
        ).json()

        assert {"recommended", "warnings", "missing", "auto_enhance", "profile"} <= set(data)
        assert data["profile"] is None
        assert "Expansion tank" in data["auto_enhance"]["additions"]

    def test_knowledge(self, client, auth_headers):
        response = client.get("/learning/knowledge/Toilet-Install", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["job_type_id"] == "toilet-install"

    def test_knowledge_unknown(self, client, auth_headers):
        response = client.get("/learning/knowledge/underwater-basket-weaving", headers=auth_headers)
        assert response.status_code == 404

    def test_pricing_suggestion(self, client, auth_headers):
        data = client.post(
            "/learning/pricing-suggestion",
            json={**CONTEXT, "base_price_low": 1000, "base_price_high": 2000},
            headers=auth_headers,
        ).json()

        assert data["suggested_low"] == 1000
        assert data["suggested_high"] == 2000
        assert data["confidence"] == 50
        assert data["breakdown"]["geo_multiplier"] == 1.0
        assert data["learned_adjustment"] is None

    def test_pricing_suggestion_inverted_band(self, client, auth_headers):
        response = client.post(
            "/learning/pricing-suggestion",
            json={**CONTEXT, "base_price_low": 2000, "base_price_high": 1000},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_recommendations(self, client, auth_headers):
        data = client.post(
            "/learning/recommendations",
            json={**CONTEXT, "photo_count": 2, "base_price_low": 500, "base_price_high": 900},
            headers=auth_headers,
        ).json()

        assert len(data["photos"]) == 2
        assert data["pricing"]["recommended"] == {"low": 500, "high": 900}
        assert "learning_status" in data

    def test_insights(self, client, auth_headers):
        data = client.post("/learning/insights", json=CONTEXT, headers=auth_headers).json()

        assert data["confidence_level"] == "low"
        assert data["geographic"]["price_multiplier"] == 1.0


# =============================================================================
# PROFILE
# =============================================================================

class TestProfileEndpoints:
    """GET /learning/profile"""

    def test_profile_etag(self, client, auth_headers):
        response = client.get("/learning/profile", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["ETag"] == '"0"'
        assert response.json()["profile_version"] == 0

    def test_not_modified(self, client, auth_headers):
        client.post(
            "/learning/track/action",
            json={**CONTEXT, "action_type": "proposal_create"},
            headers=auth_headers,
        )

        response = client.get("/learning/profile", headers={**auth_headers, "If-None-Match": '"1"'})

        assert response.status_code == 304
        assert response.headers["ETag"] == '"1"'

    def test_stale_etag_gets_full_profile(self, client, auth_headers):
        client.post(
            "/learning/track/action",
            json={**CONTEXT, "action_type": "proposal_create"},
            headers=auth_headers,
        )

        response = client.get("/learning/profile", headers={**auth_headers, "If-None-Match": '"0"'})

        assert response.status_code == 200
        assert response.json()["total_actions"] == 1

    def test_progress(self, client, auth_headers):
        data = client.get("/learning/profile/progress", headers=auth_headers).json()

        assert data["days_remaining"] == 7
        assert data["is_complete"] is False


# =============================================================================
# SCHEDULER
# =============================================================================

class TestSchedulerEndpoints:
    """Internal aggregation endpoints."""

    def test_requires_internal_key(self, client):
        response = client.post("/internal/learning/aggregate", headers={"X-Internal-Key": "wrong"})
        assert response.status_code == 403

    def test_missing_key_is_rejected(self, client):
        response = client.post("/internal/learning/aggregate")
        assert response.status_code == 422

    def test_run_aggregation(self, client, internal_headers, db_session):
        response = client.post("/internal/learning/aggregate?scope_window_days=3", headers=internal_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["task"] == "learning_aggregation"
        assert data["scope_window_days"] == 3
        assert all(job["status"] == "success" for job in data["jobs"].values())
        assert db_session.query(AggregationWatermarkDB).count() == 1

    def test_window_must_be_positive(self, client, internal_headers, db_session):
        """An explicit 0 is rejected rather than swapped for the default"""
        response = client.post("/internal/learning/aggregate?scope_window_days=0", headers=internal_headers)

        assert response.status_code == 422
        assert db_session.query(AggregationWatermarkDB).count() == 0

    def test_default_windows(self, client, internal_headers):
        data = client.post("/internal/learning/aggregate", headers=internal_headers).json()

        assert data["scope_window_days"] == SCOPE_AGGREGATION_WINDOW_DAYS
        assert data["pricing_window_days"] == PRICING_AGGREGATION_WINDOW_DAYS

    def test_watermarks(self, client, internal_headers):
        client.post("/internal/learning/aggregate", headers=internal_headers)

        data = client.get("/internal/learning/watermarks", headers=internal_headers).json()

        assert data["count"] == 1
        assert data["watermarks"][0]["last_run_status"] == "success"
