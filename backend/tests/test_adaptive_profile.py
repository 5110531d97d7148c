"""
Tests for the Adaptive Profile.

Test Coverage:
1. Empty profile for unknown users
2. Every tracked action bumps total_actions and profile_version
3. Pricing / scope / photo learning thresholds
4. Learned defaults only after 7 days and 10 actions
5. Fail-open on storage errors
"""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from app.models.db_models import UserLearnedPreferencesDB, UserActionType
from app.services.learning import ActionLoggerService, AdaptiveProfileService


def age_profile(db, user_id="user-test-1", days=8):
    row = db.query(UserLearnedPreferencesDB).filter(UserLearnedPreferencesDB.user_id == user_id).one()
    row.first_seen = datetime.utcnow() - timedelta(days=days)
    db.commit()


# =============================================================================
# TEST: PROFILE STORAGE
# =============================================================================

class TestProfileStorage:

    def test_unknown_user_gets_empty_profile(self, db_session):
        profile = AdaptiveProfileService(db_session).get_profile("nobody")

        assert profile.total_actions == 0
        assert profile.profile_version == 0
        assert profile.is_adapted is False
        assert profile.confidence == 0
        data = profile.to_dict()
        assert data["preferences"]["pricing"]["default_adjustment"] == 0
        assert data["updated_at"] is None

    def test_each_action_bumps_version(self, db_session, make_context):
        service = AdaptiveProfileService(db_session)

        first = service.track_action("user-test-1", UserActionType.OPTION_SELECT, make_context())
        second = service.track_action("user-test-1", UserActionType.OPTION_SELECT, make_context())

        assert first.profile_version == 1
        assert second.profile_version == 2
        assert second.total_actions == 2
        assert db_session.query(UserLearnedPreferencesDB).count() == 1

    def test_storage_failure_returns_none(self, make_context):
        mock_db = MagicMock()
        mock_db.query.side_effect = Exception("connection refused")

        result = AdaptiveProfileService(mock_db).track_action(
            "user-test-1", UserActionType.SCOPE_ADD, make_context(), {"scope_item": "Vent"},
        )

        assert result is None
        mock_db.rollback.assert_called_once()

    def test_read_failure_gives_empty_profile(self):
        mock_db = MagicMock()
        mock_db.query.side_effect = Exception("connection refused")

        profile = AdaptiveProfileService(mock_db).get_profile("user-test-1")

        assert profile.total_actions == 0
        assert profile.user_id == "user-test-1"


# =============================================================================
# TEST: LEARNING
# =============================================================================

class TestPricingLearning:

    def test_needs_three_adjustments(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        profiles = AdaptiveProfileService(db_session)

        for _ in range(2):
            logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustment_percent": 10})
        assert profiles.get_profile("user-test-1").preferences.pricing.confidence == 0

        logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustment_percent": 13})
        pricing = profiles.get_profile("user-test-1").preferences.pricing

        assert pricing.default_adjustment == 11
        assert pricing.confidence == 30
        assert pricing.by_job_type == {"water-heater-install": 11}
        assert pricing.by_region == {"78701": 11}

    def test_malformed_adjustment_keeps_profile_counting(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        for _ in range(3):
            logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustment_percent": 10})
        logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustmentPercent": "ten"})
        logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustment_percent": 14})

        profile = AdaptiveProfileService(db_session).get_profile("user-test-1")

        assert profile.total_actions == 5
        assert profile.preferences.pricing.default_adjustment == 11
        assert profile.preferences.pricing.confidence == 40

    def test_learned_adjustment_waits_for_adaptation(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        profiles = AdaptiveProfileService(db_session)
        for _ in range(10):
            logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustment_percent": 10})

        # Ten actions, but only active since today
        assert profiles.get_learned_pricing_adjustment("user-test-1", "water-heater-install") is None

        age_profile(db_session)
        learned = profiles.get_learned_pricing_adjustment("user-test-1", "water-heater-install")

        assert learned == {"adjustment": 10, "confidence": 100}
        assert profiles.get_profile("user-test-1").is_adapted is True

    def test_region_then_default_fallback(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        profiles = AdaptiveProfileService(db_session)
        for _ in range(10):
            logger.log_action(UserActionType.PRICE_ADJUST, make_context(), {"adjustment_percent": -5})
        age_profile(db_session)

        by_region = profiles.get_learned_pricing_adjustment("user-test-1", "roof-replacement", "78701")
        default = profiles.get_learned_pricing_adjustment("user-test-1", "roof-replacement", "10001")

        assert by_region["adjustment"] == -5
        assert default == {"adjustment": -5, "confidence": 100}


class TestScopeLearning:

    def test_frequent_item_becomes_always_add(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        for i in range(5):
            logger.log_action(
                UserActionType.SCOPE_ADD,
                make_context(proposal_id=f"prop-{i}"),
                {"scope_item": "Expansion tank"},
            )

        scope = AdaptiveProfileService(db_session).get_profile("user-test-1").preferences.scope

        assert scope.always_add == ["Expansion tank"]
        assert scope.add_by_job_type == {"water-heater-install": ["Expansion tank"]}
        assert scope.confidence == 25

    def test_scope_modifications_after_adaptation(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        for i in range(5):
            logger.log_action(
                UserActionType.SCOPE_ADD,
                make_context(proposal_id=f"prop-{i}"),
                {"scope_item": "Expansion tank"},
            )
        for i in range(5):
            logger.log_action(UserActionType.PROPOSAL_CREATE, make_context(proposal_id=f"prop-{i}"))
        age_profile(db_session)
        profiles = AdaptiveProfileService(db_session)

        mods = profiles.get_learned_scope_modifications(
            "user-test-1", ["Install new water heater"], "water-heater-install",
        )

        assert mods == {"add": ["Expansion tank"], "remove": []}
        assert profiles.get_learned_scope_modifications(
            "user-test-1", ["expansion tank"], "water-heater-install",
        ) is None


class TestPhotoLearning:

    def test_position_category_and_captions(self, db_session, make_context):
        logger = ActionLoggerService(db_session)
        for caption in ("Front of the house", "Front of the house", "Front"):
            logger.log_action(
                UserActionType.PHOTO_CATEGORIZE,
                make_context(),
                {"photoOrder": 1, "category": "hero", "caption": caption},
            )

        photos = AdaptiveProfileService(db_session).get_profile("user-test-1").preferences.photos

        assert photos.category_by_position == {"1": "hero"}
        assert photos.captions_by_category == {"hero": ["Front of the house"]}
        assert photos.confidence == 15

    def test_learned_captions_available_before_adaptation(self, db_session, make_context):
        ActionLoggerService(db_session).log_action(
            UserActionType.PHOTO_CATEGORIZE,
            make_context(),
            {"photo_order": 2, "category": "damage", "caption": "Rust at tank base"},
        )
        profiles = AdaptiveProfileService(db_session)

        assert profiles.get_learned_captions("user-test-1", "damage") == ["Rust at tank base"]
        assert profiles.get_learned_photo_category("user-test-1", 2) is None


class TestLearningProgress:

    def test_new_user_progress(self, db_session):
        progress = AdaptiveProfileService(db_session).get_learning_progress("user-test-1")

        assert progress == {
            "days_active": 0,
            "days_remaining": 7,
            "actions_recorded": 0,
            "is_complete": False,
            "confidence": 0,
        }
