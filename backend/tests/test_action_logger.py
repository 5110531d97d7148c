"""
Tests for the Action Logger.

Test Coverage:
1. Raw action logging (typed payloads, camelCase input)
2. Scope actions only log; pattern counters are left to the aggregator
3. Pricing adjustments (percent math, half-up rounding)
4. Proposal outcome back-fill (log, pricing rows, scope counters)
5. Fail-open behaviour on storage errors
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from app.models.db_models import (
    UserActionLogDB,
    ScopeItemPatternDB,
    PricingPatternDB,
    PhotoCategorizationDB,
    UserLearnedPreferencesDB,
    UserActionType,
    ProposalOutcome,
    PhotoCategory,
)
from app.models.learning_models import parse_payload
from app.services.learning import ActionLoggerService, calculate_adjustment_percent


# =============================================================================
# TEST: ADJUSTMENT PERCENT
# =============================================================================

class TestCalculateAdjustmentPercent:
    """Percent change of the final band midpoint."""

    def test_ten_percent_increase(self):
        """1000-2000 → 1100-2200 is +10%"""
        assert calculate_adjustment_percent(1000, 2000, 1100, 2200) == 10

    def test_decrease_is_negative(self):
        assert calculate_adjustment_percent(1000, 2000, 900, 1800) == -10

    def test_zero_suggested_midpoint_is_zero(self):
        """No suggestion to compare against → 0"""
        assert calculate_adjustment_percent(0, 0, 500, 700) == 0

    def test_half_rounds_up(self):
        """+2.5% rounds to 3, not to the even 2"""
        assert calculate_adjustment_percent(50, 150, 51, 154) == 3


# =============================================================================
# TEST: PAYLOAD PARSING
# =============================================================================

class TestPayloadParsing:
    """Stored JSON values are converted to the payload field types."""

    def test_numeric_strings_are_converted(self):
        payload = parse_payload(UserActionType.PRICE_ADJUST, {"adjustmentPercent": "12", "finalHigh": "2200"})

        assert payload.adjustment_percent == 12
        assert payload.final_high == 2200.0

    def test_fractional_percent_rounds_half_up(self):
        assert parse_payload(UserActionType.PRICE_ADJUST, {"adjustment_percent": 10.5}).adjustment_percent == 11

    def test_bad_values_keep_defaults(self):
        payload = parse_payload(
            UserActionType.PRICE_ADJUST,
            {"adjustmentPercent": "ten", "jobSize": True, "finalLow": float("inf")},
        )

        assert payload.adjustment_percent is None
        assert payload.job_size == 2
        assert payload.final_low == 0.0

    def test_other_field_types(self):
        photo = parse_payload(UserActionType.PHOTO_CATEGORIZE, {"photoOrder": "2", "wasModified": "true"})
        scope = parse_payload(UserActionType.SCOPE_ADD, {"scopeItem": ["Vent"], "isFromTemplate": 1})
        option = parse_payload(UserActionType.OPTION_SELECT, {"optionId": 7, "value": {"any": "thing"}})

        assert (photo.photo_order, photo.was_modified) == (2, True)
        assert (scope.scope_item, scope.is_from_template) == ("", False)
        assert (option.option_id, option.value) == ("7", {"any": "thing"})


# =============================================================================
# TEST: RAW ACTION LOG
# =============================================================================

class TestLogAction:
    """Tests for ActionLoggerService.log_action."""

    def test_stores_typed_payload(self, db_session, make_context):
        """camelCase keys are normalised, unknown keys dropped"""
        service = ActionLoggerService(db_session)

        entry = service.log_action(
            "scope_add",
            make_context(proposal_id="prop-1"),
            {"scopeItem": "Expansion tank", "isFromTemplate": True, "junk": 1},
        )

        assert entry is not None
        stored = db_session.query(UserActionLogDB).one()
        assert stored.action_type == UserActionType.SCOPE_ADD
        assert stored.proposal_id == "prop-1"
        assert stored.zipcode == "78701"
        assert stored.payload == {"scope_item": "Expansion tank", "is_from_template": True}

    def test_unconvertible_values_are_dropped(self, db_session, make_context):
        """A bad field falls back to its default; the rest of the payload is kept"""
        service = ActionLoggerService(db_session)

        service.log_action(
            UserActionType.PRICE_ADJUST,
            make_context(),
            {"adjustmentPercent": "ten", "jobSize": "3", "finalLow": "1100.5"},
        )

        stored = db_session.query(UserActionLogDB).one().payload
        assert "adjustment_percent" not in stored
        assert stored["job_size"] == 3
        assert stored["final_low"] == 1100.5

    def test_feeds_adaptive_profile(self, db_session, make_context):
        """Every logged action counts toward the user's profile"""
        service = ActionLoggerService(db_session)

        service.log_action(UserActionType.PROPOSAL_CREATE, make_context(), {"photoCount": 4})
        service.log_action(UserActionType.PROPOSAL_CREATE, make_context(), {"photoCount": 6})

        profile = db_session.query(UserLearnedPreferencesDB).one()
        assert profile.total_actions == 2
        assert profile.profile_version == 2
        assert profile.preferences["workflow"]["avg_photo_count"] == 5

    def test_unknown_action_type_fails_open(self, db_session, make_context):
        service = ActionLoggerService(db_session)

        assert service.log_action("not_a_thing", make_context(), {}) is None
        assert db_session.query(UserActionLogDB).count() == 0

    def test_commit_failure_is_swallowed(self, make_context):
        """Storage errors roll back and return None instead of raising"""
        mock_db = MagicMock()
        mock_db.commit.side_effect = Exception("connection reset")

        service = ActionLoggerService(mock_db)
        result = service.log_action(UserActionType.SCOPE_ADD, make_context(), {"scope_item": "Vent"})

        assert result is None
        mock_db.rollback.assert_called_once()

    def test_update_outcome_returns_rows_touched(self, db_session, make_context):
        service = ActionLoggerService(db_session)
        context = make_context(proposal_id="prop-9")
        service.log_action(UserActionType.PROPOSAL_CREATE, context)
        service.log_action(UserActionType.PROPOSAL_SEND, context)
        service.log_action(UserActionType.PROPOSAL_CREATE, make_context(proposal_id="other"))

        assert service.update_outcome("prop-9", "lost", 1200.0) == 2

        lost = db_session.query(UserActionLogDB).filter(
            UserActionLogDB.outcome_type == ProposalOutcome.LOST
        ).all()
        assert len(lost) == 2
        assert all(row.outcome_value == 1200.0 for row in lost)

    def test_update_outcome_failure_returns_zero(self):
        mock_db = MagicMock()
        mock_db.query.side_effect = Exception("boom")

        assert ActionLoggerService(mock_db).update_outcome("prop-1", "won") == 0
        mock_db.rollback.assert_called_once()


# =============================================================================
# TEST: TYPED RECORDERS
# =============================================================================

class TestTypedRecorders:
    """Scope, pricing, photo and feedback recorders."""

    def test_scope_action_does_not_touch_counters(self, db_session, make_context):
        """Counters are written by the aggregator only"""
        service = ActionLoggerService(db_session)

        entry = service.record_scope_action(make_context(), "Expansion tank", "add")

        assert entry.action_type == UserActionType.SCOPE_ADD
        assert db_session.query(ScopeItemPatternDB).count() == 0

    def test_scope_action_modify_maps_to_edit(self, db_session, make_context):
        entry = ActionLoggerService(db_session).record_scope_action(make_context(), "Drain pan", "modify")
        assert entry.action_type == UserActionType.SCOPE_EDIT

    def test_unknown_scope_action_is_ignored(self, db_session, make_context):
        result = ActionLoggerService(db_session).record_scope_action(make_context(), "Drain pan", "explode")

        assert result is None
        assert db_session.query(UserActionLogDB).count() == 0

    def test_pricing_adjustment_writes_event_row_and_log(self, db_session, make_context):
        service = ActionLoggerService(db_session)

        record = service.record_pricing_adjustment(
            make_context(), suggested_low=1000, suggested_high=2000,
            final_low=1100, final_high=2200, job_size=3,
        )

        assert record.adjustment_percent == 10
        assert record.is_aggregate is False
        assert record.job_size == 3
        assert record.zipcode == "78701"

        log = db_session.query(UserActionLogDB).one()
        assert log.action_type == UserActionType.PRICE_ADJUST
        assert log.payload["adjustment_percent"] == 10
        assert log.payload["job_size"] == 3

    def test_photo_category_writes_record_and_log(self, db_session, make_context):
        service = ActionLoggerService(db_session)

        record = service.record_photo_category(
            make_context(), photo_order=1, category="hero", caption="Front of house",
        )

        assert record.assigned_category == PhotoCategory.HERO
        stored = db_session.query(PhotoCategorizationDB).one()
        assert stored.assigned_caption == "Front of house"
        log = db_session.query(UserActionLogDB).one()
        assert log.payload == {"photo_order": 1, "category": "hero", "caption": "Front of house", "was_modified": False}

    def test_invalid_photo_category_fails_open(self, db_session, make_context):
        result = ActionLoggerService(db_session).record_photo_category(make_context(), 1, "selfie")

        assert result is None
        assert db_session.query(PhotoCategorizationDB).count() == 0

    @pytest.mark.parametrize("feedback_type,expected", [
        ("accepted", UserActionType.PRICE_ACCEPT_SUGGESTION),
        ("rejected", UserActionType.PRICE_REJECT_SUGGESTION),
        ("modified", UserActionType.PRICE_REJECT_SUGGESTION),
    ])
    def test_feedback_action_type(self, db_session, make_context, feedback_type, expected):
        entry = ActionLoggerService(db_session).record_feedback(
            make_context(), feedback_type=feedback_type, suggestion_type="pricing",
        )
        assert entry.action_type == expected


# =============================================================================
# TEST: PROPOSAL OUTCOME
# =============================================================================

class TestRecordProposalOutcome:
    """Closing the loop on a won/lost proposal."""

    def test_won_outcome_backfills_everything(self, db_session, make_context):
        service = ActionLoggerService(db_session)
        context = make_context(proposal_id="prop-1")

        service.record_scope_action(context, "Expansion tank", "add")
        service.record_pricing_adjustment(context, 1000, 2000, 1100, 2200)
        db_session.add(ScopeItemPatternDB(
            trade_id="plumbing", job_type_id="water-heater-install",
            scope_item="Expansion tank", added_count=5,
        ))
        db_session.commit()

        ok = service.record_proposal_outcome(
            context,
            "won",
            final_value=2150.0,
            scope_items=["Expansion tank"],
            proposal_created_at=datetime.utcnow(),
        )

        assert ok is True

        scope_log = db_session.query(UserActionLogDB).filter(
            UserActionLogDB.action_type == UserActionType.SCOPE_ADD
        ).one()
        assert scope_log.outcome_type == ProposalOutcome.WON
        assert scope_log.outcome_value == 2150.0

        pricing = db_session.query(PricingPatternDB).one()
        assert pricing.outcome == ProposalOutcome.WON

        pattern = db_session.query(ScopeItemPatternDB).one()
        assert pattern.won_with_item == 1
        assert pattern.lost_with_item == 0

        won = db_session.query(UserActionLogDB).filter(
            UserActionLogDB.action_type == UserActionType.PROPOSAL_WON
        ).one()
        assert won.outcome_type == ProposalOutcome.WON

    def test_pricing_rows_outside_window_untouched(self, db_session, make_context):
        service = ActionLoggerService(db_session)
        context = make_context(proposal_id="prop-2")
        record = service.record_pricing_adjustment(context, 1000, 2000, 1000, 2000)
        record.created_at = datetime.utcnow() - timedelta(days=3)
        db_session.commit()

        service.record_proposal_outcome(context, "lost", proposal_created_at=datetime.utcnow())

        assert db_session.query(PricingPatternDB).one().outcome is None

    def test_pending_is_rejected(self, db_session, make_context):
        with pytest.raises(ValueError):
            ActionLoggerService(db_session).record_proposal_outcome(make_context(proposal_id="p"), "pending")

    def test_storage_failure_returns_false(self, make_context):
        mock_db = MagicMock()
        mock_db.commit.side_effect = Exception("disk full")

        ok = ActionLoggerService(mock_db).record_proposal_outcome(make_context(proposal_id="p"), "lost")

        assert ok is False
        mock_db.rollback.assert_called()
