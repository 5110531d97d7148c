"""
Action Logger

Write side of the learning pipeline. Every tracked UI action becomes one
append-only row in user_action_log; photo and pricing actions also land in
their own learning tables.

Core rule: learning is optional enrichment. Nothing in this module raises
to the caller. A failed write is rolled back, logged, and the caller
carries on (methods return None / 0 in that case).
"""
from uuid import uuid4
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union
import logging

from sqlalchemy.orm import Session

from ...models.db_models import (
    UserActionLogDB,
    PhotoCategorizationDB,
    PricingPatternDB,
    ScopeItemPatternDB,
    UserActionType,
    ProposalOutcome,
    PhotoCategory,
)
from ...models.learning_models import (
    LearningContext,
    ActionPayload,
    ScopeActionPayload,
    PriceAdjustPayload,
    PhotoCategorizePayload,
    OutcomePayload,
    FeedbackPayload,
    parse_payload,
)
from .adaptive_profile import AdaptiveProfileService
from .utils import round_half_up


logger = logging.getLogger(__name__)


SCOPE_ACTION_TYPES = {
    "add": UserActionType.SCOPE_ADD,
    "remove": UserActionType.SCOPE_REMOVE,
    "modify": UserActionType.SCOPE_EDIT,
}


def calculate_adjustment_percent(
    suggested_low: float,
    suggested_high: float,
    final_low: float,
    final_high: float,
) -> int:
    """Percent change of the final band midpoint vs. the suggested midpoint."""
    suggested_mid = (suggested_low + suggested_high) / 2
    final_mid = (final_low + final_high) / 2
    if suggested_mid <= 0:
        return 0
    return round_half_up((final_mid - suggested_mid) / suggested_mid * 100)


class ActionLoggerService:
    """
    Records user actions for learning.

    Usage:
        logger_service = ActionLoggerService(db)
        logger_service.record_scope_action(context, "Expansion tank", "add")
    """

    # Pricing rows within this distance of the proposal's creation get its outcome
    OUTCOME_MATCH_WINDOW = timedelta(days=1)

    def __init__(self, db: Session, profile_service: Optional[AdaptiveProfileService] = None):
        self.db = db
        self.profile_service = profile_service or AdaptiveProfileService(db)

    # =========================================================================
    # Raw action log
    # =========================================================================

    def _append_action(
        self,
        action_type: Union[UserActionType, str],
        context: LearningContext,
        payload: Union[ActionPayload, Dict[str, Any], None],
    ) -> UserActionLogDB:
        action_type = UserActionType(action_type)
        typed = parse_payload(action_type, payload)

        entry = UserActionLogDB(
            id=str(uuid4()),
            user_id=context.user_id,
            action_type=action_type,
            proposal_id=context.proposal_id,
            trade_id=context.trade_id,
            job_type_id=context.job_type_id,
            zipcode=context.zipcode,
            city=context.city,
            state=context.state,
            neighborhood=context.neighborhood,
            payload=typed.to_dict(),
            created_at=datetime.utcnow(),
        )
        self.db.add(entry)
        return entry

    def _feed_profile(self, entry: UserActionLogDB, context: LearningContext) -> None:
        # AdaptiveProfileService.track_action swallows its own failures
        self.profile_service.track_action(
            context.user_id,
            entry.action_type,
            context,
            parse_payload(entry.action_type, entry.payload),
        )

    def log_action(
        self,
        action_type: Union[UserActionType, str],
        context: LearningContext,
        payload: Union[ActionPayload, Dict[str, Any], None] = None,
    ) -> Optional[UserActionLogDB]:
        """Append one action. Returns the row, or None if the write failed."""
        try:
            entry = self._append_action(action_type, context, payload)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to log action {action_type} for user {context.user_id}: {e}")
            return None

        self._feed_profile(entry, context)
        return entry

    def update_outcome(
        self,
        proposal_id: str,
        outcome: Union[ProposalOutcome, str],
        final_value: Optional[float] = None,
    ) -> int:
        """Back-fill the outcome on every action tied to a proposal. Returns rows touched."""
        try:
            outcome = ProposalOutcome(outcome)
            updated = (
                self.db.query(UserActionLogDB)
                .filter(UserActionLogDB.proposal_id == proposal_id)
                .update(
                    {
                        UserActionLogDB.outcome_type: outcome,
                        UserActionLogDB.outcome_value: final_value,
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
            return updated
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update outcomes for proposal {proposal_id}: {e}")
            return 0

    # =========================================================================
    # Typed recorders
    # =========================================================================

    def record_photo_category(
        self,
        context: LearningContext,
        photo_order: int,
        category: Union[PhotoCategory, str],
        caption: Optional[str] = None,
        was_auto_assigned: bool = False,
        was_modified: bool = False,
    ) -> Optional[PhotoCategorizationDB]:
        """Store a photo categorization and log it as photo_categorize."""
        try:
            category = PhotoCategory(category)
            record = PhotoCategorizationDB(
                id=str(uuid4()),
                user_id=context.user_id,
                trade_id=context.trade_id,
                job_type_id=context.job_type_id,
                photo_order=photo_order,
                assigned_category=category,
                assigned_caption=caption,
                was_auto_assigned=was_auto_assigned,
                was_modified=was_modified,
                created_at=datetime.utcnow(),
            )
            self.db.add(record)

            entry = self._append_action(
                UserActionType.PHOTO_CATEGORIZE,
                context,
                PhotoCategorizePayload(
                    photo_order=photo_order,
                    category=category.value,
                    caption=caption,
                    was_modified=was_modified,
                ),
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record photo category for user {context.user_id}: {e}")
            return None

        self._feed_profile(entry, context)
        return record

    def record_scope_action(
        self,
        context: LearningContext,
        scope_item: str,
        action: str,
        is_from_template: bool = False,
    ) -> Optional[UserActionLogDB]:
        """
        Log a scope add/remove/modify.

        Pattern counters are left to the aggregator so each action is
        counted exactly once.
        """
        action_type = SCOPE_ACTION_TYPES.get(action)
        if action_type is None:
            logger.warning(f"Ignoring unknown scope action '{action}' for user {context.user_id}")
            return None

        return self.log_action(
            action_type,
            context,
            ScopeActionPayload(scope_item=scope_item, is_from_template=is_from_template),
        )

    def record_pricing_adjustment(
        self,
        context: LearningContext,
        suggested_low: float,
        suggested_high: float,
        final_low: float,
        final_high: float,
        job_size: int = 2,
    ) -> Optional[PricingPatternDB]:
        """Store one pricing event row and log it as price_adjust."""
        try:
            adjustment_percent = calculate_adjustment_percent(
                suggested_low, suggested_high, final_low, final_high
            )
            record = PricingPatternDB(
                id=str(uuid4()),
                user_id=context.user_id,
                trade_id=context.trade_id or "",
                job_type_id=context.job_type_id or "",
                job_size=job_size,
                zipcode=context.zipcode,
                suggested_price_low=suggested_low,
                suggested_price_high=suggested_high,
                final_price_low=final_low,
                final_price_high=final_high,
                adjustment_percent=adjustment_percent,
                is_aggregate=False,
                sample_count=1,
                created_at=datetime.utcnow(),
            )
            self.db.add(record)

            entry = self._append_action(
                UserActionType.PRICE_ADJUST,
                context,
                PriceAdjustPayload(
                    suggested_low=suggested_low,
                    suggested_high=suggested_high,
                    final_low=final_low,
                    final_high=final_high,
                    adjustment_percent=adjustment_percent,
                    job_size=job_size,
                ),
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record pricing adjustment for user {context.user_id}: {e}")
            return None

        self._feed_profile(entry, context)
        return record

    def record_feedback(
        self,
        context: LearningContext,
        feedback_type: str,
        suggestion_type: str,
        original_value: Any = None,
        new_value: Any = None,
    ) -> Optional[UserActionLogDB]:
        """Log whether a suggestion was accepted ("accepted") or not."""
        action_type = (
            UserActionType.PRICE_ACCEPT_SUGGESTION
            if feedback_type == "accepted"
            else UserActionType.PRICE_REJECT_SUGGESTION
        )
        return self.log_action(
            action_type,
            context,
            FeedbackPayload(
                suggestion_type=suggestion_type,
                feedback_type=feedback_type,
                original_value=original_value,
                new_value=new_value,
            ),
        )

    # =========================================================================
    # Proposal outcome
    # =========================================================================

    def record_proposal_outcome(
        self,
        context: LearningContext,
        outcome: Union[ProposalOutcome, str],
        final_value: Optional[float] = None,
        scope_items: Optional[List[str]] = None,
        proposal_created_at: Optional[datetime] = None,
    ) -> bool:
        """
        Close the learning loop for a won/lost proposal.

        Back-fills the action log, tags matching pricing rows, bumps the
        won/lost counters of the proposal's scope items and logs
        proposal_won / proposal_lost.

        Raises ValueError for outcomes other than won/lost (request
        validation); storage failures are swallowed and return False.
        """
        outcome = ProposalOutcome(outcome)
        if outcome == ProposalOutcome.PENDING:
            raise ValueError("Outcome must be 'won' or 'lost'")

        try:
            if context.proposal_id:
                self.db.query(UserActionLogDB).filter(
                    UserActionLogDB.proposal_id == context.proposal_id
                ).update(
                    {
                        UserActionLogDB.outcome_type: outcome,
                        UserActionLogDB.outcome_value: final_value,
                    },
                    synchronize_session=False,
                )

            if proposal_created_at and context.has_job_context():
                self.db.query(PricingPatternDB).filter(
                    PricingPatternDB.user_id == context.user_id,
                    PricingPatternDB.trade_id == context.trade_id,
                    PricingPatternDB.job_type_id == context.job_type_id,
                    PricingPatternDB.is_aggregate.is_(False),
                    PricingPatternDB.created_at >= proposal_created_at - self.OUTCOME_MATCH_WINDOW,
                    PricingPatternDB.created_at <= proposal_created_at + self.OUTCOME_MATCH_WINDOW,
                ).update({PricingPatternDB.outcome: outcome}, synchronize_session=False)

            if scope_items and context.has_job_context():
                counter = (
                    ScopeItemPatternDB.won_with_item
                    if outcome == ProposalOutcome.WON
                    else ScopeItemPatternDB.lost_with_item
                )
                self.db.query(ScopeItemPatternDB).filter(
                    ScopeItemPatternDB.trade_id == context.trade_id,
                    ScopeItemPatternDB.job_type_id == context.job_type_id,
                    ScopeItemPatternDB.scope_item.in_(scope_items),
                ).update({counter: counter + 1}, synchronize_session=False)

            entry = self._append_action(
                UserActionType.PROPOSAL_WON if outcome == ProposalOutcome.WON else UserActionType.PROPOSAL_LOST,
                context,
                OutcomePayload(final_value=final_value),
            )
            entry.outcome_type = outcome
            entry.outcome_value = final_value
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record {outcome.value} outcome for proposal {context.proposal_id}: {e}")
            return False

        self._feed_profile(entry, context)
        logger.info(f"Recorded {outcome.value} outcome for proposal {context.proposal_id}")
        return True
