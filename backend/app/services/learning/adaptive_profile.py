"""
Adaptive Profile

Per-user learned preferences, stored server-side in user_learned_preferences
and keyed by user id. This is the only adaptive learner; clients may cache
the profile but revalidate it with profile_version.

Learning reads the user's own action log over the recent-activity window
(newest 500 actions). Learned defaults are only handed out once the user
has been active for 7 days and recorded at least 10 actions.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any
import logging

from sqlalchemy.orm import Session

from ...config import RECENT_ACTIVITY_WINDOW_DAYS
from ...models.db_models import UserActionLogDB, UserLearnedPreferencesDB, UserActionType
from ...models.learning_models import (
    LearningContext,
    LearnedPreferences,
    ActionPayload,
    parse_payload,
)
from .utils import round_half_up, mean


logger = logging.getLogger(__name__)


@dataclass
class AdaptiveProfile:
    """Read model for a user's profile. Status fields are derived, not stored."""
    user_id: str
    first_seen: datetime
    total_actions: int = 0
    preferences: LearnedPreferences = field(default_factory=LearnedPreferences)
    profile_version: int = 0
    updated_at: Optional[datetime] = None

    @property
    def days_active(self) -> int:
        return max(0, (datetime.utcnow() - self.first_seen).days)

    @property
    def is_adapted(self) -> bool:
        return (
            self.days_active >= AdaptiveProfileService.LEARNING_PERIOD_DAYS
            and self.total_actions >= AdaptiveProfileService.MIN_ACTIONS_TO_ADAPT
        )

    @property
    def confidence(self) -> int:
        prefs = self.preferences
        return round_half_up(mean([
            prefs.pricing.confidence,
            prefs.scope.confidence,
            prefs.photos.confidence,
        ]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "first_seen": self.first_seen.isoformat(),
            "total_actions": self.total_actions,
            "days_active": self.days_active,
            "is_adapted": self.is_adapted,
            "confidence": self.confidence,
            "preferences": self.preferences.to_dict(),
            "profile_version": self.profile_version,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AdaptiveProfileService:
    """
    Learns and serves a user's preferences.

    Usage:
        profiles = AdaptiveProfileService(db)
        profiles.track_action(user_id, UserActionType.PRICE_ADJUST, context, payload)
        adjustment = profiles.get_learned_pricing_adjustment(user_id, "toilet-install")
    """

    LEARNING_PERIOD_DAYS = 7
    MIN_ACTIONS_TO_ADAPT = 10
    MIN_ACTIONS_FOR_PATTERN = 3
    HIGH_CONFIDENCE_THRESHOLD = 5
    PATTERN_THRESHOLD = 0.7
    HISTORY_LIMIT = 500
    MAX_CAPTIONS_PER_CATEGORY = 10
    MIN_PRICING_CONFIDENCE = 30

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Profile storage
    # =========================================================================

    def get_profile(self, user_id: str) -> AdaptiveProfile:
        """Load the profile; unknown users (or read errors) get an empty one."""
        try:
            row = self._get_row(user_id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to load adaptive profile for {user_id}: {e}")
            row = None

        if row is None:
            return AdaptiveProfile(user_id=user_id, first_seen=datetime.utcnow())

        return AdaptiveProfile(
            user_id=row.user_id,
            first_seen=row.first_seen,
            total_actions=row.total_actions or 0,
            preferences=LearnedPreferences.from_dict(row.preferences),
            profile_version=row.profile_version or 0,
            updated_at=row.updated_at,
        )

    def _get_row(self, user_id: str) -> Optional[UserLearnedPreferencesDB]:
        return (
            self.db.query(UserLearnedPreferencesDB)
            .filter(UserLearnedPreferencesDB.user_id == user_id)
            .first()
        )

    def track_action(
        self,
        user_id: str,
        action_type: UserActionType,
        context: LearningContext,
        payload: Optional[ActionPayload] = None,
    ) -> Optional[AdaptiveProfile]:
        """
        Count an action and re-learn the section of the profile it affects.

        The action itself must already be in the action log. Never raises.
        """
        try:
            action_type = UserActionType(action_type)
            payload = parse_payload(action_type, payload)

            row = self._get_row(user_id)
            now = datetime.utcnow()
            if row is None:
                row = UserLearnedPreferencesDB(
                    user_id=user_id,
                    first_seen=now,
                    total_actions=0,
                    preferences=LearnedPreferences().to_dict(),
                    profile_version=0,
                )
                self.db.add(row)

            prefs = LearnedPreferences.from_dict(row.preferences)
            self._learn_from_action(prefs, user_id, action_type, context, payload)

            row.total_actions = (row.total_actions or 0) + 1
            row.preferences = prefs.to_dict()
            row.profile_version = (row.profile_version or 0) + 1
            row.updated_at = now
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Adaptive profile update failed for {user_id} ({action_type}): {e}")
            return None

        return self.get_profile(user_id)

    # =========================================================================
    # Learning
    # =========================================================================

    def _get_history(self, user_id: str, action_type: UserActionType) -> List[UserActionLogDB]:
        """Recent-window history of one action type, newest HISTORY_LIMIT rows."""
        since = datetime.utcnow() - timedelta(days=RECENT_ACTIVITY_WINDOW_DAYS)
        return (
            self.db.query(UserActionLogDB)
            .filter(
                UserActionLogDB.user_id == user_id,
                UserActionLogDB.action_type == action_type,
                UserActionLogDB.created_at > since,
            )
            .order_by(UserActionLogDB.created_at.desc())
            .limit(self.HISTORY_LIMIT)
            .all()
        )

    def _learn_from_action(self, prefs, user_id, action_type, context, payload) -> None:
        if action_type == UserActionType.PRICE_ADJUST:
            self._learn_pricing(prefs, user_id, context)
        elif action_type == UserActionType.SCOPE_ADD:
            self._learn_scope(prefs, user_id, context, payload, removing=False)
        elif action_type == UserActionType.SCOPE_REMOVE:
            self._learn_scope(prefs, user_id, context, payload, removing=True)
        elif action_type == UserActionType.PHOTO_CATEGORIZE:
            self._learn_photos(prefs, user_id, payload)
        elif action_type == UserActionType.PROPOSAL_CREATE:
            self._learn_workflow(prefs, user_id)

    def _learn_pricing(self, prefs: LearnedPreferences, user_id: str, context: LearningContext) -> None:
        history = self._get_history(user_id, UserActionType.PRICE_ADJUST)
        pricing = prefs.pricing

        def adjustments(rows):
            values = (parse_payload(r.action_type, r.payload).adjustment_percent for r in rows)
            return [v for v in values if v is not None]

        all_adjustments = adjustments(history)
        if len(all_adjustments) >= self.MIN_ACTIONS_FOR_PATTERN:
            pricing.default_adjustment = round_half_up(mean(all_adjustments))
            pricing.confidence = min(100, len(all_adjustments) * 10)

        if context.job_type_id:
            job_adjustments = adjustments(r for r in history if r.job_type_id == context.job_type_id)
            if len(job_adjustments) >= self.MIN_ACTIONS_FOR_PATTERN:
                pricing.by_job_type[context.job_type_id] = round_half_up(mean(job_adjustments))

        if context.zipcode:
            region_adjustments = adjustments(r for r in history if r.zipcode == context.zipcode)
            if len(region_adjustments) >= self.MIN_ACTIONS_FOR_PATTERN:
                pricing.by_region[context.zipcode] = round_half_up(mean(region_adjustments))

    def _learn_scope(self, prefs, user_id, context, payload, removing: bool) -> None:
        scope_item = payload.scope_item
        if not scope_item:
            return

        action_type = UserActionType.SCOPE_REMOVE if removing else UserActionType.SCOPE_ADD
        history = self._get_history(user_id, action_type)
        scope = prefs.scope
        always = scope.always_remove if removing else scope.always_add
        by_job_type = scope.remove_by_job_type if removing else scope.add_by_job_type

        items = [(r, parse_payload(r.action_type, r.payload).scope_item) for r in history]

        item_count = sum(1 for _, item in items if item and item.lower() == scope_item.lower())
        if item_count >= self.HIGH_CONFIDENCE_THRESHOLD and scope_item not in always:
            always.append(scope_item)

        if context.job_type_id:
            job_rows = [(r, item) for r, item in items if r.job_type_id == context.job_type_id]
            counts = Counter(item for _, item in job_rows if item)
            total_proposals = len({r.proposal_id for r, _ in job_rows})

            if total_proposals >= self.MIN_ACTIONS_FOR_PATTERN:
                by_job_type[context.job_type_id] = [
                    item for item, count in counts.items()
                    if count / total_proposals >= self.PATTERN_THRESHOLD
                ]

        if not removing:
            scope.confidence = min(100, len(history) * 5)

    def _learn_photos(self, prefs: LearnedPreferences, user_id: str, payload) -> None:
        if not payload.photo_order or not payload.category:
            return

        history = self._get_history(user_id, UserActionType.PHOTO_CATEGORIZE)
        photos = prefs.photos

        position_categories = []
        for row in history:
            data = parse_payload(row.action_type, row.payload)
            if data.photo_order == payload.photo_order and data.category:
                position_categories.append(data.category)

        if len(position_categories) >= self.MIN_ACTIONS_FOR_PATTERN:
            counts = Counter(position_categories)
            top_category, top_count = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0]
            if top_count / len(position_categories) >= self.PATTERN_THRESHOLD:
                photos.category_by_position[str(payload.photo_order)] = top_category

        caption = payload.caption
        if caption and len(caption) > 5:
            captions = photos.captions_by_category.setdefault(payload.category, [])
            if caption not in captions and len(captions) < self.MAX_CAPTIONS_PER_CATEGORY:
                captions.append(caption)

        photos.confidence = min(100, len(history) * 5)

    def _learn_workflow(self, prefs: LearnedPreferences, user_id: str) -> None:
        history = self._get_history(user_id, UserActionType.PROPOSAL_CREATE)
        workflow = prefs.workflow

        job_counts = Counter(r.job_type_id for r in history if r.job_type_id)
        workflow.common_job_types = [job for job, _ in job_counts.most_common(5)]

        area_counts = Counter(r.zipcode for r in history if r.zipcode)
        workflow.common_areas = [area for area, _ in area_counts.most_common(10)]

        payloads = [parse_payload(r.action_type, r.payload) for r in history]
        photo_counts = [p.photo_count for p in payloads if p.photo_count is not None]
        if photo_counts:
            workflow.avg_photo_count = round_half_up(mean(photo_counts))

        scope_counts = [p.scope_count for p in payloads if p.scope_count is not None]
        if scope_counts:
            workflow.avg_scope_items = round_half_up(mean(scope_counts))

    # =========================================================================
    # Applying learned preferences
    # =========================================================================

    def get_learned_pricing_adjustment(
        self,
        user_id: str,
        job_type_id: Optional[str] = None,
        zipcode: Optional[str] = None,
    ) -> Optional[Dict[str, int]]:
        """Job type, then region, then default (if confident). None until adapted."""
        profile = self.get_profile(user_id)
        if not profile.is_adapted:
            return None

        pricing = profile.preferences.pricing

        if job_type_id and job_type_id in pricing.by_job_type:
            return {"adjustment": pricing.by_job_type[job_type_id], "confidence": pricing.confidence}

        if zipcode and zipcode in pricing.by_region:
            return {"adjustment": pricing.by_region[zipcode], "confidence": pricing.confidence}

        if pricing.confidence >= self.MIN_PRICING_CONFIDENCE:
            return {"adjustment": pricing.default_adjustment, "confidence": pricing.confidence}

        return None

    def get_learned_scope_modifications(
        self,
        user_id: str,
        current_scope: List[str],
        job_type_id: Optional[str] = None,
    ) -> Optional[Dict[str, List[str]]]:
        """Items to add/flag for removal. Nothing is removed automatically."""
        profile = self.get_profile(user_id)
        if not profile.is_adapted:
            return None

        scope = profile.preferences.scope
        scope_lower = {s.lower() for s in current_scope}
        add: List[str] = []
        remove: List[str] = []

        for item in scope.always_add + scope.add_by_job_type.get(job_type_id or "", []):
            if item.lower() not in scope_lower and item not in add:
                add.append(item)

        for item in scope.always_remove + scope.remove_by_job_type.get(job_type_id or "", []):
            if item.lower() in scope_lower and item not in remove:
                remove.append(item)

        if not add and not remove:
            return None

        return {"add": add, "remove": remove}

    def get_learned_photo_category(self, user_id: str, photo_order: int) -> Optional[Dict[str, Any]]:
        profile = self.get_profile(user_id)
        if not profile.is_adapted:
            return None

        photos = profile.preferences.photos
        category = photos.category_by_position.get(str(photo_order))
        if category:
            return {"category": category, "confidence": photos.confidence}
        return None

    def get_learned_captions(self, user_id: str, category: str) -> List[str]:
        profile = self.get_profile(user_id)
        return list(profile.preferences.photos.captions_by_category.get(category, []))

    def get_learning_progress(self, user_id: str) -> Dict[str, Any]:
        profile = self.get_profile(user_id)
        return {
            "days_active": profile.days_active,
            "days_remaining": max(0, self.LEARNING_PERIOD_DAYS - profile.days_active),
            "actions_recorded": profile.total_actions,
            "is_complete": profile.is_adapted,
            "confidence": profile.confidence,
        }
