"""
Recommendation Engine

Read side of the learning pipeline. Turns the learning tables into
suggestions while a contractor builds a proposal:

- photo category per position, and captions per category
- scope items to add / consider removing
- pricing band adjusted by the user's history, the local market or the
  zipcode price multiplier
- geographic insights and a learning-progress summary

Every public method is a pure read, safe to call repeatedly, and never
raises: a failed query is rolled back, logged, and answered with the
lowest-confidence fallback (or an empty result).
"""
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...config import RECENT_ACTIVITY_WINDOW_DAYS
from ...models.db_models import (
    UserActionLogDB,
    ScopeItemPatternDB,
    PricingPatternDB,
    GeographicPatternDB,
    PhotoCategorizationDB,
    ProposalOutcome,
    GeoLevel,
    PatternType,
)
from ...models.learning_models import (
    LearningContext,
    PhotoCategorySuggestion,
    ScopeSuggestion,
    PricingSuggestion,
    GeographicInsights,
)
from .construction_knowledge import get_job_knowledge, get_missing_components
from .auto_enhance import is_item_covered
from .utils import mean, round_half_up


logger = logging.getLogger(__name__)


# =============================================================================
# STATIC TABLES
# =============================================================================

# photo_order -> (category, confidence, reason)
DEFAULT_PHOTO_CATEGORIES: Dict[int, Tuple[str, int, str]] = {
    1: ("hero", 70, "First photo typically used as hero banner"),
    2: ("existing", 60, "Second photo usually shows existing conditions"),
    3: ("existing", 60, "Third photo usually shows existing conditions"),
    4: ("existing", 55, "Fourth photo usually shows existing conditions"),
    5: ("existing", 50, "Fifth photo usually shows existing conditions"),
    6: ("existing", 50, "Sixth photo usually shows existing conditions"),
}
FALLBACK_PHOTO_CATEGORY = ("other", 40, "Additional documentation photo")

CAPTION_TEMPLATES: Dict[str, List[str]] = {
    "hero": ["Project overview", "Property exterior", "Main work area", "Overall view of space"],
    "existing": ["Current condition", "Area requiring attention", "Existing setup", "Before photo"],
    "shower": [
        "Current shower condition", "Shower surround showing wear",
        "Existing shower fixtures", "Grout condition", "Shower pan condition",
    ],
    "vanity": ["Existing vanity", "Sink and countertop condition", "Vanity cabinet condition", "Mirror and lighting"],
    "flooring": ["Current flooring condition", "Floor transition area", "Flooring wear pattern", "Subfloor condition"],
    "tub": ["Existing bathtub", "Tub surround condition", "Tub drain area", "Caulk condition"],
    "toilet": ["Existing toilet", "Toilet area flooring", "Toilet flange condition"],
    "plumbing": ["Under-sink plumbing", "Water supply lines", "Drain condition", "Shut-off valves"],
    "electrical": ["Existing electrical", "Outlet locations", "Lighting fixtures", "Panel condition"],
    "damage": ["Water damage visible", "Area requiring repair", "Damage extent", "Moisture reading location"],
    "kitchen": ["Kitchen overview", "Cooking area", "Kitchen storage", "Counter space"],
    "cabinets": ["Cabinet condition", "Interior cabinet view", "Cabinet hardware", "Cabinet door condition"],
    "countertops": ["Countertop condition", "Counter edge detail", "Surface wear", "Seam condition"],
    "roofing": ["Roof overview", "Shingle condition", "Flashing area", "Valley condition", "Ridge condition"],
    "siding": ["Exterior siding", "Siding damage", "Siding detail", "Corner condition"],
    "windows": ["Window condition", "Frame detail", "Seal condition", "Glass condition"],
    "hvac": ["HVAC unit", "Vent condition", "Ductwork", "Filter area"],
    "other": ["Additional documentation", "Reference photo", "Site detail", "Measurement reference"],
}

# Job-type captions shown ahead of the generic templates
JOB_TYPE_CAPTIONS: Dict[str, Dict[str, List[str]]] = {
    "bathroom-remodel": {
        "existing": ["Full bathroom overview", "Bathroom layout"],
        "damage": ["Water damage behind toilet", "Moisture at tub base"],
    },
    "kitchen-remodel": {
        "existing": ["Kitchen layout", "Appliance locations"],
        "cabinets": ["Upper cabinet condition", "Lower cabinet condition"],
    },
}

# Items contractors tend to forget; looked up by job type, then trade
ESSENTIAL_SCOPE_ITEMS: Dict[str, List[Dict[str, Any]]] = {
    "bathroom-remodel": [
        {
            "item": "Protect existing surfaces during demolition",
            "keywords": ["protect", "cover", "demolition"],
            "reason": "Essential for protecting client property",
        },
        {
            "item": "Final cleanup and debris removal",
            "keywords": ["cleanup", "debris", "removal", "clean"],
            "reason": "Commonly expected but sometimes forgotten",
        },
        {
            "item": "Final walkthrough with homeowner",
            "keywords": ["walkthrough", "inspection", "final", "review"],
            "reason": "Important for client satisfaction",
        },
    ],
    "kitchen-remodel": [
        {
            "item": "Disconnect and cap existing plumbing",
            "keywords": ["disconnect", "cap", "plumbing"],
            "reason": "Safety requirement often overlooked",
        },
        {
            "item": "Protect flooring during installation",
            "keywords": ["protect", "floor", "covering"],
            "reason": "Prevents damage claims",
        },
    ],
    "flooring": [
        {
            "item": "Removal and disposal of existing flooring",
            "keywords": ["removal", "disposal", "existing", "demo"],
            "reason": "Commonly included in flooring projects",
        },
        {
            "item": "Floor leveling if needed",
            "keywords": ["level", "leveling", "subfloor"],
            "reason": "Often necessary but discovered during work",
        },
    ],
    "plumbing": [
        {
            "item": "Test all fixtures for leaks after installation",
            "keywords": ["test", "leak", "check"],
            "reason": "Quality assurance step",
        },
    ],
}


def _pattern_number(value: Any) -> Optional[float]:
    """Geographic pattern values are stored as {"value": x}; bare numbers also accepted."""
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _pattern_items(value: Any) -> List[str]:
    if isinstance(value, dict):
        value = value.get("items")
    if isinstance(value, list):
        return [str(v) for v in value]
    return []


def _format_dollars(amount: int) -> str:
    return f"${amount:,}"


class RecommendationEngine:
    """
    Suggestions for the proposal wizard.

    Usage:
        engine = RecommendationEngine(db)
        engine.get_scope_suggestions(context, ["Install toilet"])
    """

    # Photo thresholds
    USER_PHOTO_MIN_SAMPLES = 3
    TRADE_PHOTO_MIN_SAMPLES = 10

    # Scope thresholds
    SCOPE_MIN_SAMPLES = 5
    ADD_RATE_THRESHOLD = 0.7
    REMOVE_RATE_THRESHOLD = 0.5
    MIN_ADDED = 5
    MIN_REMOVED = 3
    MAX_ADDITIONS = 5
    MAX_REMOVALS = 3
    ESSENTIAL_CONFIDENCE = 60

    # Pricing thresholds
    USER_PRICING_MIN_SAMPLES = 3
    LOCAL_PRICING_MIN_SAMPLES = 5
    MARKET_POSITION_BAND = 10
    GEO_ADJUSTMENT_MIN_CONFIDENCE = 50

    COMMON_CAPTION_LIMIT = 5
    CAPTION_SUGGESTION_LIMIT = 10

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # PHOTOS
    # =========================================================================

    def _top_photo_category(self, filters: List[Any]) -> Optional[Tuple[str, int]]:
        count_col = func.count(PhotoCategorizationDB.id)
        row = (
            self.db.query(PhotoCategorizationDB.assigned_category, count_col)
            .filter(*filters)
            .group_by(PhotoCategorizationDB.assigned_category)
            .order_by(count_col.desc(), PhotoCategorizationDB.assigned_category.asc())
            .first()
        )
        if row is None:
            return None
        category, count = row
        return getattr(category, "value", category), count

    def suggest_photo_category(self, context: LearningContext, photo_order: int) -> PhotoCategorySuggestion:
        """User history, then cross-user trade pattern, then the positional default."""
        category, confidence, reason = DEFAULT_PHOTO_CATEGORIES.get(photo_order, FALLBACK_PHOTO_CATEGORY)
        default = PhotoCategorySuggestion(category=category, confidence=confidence, reason=reason)

        try:
            user_filters = [
                PhotoCategorizationDB.user_id == context.user_id,
                PhotoCategorizationDB.photo_order == photo_order,
            ]
            if context.trade_id:
                user_filters.append(PhotoCategorizationDB.trade_id == context.trade_id)
            if context.job_type_id:
                user_filters.append(PhotoCategorizationDB.job_type_id == context.job_type_id)

            top = self._top_photo_category(user_filters)
            if top and top[1] >= self.USER_PHOTO_MIN_SAMPLES:
                category, count = top
                return PhotoCategorySuggestion(
                    category=category,
                    confidence=min(95, 60 + count * 5),
                    reason=f"Based on your preference ({count} similar photos)",
                )

            if context.has_job_context():
                top = self._top_photo_category([
                    PhotoCategorizationDB.trade_id == context.trade_id,
                    PhotoCategorizationDB.job_type_id == context.job_type_id,
                    PhotoCategorizationDB.photo_order == photo_order,
                ])
                if top and top[1] >= self.TRADE_PHOTO_MIN_SAMPLES:
                    category, count = top
                    return PhotoCategorySuggestion(
                        category=category,
                        confidence=min(85, 50 + count // 5),
                        reason=f"Common for {context.job_type_id} projects",
                    )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to get photo category suggestion for user {context.user_id}: {e}")

        return default

    def get_common_captions(self, context: LearningContext, category: str) -> List[str]:
        """The user's most used captions for a category."""
        try:
            count_col = func.count(PhotoCategorizationDB.id)
            rows = (
                self.db.query(PhotoCategorizationDB.assigned_caption, count_col)
                .filter(
                    PhotoCategorizationDB.user_id == context.user_id,
                    PhotoCategorizationDB.assigned_category == category,
                    PhotoCategorizationDB.assigned_caption.isnot(None),
                    PhotoCategorizationDB.assigned_caption != "",
                )
                .group_by(PhotoCategorizationDB.assigned_caption)
                .order_by(count_col.desc(), PhotoCategorizationDB.assigned_caption.asc())
                .limit(self.COMMON_CAPTION_LIMIT)
                .all()
            )
            return [caption for caption, _ in rows if caption]
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to get common captions for user {context.user_id}: {e}")
            return []

    def get_caption_suggestions(self, context: LearningContext, category: str) -> Dict[str, List[str]]:
        """User captions first, then job-type and generic templates."""
        user_captions = self.get_common_captions(context, category)

        templates = list(JOB_TYPE_CAPTIONS.get(context.job_type_id or "", {}).get(category, []))
        templates += [t for t in CAPTION_TEMPLATES.get(category, CAPTION_TEMPLATES["other"]) if t not in templates]

        suggestions = list(user_captions)
        for template in templates:
            if template not in suggestions:
                suggestions.append(template)

        return {
            "suggestions": suggestions[:self.CAPTION_SUGGESTION_LIMIT],
            "user_captions": user_captions,
            "templates": templates,
        }

    def get_smart_photo_suggestions(self, context: LearningContext, photo_count: int) -> List[Dict[str, Any]]:
        suggestions = []
        for position in range(1, photo_count + 1):
            suggestion = self.suggest_photo_category(context, position)
            caption_options = self.get_common_captions(context, suggestion.category)

            if suggestion.confidence >= 80:
                explanation = "Highly recommended based on your consistent preference"
            elif suggestion.confidence >= 60:
                explanation = "Suggested based on common patterns for this job type"
            else:
                explanation = "Default suggestion - will learn your preference over time"

            suggestions.append({
                "photo_index": position,
                "suggested_category": suggestion.category,
                "suggested_caption": caption_options[0] if caption_options else None,
                "confidence": suggestion.confidence,
                "reason": suggestion.reason,
                "caption_options": caption_options,
                "explanation": explanation,
            })
        return suggestions

    # =========================================================================
    # SCOPE
    # =========================================================================

    def _load_scope_stats(self, context: LearningContext) -> List[Dict[str, Any]]:
        """Pattern counters for the trade/job type, summed per item across zipcodes."""
        rows = (
            self.db.query(ScopeItemPatternDB)
            .filter(
                ScopeItemPatternDB.trade_id == context.trade_id,
                ScopeItemPatternDB.job_type_id == context.job_type_id,
            )
            .all()
        )

        totals: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            stats = totals.setdefault(row.scope_item, {
                "item": row.scope_item, "added": 0, "removed": 0, "won": 0, "lost": 0,
            })
            stats["added"] += row.added_count or 0
            stats["removed"] += row.removed_count or 0
            stats["won"] += row.won_with_item or 0
            stats["lost"] += row.lost_with_item or 0

        return sorted(totals.values(), key=lambda s: (-s["added"], s["item"]))

    def get_scope_suggestions(self, context: LearningContext, current_scope: List[str]) -> Dict[str, List[ScopeSuggestion]]:
        """
        Learned additions and removals for the trade/job type.

        An item qualifies for addition when it is missing, has at least 5
        samples, is added more than 70% of the time and was added at least
        5 times. Removal needs the item present, a remove rate above 50% and
        at least 3 removals.
        """
        empty: Dict[str, List[ScopeSuggestion]] = {"additions": [], "removals": []}
        if not context.has_job_context():
            return empty

        try:
            patterns = self._load_scope_stats(context)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to get scope suggestions for {context.trade_id}/{context.job_type_id}: {e}")
            return empty

        scope_lower = {s.lower() for s in current_scope}
        additions: List[ScopeSuggestion] = []
        removals: List[ScopeSuggestion] = []

        for stats in patterns:
            total = stats["added"] + stats["removed"]
            if total < self.SCOPE_MIN_SAMPLES:
                continue

            add_rate = stats["added"] / total
            remove_rate = stats["removed"] / total
            decided = stats["won"] + stats["lost"]
            win_rate_impact = math.floor((stats["won"] / decided - 0.5) * 100) if decided else None
            in_scope = stats["item"].lower() in scope_lower

            if not in_scope and add_rate > self.ADD_RATE_THRESHOLD and stats["added"] >= self.MIN_ADDED:
                percent = int(add_rate * 100)
                additions.append(ScopeSuggestion(
                    item=stats["item"],
                    action="add",
                    confidence=min(90, percent),
                    reason=f"Added by contractors {percent}% of the time",
                    win_rate_impact=win_rate_impact,
                ))
            elif in_scope and remove_rate > self.REMOVE_RATE_THRESHOLD and stats["removed"] >= self.MIN_REMOVED:
                percent = int(remove_rate * 100)
                removals.append(ScopeSuggestion(
                    item=stats["item"],
                    action="consider_removing",
                    confidence=min(80, percent),
                    reason=f"Removed by contractors {percent}% of the time",
                    win_rate_impact=win_rate_impact,
                ))

        return {
            "additions": additions[:self.MAX_ADDITIONS],
            "removals": removals[:self.MAX_REMOVALS],
        }

    def get_missing_essentials(self, context: LearningContext, current_scope: List[str]) -> List[ScopeSuggestion]:
        """Commonly forgotten items (cleanup, protection, testing) not yet in scope."""
        essentials = ESSENTIAL_SCOPE_ITEMS.get(context.job_type_id or "")
        if essentials is None:
            essentials = ESSENTIAL_SCOPE_ITEMS.get((context.trade_id or "").lower(), [])

        scope_lower = [s.lower() for s in current_scope]
        missing = []
        for essential in essentials:
            if essential["item"].lower() in scope_lower:
                continue
            if any(kw in line for kw in essential["keywords"] for line in scope_lower):
                continue
            missing.append(ScopeSuggestion(
                item=essential["item"],
                action="add",
                confidence=self.ESSENTIAL_CONFIDENCE,
                reason=essential["reason"],
            ))
        return missing

    def get_smart_scope_suggestions(self, context: LearningContext, current_scope: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Learned suggestions merged with construction knowledge.

        recommended: learned additions (user_pattern) first, then missing
        knowledge-base components (trade_standard).
        warnings: learned removals.
        missing: knowledge-base oversights and forgotten essentials.
        """
        learned = self.get_scope_suggestions(context, current_scope)

        recommended = [
            {
                "item": s.item,
                "confidence": s.confidence,
                "reason": s.reason,
                "source": "user_pattern",
                "win_rate_impact": s.win_rate_impact,
            }
            for s in learned["additions"]
        ]
        seen = {r["item"].lower() for r in recommended}

        missing: List[Dict[str, Any]] = []
        knowledge = get_job_knowledge(context.job_type_id)
        if knowledge:
            for component in get_missing_components(context.job_type_id, current_scope):
                if component.item.lower() in seen:
                    continue
                seen.add(component.item.lower())
                recommended.append({
                    "item": component.item,
                    "confidence": self.ESSENTIAL_CONFIDENCE,
                    "reason": f"Standard for {knowledge.trade_name.lower()} {context.job_type_id} work",
                    "source": "trade_standard",
                    "win_rate_impact": None,
                })

            scope_lower = {s.lower() for s in current_scope}
            for oversight in knowledge.common_oversights:
                if not is_item_covered(oversight, scope_lower):
                    missing.append({
                        "item": oversight,
                        "reason": f"Commonly overlooked in {context.job_type_id} projects",
                    })

        for essential in self.get_missing_essentials(context, current_scope):
            if essential.item.lower() in seen:
                continue
            seen.add(essential.item.lower())
            missing.append({
                "item": essential.item,
                "reason": f"Commonly included in {context.job_type_id} projects",
            })

        warnings = [
            {
                "item": s.item,
                "reason": s.reason,
                "suggestion": "Consider removing if not applicable to this project",
            }
            for s in learned["removals"]
        ]

        return {"recommended": recommended, "warnings": warnings, "missing": missing}

    # =========================================================================
    # PRICING
    # =========================================================================

    def _pricing_events(self, *filters) -> List[PricingPatternDB]:
        return (
            self.db.query(PricingPatternDB)
            .filter(PricingPatternDB.is_aggregate.is_(False), *filters)
            .all()
        )

    def _zipcode_pattern(self, zipcode: str, pattern_type: PatternType, trade_id: Optional[str] = None):
        query = self.db.query(GeographicPatternDB).filter(
            GeographicPatternDB.geo_level == GeoLevel.ZIPCODE,
            GeographicPatternDB.geo_value == zipcode,
            GeographicPatternDB.pattern_type == pattern_type,
        )
        if trade_id:
            query = query.filter(or_(
                GeographicPatternDB.trade_id == trade_id,
                GeographicPatternDB.trade_id.is_(None),
            ))
        # Trade-specific rows sort ahead of trade-wide ones
        rows = query.all()
        rows.sort(key=lambda r: (r.trade_id is None, -(r.confidence or 0)))
        return rows[0] if rows else None

    def get_pricing_suggestion(
        self,
        context: LearningContext,
        base_low: float,
        base_high: float,
        job_size: int = 2,
    ) -> PricingSuggestion:
        """
        Adjust a base price band.

        Tiers: the user's own history (3+ jobs), the local zipcode market
        (5+ jobs), the zipcode price multiplier, then no adjustment.
        """
        raw_adjustment = 0.0
        confidence = 50
        reason = "Based on standard pricing"
        source = None
        local_win_rate = None

        if context.has_job_context():
            try:
                user_rows = self._pricing_events(
                    PricingPatternDB.user_id == context.user_id,
                    PricingPatternDB.trade_id == context.trade_id,
                    PricingPatternDB.job_type_id == context.job_type_id,
                    PricingPatternDB.job_size == job_size,
                )
                local_rows = []
                if context.zipcode:
                    local_rows = self._pricing_events(
                        PricingPatternDB.trade_id == context.trade_id,
                        PricingPatternDB.job_type_id == context.job_type_id,
                        PricingPatternDB.zipcode == context.zipcode,
                        PricingPatternDB.job_size == job_size,
                    )
                    if local_rows:
                        local_win_rate = mean(
                            100 if r.outcome == ProposalOutcome.WON else 0 for r in local_rows
                        )

                if len(user_rows) >= self.USER_PRICING_MIN_SAMPLES:
                    raw_adjustment = mean(r.adjustment_percent or 0 for r in user_rows)
                    confidence = min(90, 60 + len(user_rows) * 3)
                    reason = f"Based on your pricing history ({len(user_rows)} similar jobs)"
                    source = "user"
                elif len(local_rows) >= self.LOCAL_PRICING_MIN_SAMPLES:
                    raw_adjustment = mean(r.adjustment_percent or 0 for r in local_rows)
                    confidence = min(80, 50 + len(local_rows) // 2)
                    reason = f"Based on local market data ({len(local_rows)} jobs in area)"
                    source = "local"
                elif context.zipcode:
                    geo = self._zipcode_pattern(context.zipcode, PatternType.PRICE_MULTIPLIER, context.trade_id)
                    multiplier = _pattern_number(geo.pattern_value) if geo else None
                    if multiplier is not None and multiplier != 1.0:
                        raw_adjustment = (multiplier - 1) * 100
                        confidence = geo.confidence or 0
                        reason = f"Based on {context.zipcode} area pricing trends"
                        source = "local"
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to get pricing suggestion for user {context.user_id}: {e}")
                raw_adjustment, confidence, reason, source, local_win_rate = 0.0, 50, "Based on standard pricing", None, None

        # Band scales by the unrounded average; only the reported percent is rounded
        suggested_low = round_half_up(base_low * (1 + raw_adjustment / 100))
        suggested_high = round_half_up(base_high * (1 + raw_adjustment / 100))
        adjustment = round_half_up(raw_adjustment)

        if adjustment < -self.MARKET_POSITION_BAND:
            market_position = "below"
        elif adjustment > self.MARKET_POSITION_BAND:
            market_position = "above"
        else:
            market_position = "average"

        explanation = f"Recommended price of {_format_dollars(suggested_low)} - {_format_dollars(suggested_high)}"
        if adjustment != 0 and source:
            direction = "increase" if adjustment > 0 else "decrease"
            basis = "your pricing style" if source == "user" else "local market conditions"
            explanation += f" reflects a {abs(adjustment)}% {direction} based on {basis}."
        else:
            explanation += ". We'll learn your pricing preferences over time."

        return PricingSuggestion(
            suggested_low=suggested_low,
            suggested_high=suggested_high,
            confidence=confidence,
            adjustment_percent=adjustment,
            reason=reason,
            local_win_rate=local_win_rate,
            market_position=market_position,
            explanation=explanation,
        )

    def get_geographic_insights(self, context: LearningContext) -> GeographicInsights:
        insights = GeographicInsights()
        if not context.zipcode:
            return insights

        try:
            query = self.db.query(GeographicPatternDB).filter(
                GeographicPatternDB.geo_level == GeoLevel.ZIPCODE,
                GeographicPatternDB.geo_value == context.zipcode,
            )
            if context.trade_id:
                query = query.filter(or_(
                    GeographicPatternDB.trade_id == context.trade_id,
                    GeographicPatternDB.trade_id.is_(None),
                ))
            patterns = sorted(query.all(), key=lambda r: r.trade_id is None)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to get geographic insights for {context.zipcode}: {e}")
            return GeographicInsights()

        multiplier_set = False
        for pattern in patterns:
            if pattern.pattern_type == PatternType.PRICE_MULTIPLIER and not multiplier_set:
                value = _pattern_number(pattern.pattern_value)
                if value is not None:
                    insights.price_multiplier = value
                    insights.confidence = max(insights.confidence, pattern.confidence or 0)
                    multiplier_set = True
            elif pattern.pattern_type in (PatternType.COMMON_MATERIALS, PatternType.COMMON_SCOPE_ITEMS):
                if not insights.common_materials:
                    insights.common_materials = _pattern_items(pattern.pattern_value)
            elif pattern.pattern_type == PatternType.WIN_RATE:
                insights.local_win_rate = _pattern_number(pattern.pattern_value)

        return insights

    def get_smart_pricing_recommendation(
        self,
        context: LearningContext,
        base_low: float,
        base_high: float,
        job_size: int = 2,
    ) -> Dict[str, Any]:
        """Pricing suggestion broken down into named adjustments."""
        pricing = self.get_pricing_suggestion(context, base_low, base_high, job_size)
        geo = self.get_geographic_insights(context)

        adjustments = []
        if pricing.adjustment_percent != 0:
            adjustments.append({
                "name": "Your pricing pattern",
                "amount": pricing.adjustment_percent,
                "reason": pricing.reason,
                "confidence": pricing.confidence,
            })
        if geo.price_multiplier != 1.0 and geo.confidence > self.GEO_ADJUSTMENT_MIN_CONFIDENCE:
            adjustments.append({
                "name": "Local market adjustment",
                "amount": round_half_up((geo.price_multiplier - 1) * 100),
                "reason": f"Based on {context.zipcode} area pricing patterns",
                "confidence": geo.confidence,
            })

        explanation = (
            f"Recommended price of {_format_dollars(pricing.suggested_low)} - "
            f"{_format_dollars(pricing.suggested_high)}"
        )
        if adjustments:
            plural = "s" if len(adjustments) > 1 else ""
            explanation += f" includes {len(adjustments)} adjustment{plural} based on your patterns and local market data."
        else:
            explanation += " is based on standard pricing. We'll learn your preferences over time."

        return {
            "recommended": {"low": pricing.suggested_low, "high": pricing.suggested_high},
            "adjustments": adjustments,
            "insights": {
                "local_market_position": pricing.market_position,
                "win_rate_prediction": pricing.local_win_rate,
                "competitor_range": None,
            },
            "explanation": explanation,
        }

    # =========================================================================
    # BUNDLES
    # =========================================================================

    def get_proposal_recommendations(
        self,
        context: LearningContext,
        photo_count: int,
        current_scope: List[str],
        base_low: float,
        base_high: float,
        job_size: int = 2,
    ) -> Dict[str, Any]:
        """Photos, scope and pricing for one proposal, plus learning status."""
        photos = self.get_smart_photo_suggestions(context, photo_count)
        scope = self.get_smart_scope_suggestions(context, current_scope)
        pricing = self.get_smart_pricing_recommendation(context, base_low, base_high, job_size)

        scores = [p["confidence"] for p in photos] + [a["confidence"] for a in pricing["adjustments"]]
        overall_confidence = round_half_up(mean(scores)) if scores else 50

        has_user_patterns = any(p["confidence"] > 70 for p in photos)
        has_local_data = pricing is not None
        data_point_count = max([c // 10 for c in scores] + [0])

        tips = []
        if not has_user_patterns:
            tips.append("Complete a few more proposals to personalize photo suggestions")
        if not has_local_data:
            tips.append("More projects in your area will improve local market insights")
        if overall_confidence < 60:
            tips.append("Recommendations will improve as we learn your preferences")

        return {
            "photos": photos,
            "scope": scope,
            "pricing": pricing,
            "options": [],
            "overall_confidence": overall_confidence,
            "learning_status": {
                "has_user_patterns": has_user_patterns,
                "has_local_data": has_local_data,
                "data_point_count": data_point_count,
                "improvement_tips": tips,
            },
        }

    def get_learning_insights(self, context: LearningContext) -> Dict[str, Any]:
        """How much the system knows about this user, with tips to improve it."""
        try:
            recent_cutoff = datetime.utcnow() - timedelta(days=RECENT_ACTIVITY_WINDOW_DAYS)

            total_actions = (
                self.db.query(func.count(UserActionLogDB.id))
                .filter(UserActionLogDB.user_id == context.user_id)
                .scalar()
            ) or 0
            recent_activity = (
                self.db.query(func.count(UserActionLogDB.id))
                .filter(
                    UserActionLogDB.user_id == context.user_id,
                    UserActionLogDB.created_at >= recent_cutoff,
                )
                .scalar()
            ) or 0
            photos_categorized = (
                self.db.query(func.count(PhotoCategorizationDB.id))
                .filter(PhotoCategorizationDB.user_id == context.user_id)
                .scalar()
            ) or 0
            pricing_adjustments = (
                self.db.query(func.count(PricingPatternDB.id))
                .filter(
                    PricingPatternDB.user_id == context.user_id,
                    PricingPatternDB.is_aggregate.is_(False),
                )
                .scalar()
            ) or 0

            has_local_data = False
            if context.zipcode:
                has_local_data = (
                    self.db.query(GeographicPatternDB.id)
                    .filter(
                        GeographicPatternDB.geo_level == GeoLevel.ZIPCODE,
                        GeographicPatternDB.geo_value == context.zipcode,
                    )
                    .first()
                ) is not None
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to get learning insights for user {context.user_id}: {e}")
            return {
                "confidence_level": "low",
                "data_points": 0,
                "has_user_patterns": False,
                "has_local_data": False,
                "tips": ["Keep using the app to improve recommendations"],
                "stats": {
                    "total_actions": 0,
                    "photos_categorized": 0,
                    "pricing_adjustments": 0,
                    "recent_activity": 0,
                },
            }

        data_points = total_actions + photos_categorized * 2 + pricing_adjustments * 3
        has_user_patterns = photos_categorized >= 5 or pricing_adjustments >= 3

        if data_points >= 50 and has_user_patterns:
            confidence_level = "high"
        elif data_points >= 15 or has_user_patterns:
            confidence_level = "medium"
        else:
            confidence_level = "low"

        tips = []
        if photos_categorized < 10:
            tips.append("Categorize more photos to improve photo suggestions")
        if pricing_adjustments < 5:
            tips.append("Complete a few more proposals to learn your pricing style")
        if not has_local_data and context.zipcode:
            tips.append(f"More proposals in {context.city or context.zipcode} will unlock local insights")
        if not tips:
            if confidence_level == "high":
                tips.append("Great job! Recommendations are well-tuned to your style")
            else:
                tips.append("Keep using the app to improve recommendations")

        return {
            "confidence_level": confidence_level,
            "data_points": data_points,
            "has_user_patterns": has_user_patterns,
            "has_local_data": has_local_data,
            "tips": tips,
            "stats": {
                "total_actions": total_actions,
                "photos_categorized": photos_categorized,
                "pricing_adjustments": pricing_adjustments,
                "recent_activity": recent_activity,
            },
        }
