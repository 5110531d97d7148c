"""
Pattern Aggregator

Batch job that rolls the raw action log into the summary tables read by
the recommendation engine.

Jobs:
1. scope_patterns      - add/remove/modify counts per (trade, job type, item),
                         added to the stored counters
2. pricing_patterns    - average adjustment per (user, trade, job type, size),
                         overwriting the stored aggregate row
3. geographic_patterns - price multiplier, win rate and common scope items
                         per zipcode/city/state, recomputed wholesale

Scope counters are additive, so the scope job reads only events newer than
its high-watermark; running it twice over the same window counts nothing
twice. Pricing and geographic jobs overwrite, so they simply re-read their
window.

Each job runs on its own: a failure is logged, rolled back and reported in
the run summary, and the remaining jobs still run.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from ...config import (
    SCOPE_AGGREGATION_WINDOW_DAYS,
    PRICING_AGGREGATION_WINDOW_DAYS,
    AGGREGATION_STATEMENT_TIMEOUT_MS,
)
from ...models.db_models import (
    UserActionLogDB,
    ScopeItemPatternDB,
    PricingPatternDB,
    GeographicPatternDB,
    AggregationWatermarkDB,
    UserActionType,
    GeoLevel,
    PatternType,
)
from ...models.learning_models import parse_payload
from .utils import mean, round_half_up


logger = logging.getLogger(__name__)


SCOPE_JOB = "scope_patterns"

SCOPE_COUNTERS = {
    UserActionType.SCOPE_ADD: "added_count",
    UserActionType.SCOPE_REMOVE: "removed_count",
    UserActionType.SCOPE_EDIT: "modified_count",
}

GEO_COLUMNS = (
    (GeoLevel.ZIPCODE, "zipcode"),
    (GeoLevel.CITY, "city"),
    (GeoLevel.STATE, "state"),
)


class PatternAggregator:
    """
    Rebuilds scope, pricing and geographic patterns from the action log.

    Usage:
        aggregator = PatternAggregator(db)
        summary = aggregator.run()
    """

    # Geographic confidence = min(100, samples * CONFIDENCE_PER_SAMPLE)
    CONFIDENCE_PER_SAMPLE = 5

    # Items kept in a common_scope_items pattern
    TOP_SCOPE_ITEMS = 10

    def __init__(self, db: Session):
        self.db = db

    def run(
        self,
        scope_window_days: int = SCOPE_AGGREGATION_WINDOW_DAYS,
        pricing_window_days: int = PRICING_AGGREGATION_WINDOW_DAYS,
    ) -> Dict[str, Any]:
        """
        Run all aggregation jobs.

        Args:
            scope_window_days: Lookback for scope events
            pricing_window_days: Lookback for pricing and geographic events

        Returns:
            Summary of all jobs run
        """
        started_at = datetime.now(timezone.utc)
        results = {
            "started_at": started_at.isoformat(),
            "scope_window_days": scope_window_days,
            "pricing_window_days": pricing_window_days,
            "jobs": {},
        }

        # 1. Scope patterns (watermarked, additive)
        try:
            self._apply_statement_timeout()
            scope_result = self.aggregate_scope_patterns(window_days=scope_window_days)
            results["jobs"]["scope_patterns"] = {"status": "success", **scope_result}
            logger.info(f"Scope pattern aggregation complete: {scope_result}")
        except Exception as e:
            self.db.rollback()
            self._record_watermark_failure(SCOPE_JOB)
            results["jobs"]["scope_patterns"] = {"status": "error", "error": str(e)}
            logger.error(f"Scope pattern aggregation failed: {e}")

        # 2. Pricing patterns (overwrite)
        try:
            self._apply_statement_timeout()
            pricing_result = self.aggregate_pricing_patterns(window_days=pricing_window_days)
            results["jobs"]["pricing_patterns"] = {"status": "success", **pricing_result}
            logger.info(f"Pricing pattern aggregation complete: {pricing_result}")
        except Exception as e:
            self.db.rollback()
            results["jobs"]["pricing_patterns"] = {"status": "error", "error": str(e)}
            logger.error(f"Pricing pattern aggregation failed: {e}")

        # 3. Geographic patterns (wholesale recompute)
        try:
            self._apply_statement_timeout()
            geo_result = self.aggregate_geographic_patterns(window_days=pricing_window_days)
            results["jobs"]["geographic_patterns"] = {"status": "success", **geo_result}
            logger.info(f"Geographic pattern aggregation complete: {geo_result}")
        except Exception as e:
            self.db.rollback()
            results["jobs"]["geographic_patterns"] = {"status": "error", "error": str(e)}
            logger.error(f"Geographic pattern aggregation failed: {e}")

        completed_at = datetime.now(timezone.utc)
        results["completed_at"] = completed_at.isoformat()
        results["duration_seconds"] = (completed_at - started_at).total_seconds()

        return results

    def _apply_statement_timeout(self) -> None:
        if AGGREGATION_STATEMENT_TIMEOUT_MS <= 0:
            return
        if self.db.get_bind().dialect.name != "postgresql":
            return
        self.db.execute(text(f"SET LOCAL statement_timeout = {int(AGGREGATION_STATEMENT_TIMEOUT_MS)}"))

    # =========================================================================
    # WATERMARKS
    # =========================================================================

    def _get_watermark(self, job_name: str) -> AggregationWatermarkDB:
        watermark = (
            self.db.query(AggregationWatermarkDB)
            .filter(AggregationWatermarkDB.job_name == job_name)
            .first()
        )
        if watermark is None:
            watermark = AggregationWatermarkDB(job_name=job_name)
            self.db.add(watermark)
        return watermark

    def _record_watermark_failure(self, job_name: str) -> None:
        try:
            watermark = self._get_watermark(job_name)
            watermark.last_run_at = datetime.utcnow()
            watermark.last_run_status = "error"
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not record failure for {job_name}: {e}")

    # =========================================================================
    # JOB 1: SCOPE PATTERNS
    # =========================================================================

    def aggregate_scope_patterns(self, window_days: int = SCOPE_AGGREGATION_WINDOW_DAYS) -> Dict[str, Any]:
        """
        Add scope event counts since the watermark into scope_item_patterns.

        Returns:
            events_processed, patterns_updated, patterns_created, watermark
        """
        now = datetime.utcnow()
        window_start = now - timedelta(days=window_days)
        watermark = self._get_watermark(SCOPE_JOB)

        query = self.db.query(UserActionLogDB).filter(
            UserActionLogDB.action_type.in_(list(SCOPE_COUNTERS)),
            UserActionLogDB.created_at > window_start,
            UserActionLogDB.created_at <= now,
        )
        if watermark.last_processed_at is not None:
            query = query.filter(UserActionLogDB.created_at > watermark.last_processed_at)
        events = query.order_by(UserActionLogDB.created_at).all()

        # (trade, job type, item) -> {counter column: count}
        counts: Dict[Tuple[str, str, str], Counter] = defaultdict(Counter)
        from_template: Dict[Tuple[str, str, str], bool] = defaultdict(bool)
        newest: Optional[datetime] = None

        for event in events:
            newest = event.created_at
            payload = parse_payload(event.action_type, event.payload)
            if not (event.trade_id and event.job_type_id and payload.scope_item):
                continue
            key = (event.trade_id, event.job_type_id, payload.scope_item)
            counts[key][SCOPE_COUNTERS[event.action_type]] += 1
            from_template[key] = from_template[key] or payload.is_from_template

        created = 0
        updated = 0
        for (trade_id, job_type_id, scope_item), counter in counts.items():
            pattern = (
                self.db.query(ScopeItemPatternDB)
                .filter(
                    ScopeItemPatternDB.trade_id == trade_id,
                    ScopeItemPatternDB.job_type_id == job_type_id,
                    ScopeItemPatternDB.scope_item == scope_item,
                    ScopeItemPatternDB.zipcode.is_(None),
                )
                .first()
            )
            if pattern is None:
                pattern = ScopeItemPatternDB(
                    trade_id=trade_id,
                    job_type_id=job_type_id,
                    scope_item=scope_item,
                    zipcode=None,
                    added_count=0,
                    removed_count=0,
                    modified_count=0,
                    won_with_item=0,
                    lost_with_item=0,
                    is_from_template=False,
                    created_at=now,
                )
                self.db.add(pattern)
                created += 1
            else:
                updated += 1

            pattern.added_count = (pattern.added_count or 0) + counter["added_count"]
            pattern.removed_count = (pattern.removed_count or 0) + counter["removed_count"]
            pattern.modified_count = (pattern.modified_count or 0) + counter["modified_count"]
            pattern.is_from_template = bool(pattern.is_from_template) or from_template[(trade_id, job_type_id, scope_item)]
            pattern.updated_at = now

        if newest is not None:
            watermark.last_processed_at = newest
        watermark.last_run_at = now
        watermark.last_run_status = "success"

        self.db.commit()

        return {
            "events_processed": len(events),
            "patterns_created": created,
            "patterns_updated": updated,
            "watermark": watermark.last_processed_at.isoformat() if watermark.last_processed_at else None,
        }

    # =========================================================================
    # JOB 2: PRICING PATTERNS
    # =========================================================================

    def aggregate_pricing_patterns(self, window_days: int = PRICING_AGGREGATION_WINDOW_DAYS) -> Dict[str, int]:
        """Overwrite per (user, trade, job type, job size) average adjustments."""
        now = datetime.utcnow()
        window_start = now - timedelta(days=window_days)

        events = (
            self.db.query(UserActionLogDB)
            .filter(
                UserActionLogDB.action_type == UserActionType.PRICE_ADJUST,
                UserActionLogDB.created_at > window_start,
            )
            .all()
        )

        groups: Dict[Tuple[str, str, str, int], List[int]] = defaultdict(list)
        for event in events:
            if not (event.trade_id and event.job_type_id):
                continue
            payload = parse_payload(event.action_type, event.payload)
            if payload.adjustment_percent is None:
                continue
            key = (event.user_id, event.trade_id, event.job_type_id, payload.job_size or 2)
            groups[key].append(payload.adjustment_percent)

        written = 0
        for (user_id, trade_id, job_type_id, job_size), adjustments in groups.items():
            aggregate = (
                self.db.query(PricingPatternDB)
                .filter(
                    PricingPatternDB.is_aggregate.is_(True),
                    PricingPatternDB.user_id == user_id,
                    PricingPatternDB.trade_id == trade_id,
                    PricingPatternDB.job_type_id == job_type_id,
                    PricingPatternDB.job_size == job_size,
                )
                .first()
            )
            if aggregate is None:
                aggregate = PricingPatternDB(
                    user_id=user_id,
                    trade_id=trade_id,
                    job_type_id=job_type_id,
                    job_size=job_size,
                    is_aggregate=True,
                    created_at=now,
                )
                self.db.add(aggregate)

            aggregate.adjustment_percent = round_half_up(mean(adjustments))
            aggregate.sample_count = len(adjustments)
            aggregate.updated_at = now
            written += 1

        self.db.commit()

        return {"events_processed": len(events), "aggregates_written": written}

    # =========================================================================
    # JOB 3: GEOGRAPHIC PATTERNS
    # =========================================================================

    def _confidence(self, sample_count: int) -> int:
        return min(100, sample_count * self.CONFIDENCE_PER_SAMPLE)

    def aggregate_geographic_patterns(self, window_days: int = PRICING_AGGREGATION_WINDOW_DAYS) -> Dict[str, int]:
        """
        Recompute geographic patterns from scratch for the window.

        price_multiplier: 1 + avg adjustment / 100 (per geo value and trade)
        win_rate: won / (won + lost), 0-1
        common_scope_items: most added scope items per zipcode
        """
        now = datetime.utcnow()
        window_start = now - timedelta(days=window_days)

        events = (
            self.db.query(UserActionLogDB)
            .filter(
                UserActionLogDB.action_type.in_([
                    UserActionType.PRICE_ADJUST,
                    UserActionType.PROPOSAL_WON,
                    UserActionType.PROPOSAL_LOST,
                    UserActionType.SCOPE_ADD,
                ]),
                UserActionLogDB.created_at > window_start,
            )
            .all()
        )

        adjustments: Dict[Tuple[GeoLevel, str, Optional[str]], List[int]] = defaultdict(list)
        outcomes: Dict[Tuple[GeoLevel, str], Counter] = defaultdict(Counter)
        scope_items: Dict[str, Counter] = defaultdict(Counter)

        for event in events:
            for level, column in GEO_COLUMNS:
                geo_value = getattr(event, column)
                if not geo_value:
                    continue
                if event.action_type == UserActionType.PRICE_ADJUST:
                    payload = parse_payload(event.action_type, event.payload)
                    if payload.adjustment_percent is not None:
                        adjustments[(level, geo_value, event.trade_id)].append(payload.adjustment_percent)
                elif event.action_type in (UserActionType.PROPOSAL_WON, UserActionType.PROPOSAL_LOST):
                    outcomes[(level, geo_value)][event.action_type] += 1

            if event.action_type == UserActionType.SCOPE_ADD and event.zipcode:
                payload = parse_payload(event.action_type, event.payload)
                if payload.scope_item:
                    scope_items[event.zipcode][payload.scope_item] += 1

        new_patterns: List[GeographicPatternDB] = []

        for (level, geo_value, trade_id), values in adjustments.items():
            new_patterns.append(GeographicPatternDB(
                geo_level=level,
                geo_value=geo_value,
                trade_id=trade_id,
                pattern_type=PatternType.PRICE_MULTIPLIER,
                pattern_value={"value": round(1 + mean(values) / 100, 4)},
                sample_count=len(values),
                confidence=self._confidence(len(values)),
                computed_at=now,
            ))

        for (level, geo_value), counter in outcomes.items():
            won = counter[UserActionType.PROPOSAL_WON]
            total = won + counter[UserActionType.PROPOSAL_LOST]
            new_patterns.append(GeographicPatternDB(
                geo_level=level,
                geo_value=geo_value,
                pattern_type=PatternType.WIN_RATE,
                pattern_value={"value": round(won / total, 4)},
                sample_count=total,
                confidence=self._confidence(total),
                computed_at=now,
            ))

        for zipcode, counter in scope_items.items():
            top = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:self.TOP_SCOPE_ITEMS]
            sample_count = sum(counter.values())
            new_patterns.append(GeographicPatternDB(
                geo_level=GeoLevel.ZIPCODE,
                geo_value=zipcode,
                pattern_type=PatternType.COMMON_SCOPE_ITEMS,
                pattern_value={"items": [item for item, _ in top]},
                sample_count=sample_count,
                confidence=self._confidence(sample_count),
                computed_at=now,
            ))

        # Wholesale replace of the pattern types this job owns
        removed = (
            self.db.query(GeographicPatternDB)
            .filter(GeographicPatternDB.pattern_type.in_([
                PatternType.PRICE_MULTIPLIER,
                PatternType.WIN_RATE,
                PatternType.COMMON_SCOPE_ITEMS,
            ]))
            .delete(synchronize_session=False)
        )
        self.db.add_all(new_patterns)
        self.db.commit()

        return {"patterns_replaced": removed, "patterns_written": len(new_patterns)}


def run_learning_aggregation(
    db: Session,
    scope_window_days: int = SCOPE_AGGREGATION_WINDOW_DAYS,
    pricing_window_days: int = PRICING_AGGREGATION_WINDOW_DAYS,
) -> Dict[str, Any]:
    """
    Convenience function to run the learning aggregation.

    Args:
        db: Database session
        scope_window_days: Lookback for scope events
        pricing_window_days: Lookback for pricing and geographic events

    Returns:
        Summary of all jobs run
    """
    aggregator = PatternAggregator(db)
    return aggregator.run(
        scope_window_days=scope_window_days,
        pricing_window_days=pricing_window_days,
    )
