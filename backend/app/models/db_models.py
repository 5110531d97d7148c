"""
ScopeGen Learning - SQLAlchemy ORM Models
PostgreSQL tables for the learning pipeline: the raw action log, the
summary tables the aggregator maintains, and the per-user adaptive profile.
"""
from datetime import datetime
from enum import Enum
from uuid import uuid4
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, Boolean,
    Enum as SQLEnum, Index, UniqueConstraint,
)
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class UserActionType(str, Enum):
    """Tracked UI actions. Values are what clients send and what is stored."""
    PHOTO_CATEGORIZE = "photo_categorize"
    SCOPE_ADD = "scope_add"
    SCOPE_REMOVE = "scope_remove"
    SCOPE_EDIT = "scope_edit"
    PRICE_ADJUST = "price_adjust"
    PRICE_ACCEPT_SUGGESTION = "price_accept_suggestion"
    PRICE_REJECT_SUGGESTION = "price_reject_suggestion"
    OPTION_ENABLE = "option_enable"
    OPTION_DISABLE = "option_disable"
    OPTION_SELECT = "option_select"
    PROPOSAL_CREATE = "proposal_create"
    PROPOSAL_SEND = "proposal_send"
    PROPOSAL_WON = "proposal_won"
    PROPOSAL_LOST = "proposal_lost"
    TEMPLATE_USE = "template_use"
    TEMPLATE_CUSTOMIZE = "template_customize"


class ProposalOutcome(str, Enum):
    """Fate of a proposal, back-filled onto the action log."""
    WON = "won"
    LOST = "lost"
    PENDING = "pending"


class PhotoCategory(str, Enum):
    """Categories a proposal photo can be filed under."""
    HERO = "hero"
    EXISTING = "existing"
    SHOWER = "shower"
    VANITY = "vanity"
    FLOORING = "flooring"
    TUB = "tub"
    TOILET = "toilet"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    DAMAGE = "damage"
    KITCHEN = "kitchen"
    CABINETS = "cabinets"
    COUNTERTOPS = "countertops"
    ROOFING = "roofing"
    SIDING = "siding"
    WINDOWS = "windows"
    HVAC = "hvac"
    OTHER = "other"


class GeoLevel(str, Enum):
    """Granularity of a geographic pattern."""
    STATE = "state"
    CITY = "city"
    ZIPCODE = "zipcode"
    NEIGHBORHOOD = "neighborhood"


class PatternType(str, Enum):
    """Kinds of geographic pattern the aggregator can store."""
    AVG_PRICE = "avg_price"
    PRICE_MULTIPLIER = "price_multiplier"
    COMMON_SCOPE_ITEMS = "common_scope_items"
    COMMON_MATERIALS = "common_materials"
    WIN_RATE = "win_rate"
    COMMON_OPTIONS = "common_options"


def _value_enum(enum_cls):
    """Enum column persisted by value ("scope_add"), as plain VARCHAR."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=40,
    )


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# RAW ACTION LOG
# =============================================================================

class UserActionLogDB(Base):
    """
    One row per tracked user action.

    Append-only. Only outcome_type / outcome_value are written after insert,
    once, when the proposal closes. Rows are never deleted and never
    deduplicated: repetition is the signal.
    """
    __tablename__ = "user_action_log"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    user_id = Column(String(36), nullable=False, index=True)
    action_type = Column(_value_enum(UserActionType), nullable=False)

    # Context tags
    proposal_id = Column(String(36), nullable=True, index=True)
    trade_id = Column(String(100), nullable=True)
    job_type_id = Column(String(100), nullable=True)
    zipcode = Column(String(10), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    neighborhood = Column(String(100), nullable=True)

    # Typed payload, serialized (see learning_models.parse_payload)
    payload = Column(JSON, nullable=True, default=dict)

    # Back-filled when the proposal is won/lost
    outcome_type = Column(_value_enum(ProposalOutcome), nullable=True)
    outcome_value = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_user_action_log_type_created", "action_type", "created_at"),
        Index("ix_user_action_log_user_created", "user_id", "created_at"),
    )


# =============================================================================
# SUMMARY TABLES (written by the aggregator)
# =============================================================================

class ScopeItemPatternDB(Base):
    """
    Running add/remove counters per (trade, job type, scope item, zip).

    Counters only ever increase.
    """
    __tablename__ = "scope_item_patterns"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    trade_id = Column(String(100), nullable=False)
    job_type_id = Column(String(100), nullable=False)
    scope_item = Column(String(500), nullable=False)
    zipcode = Column(String(10), nullable=True)  # NULL = not zip-specific

    added_count = Column(Integer, default=0, nullable=False)
    removed_count = Column(Integer, default=0, nullable=False)
    modified_count = Column(Integer, default=0, nullable=False)
    won_with_item = Column(Integer, default=0, nullable=False)
    lost_with_item = Column(Integer, default=0, nullable=False)
    is_from_template = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_scope_item_patterns_trade_job", "trade_id", "job_type_id"),
    )


class PricingPatternDB(Base):
    """
    Price adjustments.

    is_aggregate=False: one row per recorded adjustment (what suggestions read).
    is_aggregate=True: per (user, trade, job type, job size) average written
    by the aggregator; overwritten every run, user_id may be NULL.
    """
    __tablename__ = "pricing_patterns"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    user_id = Column(String(36), nullable=True, index=True)
    trade_id = Column(String(100), nullable=False)
    job_type_id = Column(String(100), nullable=False)
    job_size = Column(Integer, default=2, nullable=False)  # 1 small, 2 medium, 3 large
    zipcode = Column(String(10), nullable=True, index=True)

    suggested_price_low = Column(Float, nullable=True)
    suggested_price_high = Column(Float, nullable=True)
    final_price_low = Column(Float, nullable=True)
    final_price_high = Column(Float, nullable=True)
    adjustment_percent = Column(Integer, default=0, nullable=False)

    outcome = Column(_value_enum(ProposalOutcome), nullable=True)

    is_aggregate = Column(Boolean, default=False, nullable=False)
    sample_count = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_pricing_patterns_lookup", "trade_id", "job_type_id", "job_size"),
    )


class GeographicPatternDB(Base):
    """
    Location-level patterns (price multiplier, win rate, common items).

    Recomputed wholesale by the aggregator, never merged.
    """
    __tablename__ = "geographic_patterns"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    geo_level = Column(_value_enum(GeoLevel), nullable=False)
    geo_value = Column(String(100), nullable=False)
    trade_id = Column(String(100), nullable=True)
    job_type_id = Column(String(100), nullable=True)
    pattern_type = Column(_value_enum(PatternType), nullable=False)

    pattern_value = Column(JSON, nullable=True)  # {"value": ...} or list payloads
    sample_count = Column(Integer, default=0, nullable=False)
    confidence = Column(Integer, default=0, nullable=False)  # 0-100

    computed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_geographic_patterns_lookup", "geo_level", "geo_value", "pattern_type"),
    )


# =============================================================================
# PHOTO LEARNING
# =============================================================================

class PhotoCategorizationDB(Base):
    """One row per photo categorization (position-based learning)."""
    __tablename__ = "photo_categorization_learning"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    user_id = Column(String(36), nullable=False, index=True)
    trade_id = Column(String(100), nullable=True)
    job_type_id = Column(String(100), nullable=True)

    photo_order = Column(Integer, nullable=False)  # 1-based upload position
    assigned_category = Column(_value_enum(PhotoCategory), nullable=False)
    assigned_caption = Column(Text, nullable=True)

    was_auto_assigned = Column(Boolean, default=False)
    was_modified = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_photo_learning_position", "trade_id", "job_type_id", "photo_order"),
    )


# =============================================================================
# ADAPTIVE PROFILE
# =============================================================================

class UserLearnedPreferencesDB(Base):
    """
    The authoritative adaptive profile, one row per user.

    is_adapted / days_active / overall confidence are derived on read from
    first_seen and total_actions and are deliberately not stored.
    profile_version increments on every write so clients can revalidate
    a cached copy.
    """
    __tablename__ = "user_learned_preferences"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    user_id = Column(String(36), nullable=False, unique=True, index=True)

    first_seen = Column(DateTime, nullable=False, default=datetime.utcnow)
    total_actions = Column(Integer, default=0, nullable=False)
    preferences = Column(JSON, nullable=False, default=dict)  # LearnedPreferences.to_dict()
    profile_version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


class AggregationWatermarkDB(Base):
    """
    High-watermark per aggregation job.

    Scope counters are additive, so the scope job only consumes events
    newer than last_processed_at.
    """
    __tablename__ = "aggregation_watermarks"

    id = Column(String(36), primary_key=True, default=_new_id)  # UUID
    job_name = Column(String(50), nullable=False)
    last_processed_at = Column(DateTime, nullable=True)
    last_run_at = Column(DateTime, nullable=True)
    last_run_status = Column(String(20), nullable=True)  # success, error

    __table_args__ = (
        UniqueConstraint("job_name", name="uq_aggregation_watermarks_job"),
    )
