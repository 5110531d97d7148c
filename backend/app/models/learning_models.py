"""
ScopeGen Learning - Domain Models

Plain dataclasses passed between the action logger, the aggregator,
the recommendation engine and the API layer:

- LearningContext: who/where an action happened
- Action payloads: one small typed shape per action type (stored as JSON)
- Suggestion results returned by the recommendation engine
- LearnedPreferences: the adaptive profile tree
"""
import logging
import math
import re
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Optional, Type, Union, get_args, get_origin

from .db_models import UserActionType

logger = logging.getLogger(__name__)


# =============================================================================
# CONTEXT
# =============================================================================

@dataclass
class LearningContext:
    """Tags attached to every tracked action and every suggestion request."""
    user_id: str
    trade_id: Optional[str] = None
    job_type_id: Optional[str] = None
    zipcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    neighborhood: Optional[str] = None
    proposal_id: Optional[str] = None

    def has_job_context(self) -> bool:
        """Trade and job type are both known."""
        return bool(self.trade_id and self.job_type_id)


# =============================================================================
# ACTION PAYLOADS
# =============================================================================

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _coerce(value: Any, target: Any) -> Any:
    """
    Convert a stored JSON value to a payload field type.

    Raises ValueError when the value cannot represent the type, e.g.
    "ten" for an int or a list for a str. Any passes through untouched.
    """
    if target is Any:
        return value
    if get_origin(target) is Union:
        if value is None:
            return None
        target = next(t for t in get_args(target) if t is not type(None))
    if value is None:
        raise ValueError("null for a required field")

    if target is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValueError(f"not a boolean: {value!r}")

    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"not a scalar: {value!r}")

    if target is str:
        return value if isinstance(value, str) else str(value)

    number = float(value) if isinstance(value, str) else value
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    if target is int:
        if isinstance(number, int):
            return number
        return int(math.floor(number + 0.5))
    return float(number)


@dataclass
class ActionPayload:
    """
    Base for typed payloads.

    Unknown keys are dropped on parse, and so are values that cannot be
    converted to the field type (the field keeps its default).
    """

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        known = {f.name: f.type for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            name = _snake_case(key)
            if name not in known:
                continue
            try:
                values[name] = _coerce(value, known[name])
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(f"Dropping {cls.__name__}.{name}: {e}")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ScopeActionPayload(ActionPayload):
    scope_item: str = ""
    is_from_template: bool = False


@dataclass
class PriceAdjustPayload(ActionPayload):
    suggested_low: float = 0.0
    suggested_high: float = 0.0
    final_low: float = 0.0
    final_high: float = 0.0
    adjustment_percent: Optional[int] = None
    job_size: int = 2


@dataclass
class PhotoCategorizePayload(ActionPayload):
    photo_order: int = 0
    category: Optional[str] = None
    caption: Optional[str] = None
    was_modified: bool = False


@dataclass
class ProposalCreatePayload(ActionPayload):
    photo_count: Optional[int] = None
    scope_count: Optional[int] = None


@dataclass
class OutcomePayload(ActionPayload):
    final_value: Optional[float] = None


@dataclass
class FeedbackPayload(ActionPayload):
    suggestion_type: str = ""
    feedback_type: str = ""
    original_value: Any = None
    new_value: Any = None


@dataclass
class OptionPayload(ActionPayload):
    option_id: str = ""
    value: Any = None


@dataclass
class TemplatePayload(ActionPayload):
    template_id: str = ""


PAYLOAD_TYPES: Dict[UserActionType, Type[ActionPayload]] = {
    UserActionType.PHOTO_CATEGORIZE: PhotoCategorizePayload,
    UserActionType.SCOPE_ADD: ScopeActionPayload,
    UserActionType.SCOPE_REMOVE: ScopeActionPayload,
    UserActionType.SCOPE_EDIT: ScopeActionPayload,
    UserActionType.PRICE_ADJUST: PriceAdjustPayload,
    UserActionType.PRICE_ACCEPT_SUGGESTION: FeedbackPayload,
    UserActionType.PRICE_REJECT_SUGGESTION: FeedbackPayload,
    UserActionType.OPTION_ENABLE: OptionPayload,
    UserActionType.OPTION_DISABLE: OptionPayload,
    UserActionType.OPTION_SELECT: OptionPayload,
    UserActionType.PROPOSAL_CREATE: ProposalCreatePayload,
    UserActionType.PROPOSAL_SEND: ProposalCreatePayload,
    UserActionType.PROPOSAL_WON: OutcomePayload,
    UserActionType.PROPOSAL_LOST: OutcomePayload,
    UserActionType.TEMPLATE_USE: TemplatePayload,
    UserActionType.TEMPLATE_CUSTOMIZE: TemplatePayload,
}


def parse_payload(
    action_type: Union[UserActionType, str],
    data: Union[ActionPayload, Dict[str, Any], None],
) -> ActionPayload:
    """
    Return the typed payload for an action type.

    Accepts an already-typed payload, a snake_case or camelCase dict,
    or None (all defaults). Raises ValueError for an unknown action type.
    """
    payload_cls = PAYLOAD_TYPES[UserActionType(action_type)]
    if isinstance(data, payload_cls):
        return data
    if isinstance(data, ActionPayload):
        data = data.to_dict()
    return payload_cls.from_dict(data)


# =============================================================================
# SUGGESTION RESULTS
# =============================================================================

@dataclass
class PhotoCategorySuggestion:
    category: str
    confidence: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScopeSuggestion:
    """A learned scope change. action is "add" or "consider_removing"."""
    item: str
    action: str
    confidence: int
    reason: str
    win_rate_impact: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PricingSuggestion:
    suggested_low: int
    suggested_high: int
    confidence: int
    adjustment_percent: int
    reason: str
    local_win_rate: Optional[float] = None
    market_position: str = "average"  # below, average, above
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GeographicInsights:
    price_multiplier: float = 1.0
    common_materials: List[str] = field(default_factory=list)
    local_win_rate: Optional[float] = None
    confidence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# ADAPTIVE PROFILE TREE
# =============================================================================

@dataclass
class PricingPreferences:
    default_adjustment: int = 0
    by_job_type: Dict[str, int] = field(default_factory=dict)
    by_region: Dict[str, int] = field(default_factory=dict)
    confidence: int = 0


@dataclass
class ScopePreferences:
    always_add: List[str] = field(default_factory=list)
    always_remove: List[str] = field(default_factory=list)
    add_by_job_type: Dict[str, List[str]] = field(default_factory=dict)
    remove_by_job_type: Dict[str, List[str]] = field(default_factory=dict)
    confidence: int = 0


@dataclass
class PhotoPreferences:
    # JSON object keys are strings, so positions are stored as "1", "2", ...
    category_by_position: Dict[str, str] = field(default_factory=dict)
    captions_by_category: Dict[str, List[str]] = field(default_factory=dict)
    confidence: int = 0


@dataclass
class WorkflowPreferences:
    common_job_types: List[str] = field(default_factory=list)
    common_areas: List[str] = field(default_factory=list)
    avg_photo_count: int = 0
    avg_scope_items: int = 0


@dataclass
class LearnedPreferences:
    pricing: PricingPreferences = field(default_factory=PricingPreferences)
    scope: ScopePreferences = field(default_factory=ScopePreferences)
    photos: PhotoPreferences = field(default_factory=PhotoPreferences)
    workflow: WorkflowPreferences = field(default_factory=WorkflowPreferences)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LearnedPreferences":
        data = data or {}

        def build(section_cls, section):
            known = {f.name for f in fields(section_cls)}
            return section_cls(**{k: v for k, v in (section or {}).items() if k in known})

        return cls(
            pricing=build(PricingPreferences, data.get("pricing")),
            scope=build(ScopePreferences, data.get("scope")),
            photos=build(PhotoPreferences, data.get("photos")),
            workflow=build(WorkflowPreferences, data.get("workflow")),
        )
