"""
ScopeGen Learning - API Request Models

Pydantic bodies shared by the learning routers. Every request carries the
same optional job/location tags; the user id always comes from the token.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .learning_models import LearningContext


class ContextRequest(BaseModel):
    """Job and location tags common to all learning requests."""
    trade_id: Optional[str] = None
    job_type_id: Optional[str] = None
    zipcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    neighborhood: Optional[str] = None
    proposal_id: Optional[str] = None

    def to_context(self, user_id: str) -> LearningContext:
        return LearningContext(
            user_id=user_id,
            trade_id=self.trade_id,
            job_type_id=self.job_type_id,
            zipcode=self.zipcode,
            city=self.city,
            state=self.state,
            neighborhood=self.neighborhood,
            proposal_id=self.proposal_id,
        )


# =============================================================================
# TRACKING
# =============================================================================

class TrackActionRequest(ContextRequest):
    action_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class TrackScopeActionRequest(ContextRequest):
    trade_id: str = Field(..., min_length=1)
    job_type_id: str = Field(..., min_length=1)
    scope_item: str = Field(..., min_length=1)
    action: str  # add, remove, modify
    is_from_template: bool = False


class TrackPricingRequest(ContextRequest):
    trade_id: str = Field(..., min_length=1)
    job_type_id: str = Field(..., min_length=1)
    suggested_low: float = 0
    suggested_high: float = 0
    final_low: float
    final_high: float
    job_size: int = Field(2, ge=1, le=3)


class TrackPhotoCategoryRequest(ContextRequest):
    photo_order: int = Field(..., ge=1)
    category: str
    caption: Optional[str] = None
    was_auto_assigned: bool = False
    was_modified: bool = False


class TrackOutcomeRequest(ContextRequest):
    proposal_id: str = Field(..., min_length=1)
    outcome: str  # won, lost
    final_value: Optional[float] = None
    scope_items: List[str] = Field(default_factory=list)
    proposal_created_at: Optional[datetime] = None


class TrackFeedbackRequest(ContextRequest):
    suggestion_type: str
    feedback_type: str  # accepted, rejected, modified
    original_value: Any = None
    new_value: Any = None


# =============================================================================
# SUGGESTIONS
# =============================================================================

class PhotoSuggestionRequest(ContextRequest):
    photo_order: int = Field(..., ge=1)


class PhotoSuggestionsRequest(ContextRequest):
    photo_count: int = Field(..., ge=0, le=50)


class CaptionSuggestionRequest(ContextRequest):
    category: str


class ScopeSuggestionRequest(ContextRequest):
    current_scope: List[str] = Field(default_factory=list)


class PricingSuggestionRequest(ContextRequest):
    trade_id: str = Field(..., min_length=1)
    job_type_id: str = Field(..., min_length=1)
    base_price_low: float
    base_price_high: float
    job_size: int = Field(2, ge=1, le=3)


class ProposalRecommendationsRequest(ContextRequest):
    photo_count: int = Field(0, ge=0, le=50)
    current_scope: List[str] = Field(default_factory=list)
    base_price_low: float = 0
    base_price_high: float = 0
    job_size: int = Field(2, ge=1, le=3)
