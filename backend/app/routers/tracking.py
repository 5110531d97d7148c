"""
ScopeGen Learning - Tracking API Router

Fire-and-forget capture of wizard actions. Malformed requests are
rejected here (400/422); anything that goes wrong while learning is
logged by the services and still answers {"success": true}.
"""
from datetime import timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..models.db_models import UserActionType, PhotoCategory, ProposalOutcome
from ..models.api_models import (
    TrackActionRequest,
    TrackScopeActionRequest,
    TrackPricingRequest,
    TrackPhotoCategoryRequest,
    TrackOutcomeRequest,
    TrackFeedbackRequest,
)
from ..services.learning import ActionLoggerService
from ..services.learning.action_logger import SCOPE_ACTION_TYPES


router = APIRouter(prefix="/learning/track", tags=["learning"])

SUCCESS = {"success": True}


def _invalid(field: str, valid) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail=f"Invalid {field}. Must be one of: {list(valid)}",
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/action", response_model=dict)
async def track_action(
    request: TrackActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Log any tracked action with its payload."""
    try:
        action_type = UserActionType(request.action_type)
    except ValueError:
        raise _invalid("action_type", [a.value for a in UserActionType])

    ActionLoggerService(db).log_action(
        action_type,
        request.to_context(current_user.user_id),
        request.payload,
    )
    return SUCCESS


@router.post("/scope-action", response_model=dict)
async def track_scope_action(
    request: TrackScopeActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Log a scope item add/remove/modify."""
    if request.action not in SCOPE_ACTION_TYPES:
        raise _invalid("action", SCOPE_ACTION_TYPES)

    ActionLoggerService(db).record_scope_action(
        request.to_context(current_user.user_id),
        request.scope_item,
        request.action,
        is_from_template=request.is_from_template,
    )
    return SUCCESS


@router.post("/pricing", response_model=dict)
async def track_pricing(
    request: TrackPricingRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Log the final price band chosen against the suggested one."""
    ActionLoggerService(db).record_pricing_adjustment(
        request.to_context(current_user.user_id),
        suggested_low=request.suggested_low,
        suggested_high=request.suggested_high,
        final_low=request.final_low,
        final_high=request.final_high,
        job_size=request.job_size,
    )
    return SUCCESS


@router.post("/photo-category", response_model=dict)
async def track_photo_category(
    request: TrackPhotoCategoryRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = PhotoCategory(request.category)
    except ValueError:
        raise _invalid("category", [c.value for c in PhotoCategory])

    ActionLoggerService(db).record_photo_category(
        request.to_context(current_user.user_id),
        photo_order=request.photo_order,
        category=category,
        caption=request.caption,
        was_auto_assigned=request.was_auto_assigned,
        was_modified=request.was_modified,
    )
    return SUCCESS


@router.post("/outcome", response_model=dict)
async def track_outcome(
    request: TrackOutcomeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Record a won/lost proposal.

    Back-fills the outcome on the proposal's actions, tags pricing rows
    created within a day of the proposal and bumps scope win/loss counts.
    """
    if request.outcome not in (ProposalOutcome.WON.value, ProposalOutcome.LOST.value):
        raise _invalid("outcome", [ProposalOutcome.WON.value, ProposalOutcome.LOST.value])

    # Stored timestamps are naive UTC
    proposal_created_at = request.proposal_created_at
    if proposal_created_at is not None and proposal_created_at.tzinfo is not None:
        proposal_created_at = proposal_created_at.astimezone(timezone.utc).replace(tzinfo=None)

    ActionLoggerService(db).record_proposal_outcome(
        request.to_context(current_user.user_id),
        request.outcome,
        final_value=request.final_value,
        scope_items=request.scope_items,
        proposal_created_at=proposal_created_at,
    )
    return SUCCESS


@router.post("/feedback", response_model=dict)
async def track_feedback(
    request: TrackFeedbackRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Log whether a suggestion was accepted."""
    ActionLoggerService(db).record_feedback(
        request.to_context(current_user.user_id),
        feedback_type=request.feedback_type,
        suggestion_type=request.suggestion_type,
        original_value=request.original_value,
        new_value=request.new_value,
    )
    return SUCCESS
