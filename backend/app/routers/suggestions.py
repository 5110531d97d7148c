"""
ScopeGen Learning - Suggestions API Router

Read endpoints used while a proposal is being built. Each one answers
from learned patterns when there is enough data and from defaults
otherwise; a learning failure never turns into a 5xx.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..models.db_models import PhotoCategory
from ..models.api_models import (
    ContextRequest,
    PhotoSuggestionRequest,
    PhotoSuggestionsRequest,
    CaptionSuggestionRequest,
    ScopeSuggestionRequest,
    PricingSuggestionRequest,
    ProposalRecommendationsRequest,
)
from ..services.learning import (
    RecommendationEngine,
    AdaptiveProfileService,
    get_job_knowledge,
    auto_enhance_scope,
    auto_enhance_photos,
)


router = APIRouter(prefix="/learning", tags=["learning"])


# =============================================================================
# PHOTOS
# =============================================================================

@router.post("/photo-suggestion", response_model=dict)
async def photo_suggestion(
    request: PhotoSuggestionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Suggested category for one photo position."""
    engine = RecommendationEngine(db)
    suggestion = engine.suggest_photo_category(
        request.to_context(current_user.user_id),
        request.photo_order,
    )
    return suggestion.to_dict()


@router.post("/photo-suggestions", response_model=dict)
async def photo_suggestions(
    request: PhotoSuggestionsRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Suggested category and caption for every photo, plus knowledge-base defaults."""
    engine = RecommendationEngine(db)
    context = request.to_context(current_user.user_id)

    defaults = None
    if request.job_type_id:
        defaults = auto_enhance_photos(request.job_type_id, request.photo_count).to_dict()

    return {
        "suggestions": engine.get_smart_photo_suggestions(context, request.photo_count),
        "knowledge_defaults": defaults,
    }


@router.post("/caption-suggestions", response_model=dict)
async def caption_suggestions(
    request: CaptionSuggestionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = PhotoCategory(request.category)
    except ValueError:
        valid = [c.value for c in PhotoCategory]
        raise HTTPException(status_code=400, detail=f"Invalid category. Must be one of: {valid}")

    engine = RecommendationEngine(db)
    return engine.get_caption_suggestions(
        request.to_context(current_user.user_id),
        category.value,
    )


# =============================================================================
# SCOPE
# =============================================================================

@router.post("/scope-suggestions", response_model=dict)
async def scope_suggestions(
    request: ScopeSuggestionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Learned additions/removals for the trade and job type.

    Commonly forgotten essentials are appended to the additions when the
    learned data leaves room for them.
    """
    engine = RecommendationEngine(db)
    context = request.to_context(current_user.user_id)

    learned = engine.get_scope_suggestions(context, request.current_scope)
    additions = learned["additions"]
    suggested = {s.item.lower() for s in additions}
    for essential in engine.get_missing_essentials(context, request.current_scope):
        if essential.item.lower() not in suggested:
            additions.append(essential)

    return {
        "additions": [s.to_dict() for s in additions[:engine.MAX_ADDITIONS]],
        "removals": [s.to_dict() for s in learned["removals"]],
    }


@router.post("/smart-scope", response_model=dict)
async def smart_scope(
    request: ScopeSuggestionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Learned suggestions merged with construction knowledge and the user's profile."""
    engine = RecommendationEngine(db)
    context = request.to_context(current_user.user_id)

    result = engine.get_smart_scope_suggestions(context, request.current_scope)

    if request.job_type_id:
        result["auto_enhance"] = auto_enhance_scope(request.job_type_id, request.current_scope).to_dict()

    result["profile"] = AdaptiveProfileService(db).get_learned_scope_modifications(
        current_user.user_id,
        request.current_scope,
        request.job_type_id,
    )
    return result


@router.get("/knowledge/{job_type_id}", response_model=dict)
async def job_knowledge(
    job_type_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Static construction knowledge for a job type."""
    knowledge = get_job_knowledge(job_type_id)
    if knowledge is None:
        raise HTTPException(status_code=404, detail=f"No knowledge for job type '{job_type_id}'")
    return knowledge.to_dict()


# =============================================================================
# PRICING
# =============================================================================

@router.post("/pricing-suggestion", response_model=dict)
async def pricing_suggestion(
    request: PricingSuggestionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Adjusted price band with the reasoning behind it."""
    if request.base_price_high < request.base_price_low:
        raise HTTPException(status_code=400, detail="base_price_high must be >= base_price_low")

    engine = RecommendationEngine(db)
    context = request.to_context(current_user.user_id)

    suggestion = engine.get_pricing_suggestion(
        context,
        request.base_price_low,
        request.base_price_high,
        request.job_size,
    )
    geo = engine.get_geographic_insights(context)

    return {
        **suggestion.to_dict(),
        "breakdown": {
            "base_low": request.base_price_low,
            "base_high": request.base_price_high,
            "adjustment_percent": suggestion.adjustment_percent,
            "geo_multiplier": geo.price_multiplier,
        },
        "learned_adjustment": AdaptiveProfileService(db).get_learned_pricing_adjustment(
            current_user.user_id,
            request.job_type_id,
            request.zipcode,
        ),
    }


# =============================================================================
# BUNDLES
# =============================================================================

@router.post("/recommendations", response_model=dict)
async def proposal_recommendations(
    request: ProposalRecommendationsRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    engine = RecommendationEngine(db)
    return engine.get_proposal_recommendations(
        request.to_context(current_user.user_id),
        photo_count=request.photo_count,
        current_scope=request.current_scope,
        base_low=request.base_price_low,
        base_high=request.base_price_high,
        job_size=request.job_size,
    )


@router.post("/insights", response_model=dict)
async def learning_insights(
    request: ContextRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """How well the system knows this user, with tips and geographic insights."""
    engine = RecommendationEngine(db)
    context = request.to_context(current_user.user_id)

    insights = engine.get_learning_insights(context)
    insights["geographic"] = engine.get_geographic_insights(context).to_dict()
    return insights
