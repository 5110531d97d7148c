"""
Scheduler API Routes

Internal endpoints for system-automatic tasks.
Learning aggregation (scope, pricing and geographic patterns).
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Header, Query
from sqlalchemy.orm import Session

from ..config import (
    INTERNAL_API_KEY,
    SCOPE_AGGREGATION_WINDOW_DAYS,
    PRICING_AGGREGATION_WINDOW_DAYS,
)
from ..database import get_db
from ..models.db_models import AggregationWatermarkDB
from ..services.learning import run_learning_aggregation


router = APIRouter(prefix="/internal/learning", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/aggregate", response_model=dict)
async def run_aggregation(
    scope_window_days: int = Query(SCOPE_AGGREGATION_WINDOW_DAYS, ge=1),
    pricing_window_days: int = Query(PRICING_AGGREGATION_WINDOW_DAYS, ge=1),
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Run the learning aggregation.

    System-automatic - normally triggered by cron.
    Each job reports its own status; one failing job does not stop the rest.
    """
    summary = run_learning_aggregation(
        db,
        scope_window_days=scope_window_days,
        pricing_window_days=pricing_window_days,
    )

    return {
        "task": "learning_aggregation",
        "run_date": datetime.now(timezone.utc).isoformat(),
        **summary,
    }


@router.get("/watermarks", response_model=dict)
async def get_watermarks(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Get aggregation watermarks for monitoring.
    """
    watermarks = db.query(AggregationWatermarkDB).all()

    return {
        "count": len(watermarks),
        "watermarks": [
            {
                "job_name": w.job_name,
                "last_processed_at": w.last_processed_at.isoformat() if w.last_processed_at else None,
                "last_run_at": w.last_run_at.isoformat() if w.last_run_at else None,
                "last_run_status": w.last_run_status,
            }
            for w in watermarks
        ],
    }
