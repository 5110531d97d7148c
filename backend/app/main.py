"""
ScopeGen Learning - FastAPI Application

Main entry point for the ScopeGen learning backend.

Pipeline:
- Wizard actions → ActionLogger → user_action_log
- user_action_log → PatternAggregator (batch) → pattern tables
- pattern tables → RecommendationEngine → suggestions
- user_action_log → AdaptiveProfile → per-user learned profile
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import LOG_LEVEL, CORS_ORIGINS, AUTO_CREATE_TABLES
from .routers import tracking_router, suggestions_router, profile_router, scheduler_router
from .database import init_db


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    if AUTO_CREATE_TABLES:
        init_db()
        logger.info("Learning tables ready")
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="ScopeGen Learning API",
    description="""
    ScopeGen Learning - Adaptive Scope and Pricing Recommendations

    Learns from how contractors build proposals and feeds that back as
    suggestions for photos, scope items and pricing.

    ## Pipeline
    1. **Capture**: wizard actions are logged append-only (fail-open)
    2. **Aggregate**: a batch job rolls the log into pattern tables
    3. **Recommend**: suggestions read the patterns, with defaults when data is thin
    4. **Adapt**: each user's learned profile is kept server-side

    ## Key Principles
    - Learning never blocks or fails a user request
    - Confidence scores are 0-100 and deterministic
    - Suggestions are reads; calling them twice changes nothing
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)

# Include routers
app.include_router(tracking_router)
app.include_router(suggestions_router)
app.include_router(profile_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "ScopeGen Learning API",
        "version": "1.0.0",
        "description": "Adaptive scope and pricing recommendations",
        "docs": "/docs",
        "pipeline": {
            "capture": "/learning/track/*",
            "recommend": "/learning/*",
            "profile": "/learning/profile",
            "aggregate": "/internal/learning/aggregate",
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
