"""
ScopeGen Learning Pipeline

Capture -> aggregate -> recommend.
- ActionLoggerService writes the action log (fail-open)
- PatternAggregator rolls the log into pattern tables (batch)
- RecommendationEngine reads patterns back as suggestions
- AdaptiveProfileService keeps the per-user learned profile
"""

from .action_logger import ActionLoggerService, calculate_adjustment_percent
from .adaptive_profile import AdaptiveProfile, AdaptiveProfileService
from .pattern_aggregator import PatternAggregator, run_learning_aggregation
from .recommendation_engine import RecommendationEngine
from .construction_knowledge import (
    JobTypeKnowledge,
    RequiredComponent,
    get_job_knowledge,
    get_missing_components,
    get_completion_items,
    enhance_scope_with_knowledge,
)
from .auto_enhance import auto_enhance_scope, auto_enhance_photos

__all__ = [
    "ActionLoggerService",
    "calculate_adjustment_percent",
    "AdaptiveProfile",
    "AdaptiveProfileService",
    "PatternAggregator",
    "run_learning_aggregation",
    "RecommendationEngine",
    "JobTypeKnowledge",
    "RequiredComponent",
    "get_job_knowledge",
    "get_missing_components",
    "get_completion_items",
    "enhance_scope_with_knowledge",
    "auto_enhance_scope",
    "auto_enhance_photos",
]
