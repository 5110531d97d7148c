"""ScopeGen Learning - Data Models"""
from .learning_models import (
    LearningContext,
    parse_payload,
    PhotoCategorySuggestion,
    ScopeSuggestion,
    PricingSuggestion,
    GeographicInsights,
    LearnedPreferences,
)

__all__ = [
    "LearningContext",
    "parse_payload",
    "PhotoCategorySuggestion",
    "ScopeSuggestion",
    "PricingSuggestion",
    "GeographicInsights",
    "LearnedPreferences",
]
