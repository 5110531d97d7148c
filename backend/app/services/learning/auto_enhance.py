"""
Auto-Enhance

Fills in what a proposal usually needs, straight from the construction
knowledge base: missing materials/labor lines, essential completion (and
optionally prep) steps, oversight warnings, and positional photo categories.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Set

from .construction_knowledge import (
    ALWAYS,
    TYPICALLY,
    RequiredComponent,
    get_job_knowledge,
    get_missing_components,
)


ESSENTIAL_COMPLETION_KEYWORDS = [
    "test", "leak", "clean", "debris", "inspection",
    "walkthrough", "disposal", "haul",
]

ESSENTIAL_PREP_KEYWORDS = [
    "protect", "turn off", "disconnect", "shut off",
    "permit", "clear",
]

MAX_WARNINGS = 5

# Photo categories worth asking for, per trade
TRADE_PHOTO_CATEGORIES: Dict[str, List[str]] = {
    "Plumbing": ["plumbing", "damage"],
    "Bathroom": ["shower", "vanity", "flooring", "toilet"],
    "Kitchen": ["cabinets", "countertops", "plumbing"],
    "Flooring": ["flooring", "damage"],
    "Electrical": ["electrical"],
    "HVAC": ["hvac"],
    "Roofing": ["roofing", "damage"],
    "Windows": ["windows"],
}

_WORD_SPLIT = re.compile(r"[\s,/()]+")


@dataclass
class ScopeEnhancement:
    additions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sources: Dict[str, str] = field(default_factory=dict)  # item -> "knowledge"

    def to_dict(self) -> Dict:
        return {
            "additions": self.additions,
            "warnings": self.warnings,
            "sources": self.sources,
        }


@dataclass
class PhotoEnhancement:
    categories: Dict[int, str] = field(default_factory=dict)
    confidence: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "categories": self.categories,
            "confidence": self.confidence,
        }


def is_item_covered(item: str, scope_lower: Set[str]) -> bool:
    """
    True when the scope already mentions the item.

    Exact (case-insensitive) match, or a scope line containing two of the
    item's key words (words longer than 3 letters), or the only key word.
    """
    item_lower = item.lower()
    if item_lower in scope_lower:
        return True

    key_words = [w for w in _WORD_SPLIT.split(item_lower) if len(w) > 3]

    for scope_item in scope_lower:
        match_count = sum(1 for kw in key_words if kw in scope_item)
        if match_count >= 2 or (len(key_words) == 1 and match_count == 1):
            return True

    return False


def format_scope_item(component: RequiredComponent) -> str:
    """Materials read as "Include <item>" unless already phrased as an action."""
    lowered = component.item.lower()
    if component.category == "material" and not lowered.startswith(("install", "provide", "include")):
        return f"Include {lowered}"
    return component.item


def _has_keyword(item: str, keywords: List[str]) -> bool:
    lowered = item.lower()
    return any(kw in lowered for kw in keywords)


def auto_enhance_scope(
    job_type_id: str,
    current_scope: List[str],
    include_prep: bool = False,
    include_completion: bool = True,
    max_additions: int = 10,
) -> ScopeEnhancement:
    """
    Items to add and warnings to show for a scope.

    always/typically components are added outright; if_needed components
    become "Consider: ..." warnings. Oversights are warnings too.
    """
    result = ScopeEnhancement()
    scope_lower = {s.lower() for s in current_scope}

    knowledge = get_job_knowledge(job_type_id)
    if not knowledge:
        return result

    for component in get_missing_components(job_type_id, current_scope):
        if is_item_covered(component.item, scope_lower):
            continue
        if component.condition in (ALWAYS, TYPICALLY):
            result.additions.append(format_scope_item(component))
            result.sources[component.item] = "knowledge"
        else:
            result.warnings.append(f"Consider: {component.item}")

    if include_completion:
        for item in knowledge.completion_items:
            if is_item_covered(item, scope_lower) or item in result.additions:
                continue
            if _has_keyword(item, ESSENTIAL_COMPLETION_KEYWORDS):
                result.additions.append(item)
                result.sources[item] = "knowledge"

    if include_prep:
        for item in knowledge.prep_work:
            if is_item_covered(item, scope_lower) or item in result.additions:
                continue
            if _has_keyword(item, ESSENTIAL_PREP_KEYWORDS):
                result.additions.append(item)
                result.sources[item] = "knowledge"

    for oversight in knowledge.common_oversights:
        if not is_item_covered(oversight, scope_lower):
            result.warnings.append(oversight)

    result.additions = result.additions[:max_additions]
    result.warnings = result.warnings[:MAX_WARNINGS]
    return result


def auto_enhance_photos(job_type_id: str, photo_count: int) -> PhotoEnhancement:
    """Positional categories, with trade-specific shots swapped into slots 5-8."""
    result = PhotoEnhancement()

    for position in range(1, photo_count + 1):
        if position == 1:
            result.categories[position], result.confidence[position] = "hero", 80
        elif position <= 4:
            result.categories[position], result.confidence[position] = "existing", 70
        elif position <= 6:
            result.categories[position], result.confidence[position] = "damage", 60
        else:
            result.categories[position], result.confidence[position] = "other", 50

    knowledge = get_job_knowledge(job_type_id)
    if knowledge:
        trade_categories = TRADE_PHOTO_CATEGORIES.get(knowledge.trade_name, [])
        trade_index = 0
        for position in range(5, min(photo_count, 8) + 1):
            if trade_index >= len(trade_categories):
                break
            if result.categories[position] in ("other", "damage"):
                result.categories[position] = trade_categories[trade_index]
                result.confidence[position] = 65
                trade_index += 1

    return result
