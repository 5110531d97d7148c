"""
Tests for the construction knowledge base and auto-enhance.
"""
from app.services.learning import (
    get_job_knowledge,
    get_missing_components,
    get_completion_items,
    enhance_scope_with_knowledge,
    auto_enhance_scope,
    auto_enhance_photos,
)
from app.services.learning.construction_knowledge import (
    TOILET_INSTALL,
    WATER_HEATER_INSTALL,
    BATHROOM_REMODEL,
    ELECTRICAL_PANEL,
    get_default_scope,
    get_required_components,
    normalize_job_type_id,
)
from app.services.learning.auto_enhance import is_item_covered


# =============================================================================
# TEST: LOOKUP
# =============================================================================

class TestJobKnowledgeLookup:
    """Exact key, normalized key, then substring match."""

    def test_exact_key(self):
        assert get_job_knowledge("water-heater-install") is WATER_HEATER_INSTALL

    def test_normalized_key(self):
        """Case and separators don't matter"""
        assert normalize_job_type_id("Toilet_Install") == "toilet-install"
        assert get_job_knowledge("Toilet-Install") is TOILET_INSTALL
        assert get_job_knowledge("toilet install") is TOILET_INSTALL

    def test_registry_key_contained_in_id(self):
        assert get_job_knowledge("bathroom-remodel-2024") is BATHROOM_REMODEL

    def test_id_contained_in_registry_key(self):
        assert get_job_knowledge("panel") is ELECTRICAL_PANEL

    def test_unknown_or_empty(self):
        assert get_job_knowledge("underwater-basket-weaving") is None
        assert get_job_knowledge("") is None
        assert get_job_knowledge(None) is None


# =============================================================================
# TEST: COMPONENTS
# =============================================================================

class TestMissingComponents:
    """Tests for get_missing_components and friends."""

    def test_word_in_scope_covers_component(self):
        missing = get_missing_components(
            "toilet-install", ["Install new wax ring", "Replace supply line"]
        )

        assert [c.item for c in missing] == [
            "Closet bolts (Johnny bolts)",
            "Toilet shims (if needed for leveling)",
            "Caulk for base seal",
        ]

    def test_optional_components_never_missing(self):
        """default_included=False components are left to the user"""
        missing = [c.item for c in get_missing_components("water-heater-install", [])]

        assert "Earthquake straps" not in missing
        assert "Expansion tank" in missing

    def test_required_components_excludes_optional(self):
        items = [c.item for c in get_required_components("toilet-install")]

        assert "New shut-off valve" not in items
        assert len(items) == 5

    def test_enhance_scope_returns_names(self):
        assert enhance_scope_with_knowledge("water-heater-install", []) == [
            "Expansion tank",
            "Discharge pipe for T&P valve",
            "Flexible water connectors",
            "Gas flex connector (if gas)",
            "Drip pan",
            "Permit fees",
        ]

    def test_unknown_job_has_nothing_missing(self):
        assert get_missing_components("mystery-job", []) == []
        assert get_default_scope("mystery-job") == []

    def test_default_scope_is_a_copy(self):
        scope = get_default_scope("water-heater")
        scope.append("Extra line")

        assert scope[0] == "Drain and disconnect existing water heater"
        assert "Extra line" not in WATER_HEATER_INSTALL.default_scope

    def test_completion_items(self):
        items = get_completion_items("faucet-install")

        assert items["prep"] == ["Turn off water supply", "Clear under-sink area"]
        assert "Test hot/cold operation" in items["completion"]
        assert get_completion_items("mystery-job") == {"prep": [], "completion": []}

    def test_to_dict(self):
        data = WATER_HEATER_INSTALL.to_dict()

        assert data["trade_name"] == "Plumbing"
        assert data["required_components"][0] == {
            "item": "Expansion tank",
            "category": "accessory",
            "condition": "typically",
            "default_included": True,
            "covered_by_keywords": [],
        }


# =============================================================================
# TEST: AUTO-ENHANCE
# =============================================================================

class TestIsItemCovered:

    def test_exact_match(self):
        assert is_item_covered("Drip pan", {"drip pan"})

    def test_two_key_words(self):
        assert is_item_covered("Expansion tank (required by code in most areas)", {"install expansion tank"})

    def test_single_key_word(self):
        assert is_item_covered("Grout", {"regrout shower walls"})

    def test_one_of_several_key_words_is_not_enough(self):
        assert not is_item_covered("Turn off gas/electric and water", {"install new water heater"})


class TestAutoEnhanceScope:
    """Tests for auto_enhance_scope."""

    def test_water_heater_scope(self):
        result = auto_enhance_scope("water-heater-install", ["Install new water heater"])

        assert result.additions == [
            "Expansion tank",
            "Include discharge pipe for t&p valve",
            "Drip pan",
            "Permit fees",
            "Leak test all connections",
            "Schedule inspection if required",
        ]
        assert result.warnings == [
            "Consider: Gas flex connector (if gas)",
            "Expansion tank (required by code in most areas)",
            "T&P discharge pipe routed properly",
            "Gas line inspection for leaks",
        ]
        assert result.sources["Discharge pipe for T&P valve"] == "knowledge"

    def test_prep_items_when_requested(self):
        result = auto_enhance_scope(
            "water-heater-install", ["Install new water heater"], include_prep=True, max_additions=20,
        )

        assert "Turn off gas/electric and water" in result.additions
        assert "Clear access path" in result.additions
        assert "Drain existing unit" not in result.additions

    def test_additions_are_capped(self):
        result = auto_enhance_scope("water-heater-install", [], max_additions=2)

        assert result.additions == ["Expansion tank", "Include discharge pipe for t&p valve"]

    def test_unknown_job_type(self):
        assert auto_enhance_scope("mystery-job", ["Anything"]).to_dict() == {
            "additions": [],
            "warnings": [],
            "sources": {},
        }


class TestAutoEnhancePhotos:
    """Tests for auto_enhance_photos."""

    def test_plumbing_categories_swapped_in(self):
        result = auto_enhance_photos("water-heater-install", 8)

        assert result.categories == {
            1: "hero", 2: "existing", 3: "existing", 4: "existing",
            5: "plumbing", 6: "damage", 7: "other", 8: "other",
        }
        assert result.confidence[1] == 80
        assert result.confidence[5] == 65
        assert result.confidence[7] == 50

    def test_bathroom_fills_slots_five_to_eight(self):
        result = auto_enhance_photos("bathroom-remodel", 10)

        assert [result.categories[i] for i in range(5, 11)] == [
            "shower", "vanity", "flooring", "toilet", "other", "other",
        ]

    def test_unknown_job_keeps_positional_defaults(self):
        result = auto_enhance_photos("mystery-job", 6)

        assert result.categories[5] == "damage"
        assert result.confidence[6] == 60

    def test_zero_photos(self):
        assert auto_enhance_photos("water-heater-install", 0).categories == {}
