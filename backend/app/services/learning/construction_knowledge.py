"""
Construction Knowledge Base
===========================
Hand-authored trade knowledge used before any learning data exists.

For each job type: components that are normally required, the default
scope checklist, commonly forgotten items, prep work and completion items.
Static data only; nothing here is learned.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional


# Component condition values
ALWAYS = "always"
TYPICALLY = "typically"
IF_NEEDED = "if_needed"


@dataclass(frozen=True)
class RequiredComponent:
    """A material/fixture/labor line a job of this type normally needs."""
    item: str
    category: str  # material, labor, fixture, accessory, prep, cleanup
    condition: str = ALWAYS
    default_included: bool = True
    covered_by_keywords: tuple = ()  # scope text containing any of these covers it

    def to_dict(self) -> Dict:
        return {
            "item": self.item,
            "category": self.category,
            "condition": self.condition,
            "default_included": self.default_included,
            "covered_by_keywords": list(self.covered_by_keywords),
        }


@dataclass(frozen=True)
class JobTypeKnowledge:
    job_type_id: str
    trade_name: str
    required_components: List[RequiredComponent] = field(default_factory=list)
    default_scope: List[str] = field(default_factory=list)
    common_oversights: List[str] = field(default_factory=list)
    prep_work: List[str] = field(default_factory=list)
    completion_items: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "job_type_id": self.job_type_id,
            "trade_name": self.trade_name,
            "required_components": [c.to_dict() for c in self.required_components],
            "default_scope": list(self.default_scope),
            "common_oversights": list(self.common_oversights),
            "prep_work": list(self.prep_work),
            "completion_items": list(self.completion_items),
        }


# =============================================================================
# PLUMBING
# =============================================================================

TOILET_INSTALL = JobTypeKnowledge(
    job_type_id="toilet-install",
    trade_name="Plumbing",
    required_components=[
        RequiredComponent("Wax ring seal", "material"),
        RequiredComponent("Toilet supply line/hose", "material"),
        RequiredComponent("Closet bolts (Johnny bolts)", "material"),
        RequiredComponent("Toilet shims (if needed for leveling)", "material", IF_NEEDED),
        RequiredComponent("Caulk for base seal", "material", TYPICALLY),
        RequiredComponent(
            "New shut-off valve", "material", IF_NEEDED, False,
            covered_by_keywords=("valve", "shut-off", "shutoff"),
        ),
    ],
    default_scope=[
        "Remove and dispose of existing toilet",
        "Inspect flange condition",
        "Install new wax ring seal",
        "Set and level new toilet",
        "Connect water supply line",
        "Test for leaks and proper flush",
        "Caulk base of toilet",
    ],
    common_oversights=[
        "Flange repair/replacement if damaged",
        "Shut-off valve replacement if corroded",
    ],
    prep_work=[
        "Turn off water supply",
        "Drain and remove existing toilet",
        "Clean flange area",
    ],
    completion_items=[
        "Test multiple flushes",
        "Check for leaks at base and supply",
        "Clean work area",
    ],
)

FAUCET_INSTALL = JobTypeKnowledge(
    job_type_id="faucet-install",
    trade_name="Plumbing",
    required_components=[
        RequiredComponent("Supply lines (hot and cold)", "material"),
        RequiredComponent("Plumbers putty or silicone", "material"),
        RequiredComponent("Teflon tape", "material"),
        RequiredComponent("P-trap (if replacing)", "material", IF_NEEDED, False),
        RequiredComponent("New shut-off valves", "material", IF_NEEDED, False),
    ],
    default_scope=[
        "Disconnect and remove existing faucet",
        "Clean sink surface",
        "Install new faucet with mounting hardware",
        "Connect hot and cold supply lines",
        "Test for leaks",
        "Check drain operation",
    ],
    common_oversights=[
        "Drain stopper linkage adjustment",
        "Supply line length verification before install",
    ],
    prep_work=[
        "Turn off water supply",
        "Clear under-sink area",
    ],
    completion_items=[
        "Run water and check all connections",
        "Test hot/cold operation",
        "Clean up work area",
    ],
)

WATER_HEATER_INSTALL = JobTypeKnowledge(
    job_type_id="water-heater-install",
    trade_name="Plumbing",
    required_components=[
        RequiredComponent("Expansion tank", "accessory", TYPICALLY),
        RequiredComponent("Discharge pipe for T&P valve", "material"),
        RequiredComponent("Flexible water connectors", "material"),
        RequiredComponent("Gas flex connector (if gas)", "material", IF_NEEDED),
        RequiredComponent("Drip pan", "accessory", TYPICALLY),
        RequiredComponent("Earthquake straps", "accessory", IF_NEEDED, False),
        RequiredComponent("Permit fees", "labor"),
    ],
    default_scope=[
        "Drain and disconnect existing water heater",
        "Remove and dispose of old unit",
        "Install new water heater",
        "Connect water supply lines",
        "Connect gas line (if applicable)",
        "Install T&P discharge pipe to code",
        "Install expansion tank",
        "Test for leaks and proper operation",
        "Adjust temperature setting",
    ],
    common_oversights=[
        "Expansion tank (required by code in most areas)",
        "T&P discharge pipe routed properly",
        "Gas line inspection for leaks",
    ],
    prep_work=[
        "Turn off gas/electric and water",
        "Drain existing unit",
        "Clear access path",
    ],
    completion_items=[
        "Leak test all connections",
        "Verify proper ignition/heating",
        "Explain operation to homeowner",
        "Schedule inspection if required",
    ],
)


# =============================================================================
# BATHROOM
# =============================================================================

SHOWER_INSTALL = JobTypeKnowledge(
    job_type_id="shower-install",
    trade_name="Bathroom",
    required_components=[
        RequiredComponent("Shower valve (rough-in)", "fixture"),
        RequiredComponent("Shower head and arm", "fixture"),
        RequiredComponent("Shower drain assembly", "fixture"),
        RequiredComponent("Waterproof membrane/liner", "material"),
        RequiredComponent("Cement board/backer board", "material"),
        RequiredComponent("Thinset mortar", "material"),
        RequiredComponent("Grout", "material"),
        RequiredComponent("Silicone caulk", "material"),
        RequiredComponent("Shower door/curtain rod", "accessory", TYPICALLY, False),
    ],
    default_scope=[
        "Demo existing shower/tub surround",
        "Inspect and repair framing as needed",
        "Install cement board substrate",
        "Apply waterproof membrane",
        "Install shower pan/base",
        "Rough-in plumbing (valve and drain)",
        "Install wall tile",
        "Grout tile joints",
        "Install shower fixtures (valve trim, head, drain cover)",
        "Caulk all corners and transitions",
        "Test for leaks",
    ],
    common_oversights=[
        "Waterproofing behind cement board",
        "Proper slope to drain (1/4\" per foot)",
        "Moisture barrier extending to proper height",
        "Blocking for grab bars (ADA consideration)",
    ],
    prep_work=[
        "Protect flooring and adjacent areas",
        "Turn off water supply",
        "Remove existing fixtures",
    ],
    completion_items=[
        "Flood test shower pan",
        "Check all fixtures for leaks",
        "Clean tile and glass",
        "Final walkthrough with homeowner",
    ],
)

VANITY_INSTALL = JobTypeKnowledge(
    job_type_id="vanity-install",
    trade_name="Bathroom",
    required_components=[
        RequiredComponent("Faucet", "fixture"),
        RequiredComponent("P-trap assembly", "material"),
        RequiredComponent("Supply lines", "material"),
        RequiredComponent("Drain assembly with stopper", "material"),
        RequiredComponent("Silicone adhesive", "material"),
        RequiredComponent("Wall anchors/mounting hardware", "material", TYPICALLY),
    ],
    default_scope=[
        "Remove existing vanity and disconnect plumbing",
        "Repair wall/floor as needed",
        "Install new vanity cabinet",
        "Install countertop and sink",
        "Install faucet and drain assembly",
        "Connect water supply lines",
        "Connect drain/P-trap",
        "Caulk countertop to wall",
        "Test for leaks",
    ],
    common_oversights=[
        "Wall repair behind old vanity",
        "Shut-off valve replacement if old/corroded",
        "Mirror/medicine cabinet reinstallation",
    ],
    prep_work=[
        "Turn off water supply",
        "Remove items from vanity",
        "Protect flooring",
    ],
    completion_items=[
        "Test all plumbing connections",
        "Check drawer/door operation",
        "Clean and polish fixtures",
    ],
)

BATHROOM_REMODEL = JobTypeKnowledge(
    job_type_id="bathroom-remodel",
    trade_name="Bathroom",
    required_components=[
        RequiredComponent("All plumbing trim and fixtures", "fixture"),
        RequiredComponent("Exhaust fan (if replacing)", "fixture", TYPICALLY, False),
        RequiredComponent("GFCI outlets", "fixture"),
        RequiredComponent("Waterproofing materials", "material"),
        RequiredComponent("Cement board", "material"),
        RequiredComponent("Tile and installation materials", "material", TYPICALLY),
        RequiredComponent("Paint", "material", TYPICALLY),
        RequiredComponent("Trim/molding", "material", TYPICALLY),
    ],
    default_scope=[
        "Demolition of existing fixtures and finishes",
        "Rough plumbing modifications",
        "Electrical updates (GFCI outlets, fan)",
        "Install cement board in wet areas",
        "Waterproof shower/tub area",
        "Install tile (floor and walls)",
        "Install vanity and countertop",
        "Install toilet",
        "Install shower/tub fixtures",
        "Paint walls and ceiling",
        "Install trim and accessories",
        "Final plumbing connections and testing",
    ],
    common_oversights=[
        "Permit and inspection fees",
        "Exhaust fan venting to exterior",
        "Proper waterproofing in wet areas",
        "GFCI protection for all outlets",
        "Blocking for accessories (towel bars, etc.)",
    ],
    prep_work=[
        "Protect adjacent areas",
        "Set up dust containment",
        "Disconnect utilities",
        "Arrange for dumpster/debris removal",
    ],
    completion_items=[
        "Final inspection",
        "Touch-up paint",
        "Install all accessories",
        "Deep clean",
        "Walkthrough with homeowner",
    ],
)


# =============================================================================
# KITCHEN
# =============================================================================

KITCHEN_REMODEL = JobTypeKnowledge(
    job_type_id="kitchen-remodel",
    trade_name="Kitchen",
    required_components=[
        RequiredComponent("Cabinet hardware", "accessory"),
        RequiredComponent("Under-cabinet lighting", "fixture", TYPICALLY, False),
        RequiredComponent("GFCI outlets", "fixture"),
        RequiredComponent("Appliance connections", "material"),
        RequiredComponent("Plumbing supply/drain for sink", "material"),
        RequiredComponent("Garbage disposal connection", "material", TYPICALLY),
        RequiredComponent("Dishwasher supply and drain", "material", TYPICALLY),
    ],
    default_scope=[
        "Demolition of existing cabinets and countertops",
        "Electrical updates and GFCI outlets",
        "Plumbing rough-in modifications",
        "Install new cabinets",
        "Install countertops",
        "Install sink and faucet",
        "Connect garbage disposal",
        "Install backsplash",
        "Connect appliances",
        "Install cabinet hardware",
        "Touch-up and paint",
    ],
    common_oversights=[
        "Appliance clearances and connections",
        "Dishwasher air gap or high loop",
        "Range hood venting",
        "GFCI protection",
    ],
    prep_work=[
        "Disconnect appliances",
        "Empty cabinets",
        "Set up temporary kitchen area",
        "Protect flooring",
    ],
    completion_items=[
        "Test all appliances",
        "Check plumbing connections",
        "Adjust cabinet doors/drawers",
        "Final cleaning",
    ],
)


# =============================================================================
# FLOORING
# =============================================================================

FLOORING_INSTALL = JobTypeKnowledge(
    job_type_id="flooring-install",
    trade_name="Flooring",
    required_components=[
        RequiredComponent("Underlayment/padding", "material"),
        RequiredComponent("Transition strips", "material"),
        RequiredComponent("Quarter round/shoe molding", "material", TYPICALLY),
        RequiredComponent("Floor leveling compound", "material", IF_NEEDED, False),
        RequiredComponent("Adhesive (if glue-down)", "material", IF_NEEDED, False),
        RequiredComponent("Moisture barrier", "material", IF_NEEDED, False),
    ],
    default_scope=[
        "Remove existing flooring",
        "Prepare subfloor (clean, level, repair)",
        "Install underlayment/moisture barrier",
        "Acclimate flooring material",
        "Install new flooring",
        "Install transition strips at doorways",
        "Install quarter round/shoe molding",
        "Final cleaning",
    ],
    common_oversights=[
        "Subfloor preparation and leveling",
        "Acclimation time for wood/laminate",
        "Transition strips at different floor heights",
        "Removal and reinstall of baseboards",
        "Toilet removal/reinstall for bathroom floors",
    ],
    prep_work=[
        "Remove furniture from area",
        "Remove existing flooring",
        "Check subfloor condition",
        "Check for moisture issues",
    ],
    completion_items=[
        "Install all transitions",
        "Reinstall baseboards/molding",
        "Clean floors",
        "Dispose of debris",
    ],
)

TILE_FLOOR_INSTALL = JobTypeKnowledge(
    job_type_id="tile-floor-install",
    trade_name="Flooring",
    required_components=[
        RequiredComponent("Cement board/Ditra underlayment", "material", TYPICALLY),
        RequiredComponent("Thinset mortar", "material"),
        RequiredComponent("Grout", "material"),
        RequiredComponent("Grout sealer", "material"),
        RequiredComponent("Tile spacers", "material"),
        RequiredComponent("Transition strips", "material"),
        RequiredComponent("Tile edge trim", "material", IF_NEEDED, False),
    ],
    default_scope=[
        "Remove existing flooring",
        "Prepare and level subfloor",
        "Install cement board underlayment",
        "Layout tile pattern",
        "Install tile with thinset",
        "Grout tile joints",
        "Seal grout",
        "Install transition strips",
        "Caulk perimeter and wet areas",
    ],
    common_oversights=[
        "Proper subfloor preparation",
        "Waterproofing in wet areas",
        "Grout sealing (especially in bathrooms)",
        "Expansion joints at walls",
    ],
    prep_work=[
        "Remove furniture and fixtures",
        "Remove existing flooring",
        "Check/repair subfloor",
    ],
    completion_items=[
        "Seal grout after curing",
        "Clean tile surface",
        "Reinstall toilet/fixtures",
        "Final inspection",
    ],
)


# =============================================================================
# ELECTRICAL / HVAC
# =============================================================================

ELECTRICAL_PANEL = JobTypeKnowledge(
    job_type_id="electrical-panel",
    trade_name="Electrical",
    required_components=[
        RequiredComponent("New breakers as needed", "material"),
        RequiredComponent("Grounding electrode", "material", IF_NEEDED, False),
        RequiredComponent("Service entrance cable", "material", IF_NEEDED, False),
        RequiredComponent("Permit fees", "labor"),
    ],
    default_scope=[
        "Coordinate utility disconnect",
        "Remove existing panel",
        "Install new panel",
        "Transfer circuits to new breakers",
        "Label all circuits",
        "Install proper grounding",
        "Final connections",
        "Utility reconnection",
        "Final inspection",
    ],
    common_oversights=[
        "Utility coordination fees/timing",
        "Grounding upgrades to code",
        "Arc-fault breakers where required",
        "Panel labeling",
    ],
    prep_work=[
        "Schedule utility disconnect",
        "Pull permits",
        "Notify homeowner of outage",
    ],
    completion_items=[
        "Label all circuits",
        "Provide panel schedule to homeowner",
        "Final inspection sign-off",
    ],
)

HVAC_INSTALL = JobTypeKnowledge(
    job_type_id="hvac-install",
    trade_name="HVAC",
    required_components=[
        RequiredComponent("Refrigerant line set", "material"),
        RequiredComponent("Thermostat wire", "material"),
        RequiredComponent("Condensate drain line", "material"),
        RequiredComponent("Disconnect box", "material"),
        RequiredComponent("Concrete pad for condenser", "material", TYPICALLY),
        RequiredComponent("New thermostat", "fixture", TYPICALLY, False),
        RequiredComponent("Permit fees", "labor"),
    ],
    default_scope=[
        "Remove existing equipment",
        "Install indoor unit (furnace/air handler)",
        "Install outdoor condenser unit",
        "Run refrigerant lines",
        "Connect electrical",
        "Install condensate drain",
        "Connect thermostat",
        "Charge system with refrigerant",
        "Test heating and cooling",
        "Program thermostat",
    ],
    common_oversights=[
        "Ductwork modifications/sealing",
        "Condensate drain routing",
        "Electrical circuit upgrade if needed",
        "Equipment pad/mounting",
    ],
    prep_work=[
        "Pull permits",
        "Size system properly",
        "Clear equipment access",
    ],
    completion_items=[
        "System startup and testing",
        "Thermostat programming",
        "Filter replacement schedule",
        "Homeowner orientation",
        "Final inspection",
    ],
)


# =============================================================================
# EXTERIOR
# =============================================================================

ROOF_REPLACEMENT = JobTypeKnowledge(
    job_type_id="roof-replacement",
    trade_name="Roofing",
    required_components=[
        RequiredComponent("Ice and water shield", "material"),
        RequiredComponent("Synthetic underlayment", "material"),
        RequiredComponent("Drip edge", "material"),
        RequiredComponent("Ridge vent", "material", TYPICALLY),
        RequiredComponent("Flashing (step, valley, pipe)", "material"),
        RequiredComponent("Roofing nails/fasteners", "material"),
        RequiredComponent("Pipe boots/collars", "material"),
        RequiredComponent("Permit fees", "labor", TYPICALLY),
    ],
    default_scope=[
        "Remove existing shingles and underlayment",
        "Inspect and repair decking as needed",
        "Install ice and water shield at eaves/valleys",
        "Install synthetic underlayment",
        "Install drip edge",
        "Install new shingles",
        "Install ridge vent and cap",
        "Flash all penetrations",
        "Clean up and haul debris",
    ],
    common_oversights=[
        "Decking replacement (plywood/OSB)",
        "Chimney flashing",
        "Skylight flashing",
        "Gutter removal/reinstall",
        "Satellite dish/antenna relocation",
    ],
    prep_work=[
        "Order dumpster",
        "Protect landscaping",
        "Pull permits",
        "Check weather forecast",
    ],
    completion_items=[
        "Final inspection",
        "Magnetic sweep for nails",
        "Gutter cleaning",
        "Provide warranty documentation",
    ],
)

WINDOW_REPLACEMENT = JobTypeKnowledge(
    job_type_id="window-replacement",
    trade_name="Windows",
    required_components=[
        RequiredComponent("Flashing tape", "material"),
        RequiredComponent("Low-expansion foam", "material"),
        RequiredComponent("Exterior caulk", "material"),
        RequiredComponent("Interior trim/casing", "material", TYPICALLY),
        RequiredComponent("Exterior trim (if needed)", "material", IF_NEEDED, False),
        RequiredComponent("Backer rod", "material", TYPICALLY),
    ],
    default_scope=[
        "Remove existing window",
        "Inspect and prepare opening",
        "Flash window opening",
        "Install new window",
        "Insulate around frame",
        "Install interior trim",
        "Caulk exterior",
        "Test operation",
    ],
    common_oversights=[
        "Proper flashing sequence",
        "Lead paint considerations (pre-1978 homes)",
        "Interior trim matching",
        "Screen replacement",
    ],
    prep_work=[
        "Clear interior access",
        "Protect flooring",
        "Remove window treatments",
    ],
    completion_items=[
        "Test operation and locks",
        "Clean glass",
        "Touch-up paint if needed",
        "Dispose of old window",
    ],
)


# =============================================================================
# REGISTRY
# =============================================================================

# Insertion order is the substring-match order
KNOWLEDGE_BASE: Dict[str, JobTypeKnowledge] = {
    # Plumbing
    "toilet-install": TOILET_INSTALL,
    "toilet-replacement": TOILET_INSTALL,
    "faucet-install": FAUCET_INSTALL,
    "faucet-replacement": FAUCET_INSTALL,
    "water-heater": WATER_HEATER_INSTALL,
    "water-heater-install": WATER_HEATER_INSTALL,
    "water-heater-replacement": WATER_HEATER_INSTALL,

    # Bathroom
    "shower-install": SHOWER_INSTALL,
    "shower-remodel": SHOWER_INSTALL,
    "tub-to-shower": SHOWER_INSTALL,
    "vanity-install": VANITY_INSTALL,
    "vanity-replacement": VANITY_INSTALL,
    "bathroom-remodel": BATHROOM_REMODEL,
    "bath-remodel": BATHROOM_REMODEL,
    "full-bath-remodel": BATHROOM_REMODEL,

    # Kitchen
    "kitchen-remodel": KITCHEN_REMODEL,
    "kitchen-renovation": KITCHEN_REMODEL,

    # Flooring
    "flooring": FLOORING_INSTALL,
    "flooring-install": FLOORING_INSTALL,
    "hardwood-floor": FLOORING_INSTALL,
    "laminate-floor": FLOORING_INSTALL,
    "lvp-floor": FLOORING_INSTALL,
    "vinyl-floor": FLOORING_INSTALL,
    "tile-floor": TILE_FLOOR_INSTALL,
    "tile-flooring": TILE_FLOOR_INSTALL,
    "tile-floor-install": TILE_FLOOR_INSTALL,

    # Electrical
    "electrical-panel": ELECTRICAL_PANEL,
    "panel-upgrade": ELECTRICAL_PANEL,

    # HVAC
    "hvac": HVAC_INSTALL,
    "hvac-install": HVAC_INSTALL,
    "ac-install": HVAC_INSTALL,
    "furnace-install": HVAC_INSTALL,

    # Roofing
    "roof": ROOF_REPLACEMENT,
    "roof-replacement": ROOF_REPLACEMENT,
    "roofing": ROOF_REPLACEMENT,
    "re-roof": ROOF_REPLACEMENT,

    # Windows
    "window": WINDOW_REPLACEMENT,
    "window-replacement": WINDOW_REPLACEMENT,
    "windows": WINDOW_REPLACEMENT,
}

_SEPARATORS = re.compile(r"[\s_-]")


def normalize_job_type_id(job_type_id: str) -> str:
    """Lower-case; whitespace and underscores become hyphens."""
    return _SEPARATORS.sub("-", job_type_id.lower())


def get_job_knowledge(job_type_id: Optional[str]) -> Optional[JobTypeKnowledge]:
    """
    Look up knowledge for a job type id.

    Exact key first, then the normalized key, then the first registry key
    that contains or is contained by the normalized id.
    """
    if not job_type_id:
        return None

    if job_type_id in KNOWLEDGE_BASE:
        return KNOWLEDGE_BASE[job_type_id]

    normalized = normalize_job_type_id(job_type_id)
    if normalized in KNOWLEDGE_BASE:
        return KNOWLEDGE_BASE[normalized]

    for key, knowledge in KNOWLEDGE_BASE.items():
        if key in normalized or normalized in key:
            return knowledge

    return None


def get_required_components(job_type_id: str) -> List[RequiredComponent]:
    """Components included by default for this job type."""
    knowledge = get_job_knowledge(job_type_id)
    if not knowledge:
        return []
    return [c for c in knowledge.required_components if c.default_included]


def get_default_scope(job_type_id: str) -> List[str]:
    knowledge = get_job_knowledge(job_type_id)
    if not knowledge:
        return []
    return list(knowledge.default_scope)


def get_missing_components(job_type_id: str, current_scope: List[str]) -> List[RequiredComponent]:
    """
    Default-included components the current scope does not mention.

    A component counts as covered when the joined scope text contains one of
    its covered_by_keywords, or any word of its name longer than 3 letters.
    """
    knowledge = get_job_knowledge(job_type_id)
    if not knowledge:
        return []

    scope_text = " ".join(s.lower() for s in current_scope)

    missing = []
    for component in knowledge.required_components:
        if any(kw.lower() in scope_text for kw in component.covered_by_keywords):
            continue

        item_words = component.item.lower().split()
        if any(len(word) > 3 and word in scope_text for word in item_words):
            continue

        if component.default_included:
            missing.append(component)

    return missing


def get_completion_items(job_type_id: str) -> Dict[str, List[str]]:
    knowledge = get_job_knowledge(job_type_id)
    if not knowledge:
        return {"prep": [], "completion": []}
    return {
        "prep": list(knowledge.prep_work),
        "completion": list(knowledge.completion_items),
    }


def enhance_scope_with_knowledge(job_type_id: str, current_scope: List[str]) -> List[str]:
    """Names of commonly missed components to add to the scope."""
    return [c.item for c in get_missing_components(job_type_id, current_scope)]
