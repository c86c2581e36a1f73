"""
Centralized Soil Parameter Configuration
This file contains the soil health card parameter table, ideal ranges, fertilizer
product mappings and marketplace link templates.
Single source of truth for the insight engine and the AI extraction/guidance steps.
"""

from enum import Enum


# ============================================================================
# NUTRIENT IDENTIFIERS
# ============================================================================
class Nutrient(str, Enum):
    """Join key shared by the parameter table and the fertilizer product table."""
    PH = "ph"
    EC = "ec"
    ORGANIC_CARBON = "organic_carbon"
    NITROGEN = "nitrogen"
    PHOSPHORUS = "phosphorus"
    POTASSIUM = "potassium"
    SULPHUR = "sulphur"
    CALCIUM = "calcium"
    MAGNESIUM = "magnesium"
    IRON = "iron"
    MANGANESE = "manganese"
    ZINC = "zinc"
    COPPER = "copper"
    BORON = "boron"


# Canonical display order. Display groups below slice this order.
NUTRIENT_ORDER = [
    Nutrient.PH, Nutrient.EC, Nutrient.ORGANIC_CARBON,
    Nutrient.NITROGEN, Nutrient.PHOSPHORUS, Nutrient.POTASSIUM,
    Nutrient.SULPHUR, Nutrient.CALCIUM, Nutrient.MAGNESIUM,
    Nutrient.IRON, Nutrient.MANGANESE, Nutrient.ZINC, Nutrient.COPPER, Nutrient.BORON,
]

# ============================================================================
# LEVELS & COLORS
# ============================================================================
VERY_LOW = "Very Low"
LOW = "Low"
OPTIMAL = "Optimal"
HIGH = "High"
VERY_HIGH = "Very High"
ACIDIC = "Acidic"
NEUTRAL = "Neutral"
ALKALINE = "Alkaline"
UNMEASURED = "Unmeasured"

LEVELS = [VERY_LOW, LOW, OPTIMAL, HIGH, VERY_HIGH, ACIDIC, NEUTRAL, ALKALINE, UNMEASURED]

RED = "red"
GREEN = "green"
YELLOW = "yellow"
BLUE = "blue"
GRAY = "gray"

# Levels that trigger a fertilizer recommendation
DEFICIENT_LEVELS = frozenset([LOW, VERY_LOW, ACIDIC, ALKALINE])

UNMEASURED_VALUE = "N/A"
UNMEASURED_DESCRIPTION = "Not measured. Test this parameter for an accurate assessment."

# ============================================================================
# SOIL PARAMETER TABLE
# ============================================================================
# ideal_range is (low, high); values below low are Low, above high are High.
# "rule" names an override classification; None means the generic three-way rule.
SOIL_PARAMETERS = {
    Nutrient.PH: {
        "title": "Soil pH",
        "unit": "",
        "ideal_range": (6.25, 7.5),
        "rule": "ph",
        "description": None,
    },
    Nutrient.EC: {
        "title": "Conductivity (EC)",
        "unit": "mS/cm",
        "ideal_range": (0, 1.0),
        "rule": "salinity",
        "description": None,
    },
    Nutrient.ORGANIC_CARBON: {
        "title": "Organic Carbon",
        "unit": "%",
        "ideal_range": (0.75, float("inf")),
        "rule": "organic_carbon",
        "description": None,
    },
    Nutrient.NITROGEN: {
        "title": "Nitrogen (N)",
        "unit": "kg/ha",
        "ideal_range": (281, 410),
        "rule": None,
        "description": "For leafy growth.",
    },
    Nutrient.PHOSPHORUS: {
        "title": "Phosphorus (P)",
        "unit": "kg/ha",
        "ideal_range": (13, 22),
        "rule": None,
        "description": "For root and flower development.",
    },
    Nutrient.POTASSIUM: {
        "title": "Potassium (K)",
        "unit": "kg/ha",
        "ideal_range": (181, 240),
        "rule": None,
        "description": "For overall vigor and disease resistance.",
    },
    Nutrient.SULPHUR: {
        "title": "Sulphur (S)",
        "unit": "ppm",
        "ideal_range": (7, 15),
        "rule": None,
        "description": "Key for protein synthesis and oilseeds.",
    },
    Nutrient.CALCIUM: {
        "title": "Calcium (Ca)",
        "unit": "%",
        "ideal_range": (0.3, 0.8),
        "rule": None,
        "description": "Builds strong cell walls.",
    },
    Nutrient.MAGNESIUM: {
        "title": "Magnesium (Mg)",
        "unit": "%",
        "ideal_range": (0.06, 0.15),
        "rule": None,
        "description": "Central to photosynthesis.",
    },
    Nutrient.IRON: {
        "title": "Iron (Fe)",
        "unit": "ppm",
        "ideal_range": (2.5, 4.5),
        "rule": None,
        "description": "For chlorophyll formation.",
    },
    Nutrient.MANGANESE: {
        "title": "Manganese (Mn)",
        "unit": "ppm",
        "ideal_range": (1.0, 2.0),
        "rule": None,
        "description": "Aids in photosynthesis.",
    },
    Nutrient.ZINC: {
        "title": "Zinc (Zn)",
        "unit": "ppm",
        "ideal_range": (0.5, 1.2),
        "rule": None,
        "description": "For enzyme function.",
    },
    Nutrient.COPPER: {
        "title": "Copper (Cu)",
        "unit": "ppm",
        "ideal_range": (0.3, 0.5),
        "rule": None,
        "description": "For reproductive growth.",
    },
    Nutrient.BORON: {
        "title": "Boron (B)",
        "unit": "ppm",
        "ideal_range": (0.3, 0.5),
        "rule": None,
        "description": "Crucial for fruit and seed setting.",
    },
}

# ============================================================================
# FERTILIZER PRODUCTS & MARKETPLACES
# ============================================================================
FERTILIZER_PRODUCTS = {
    Nutrient.NITROGEN: "Urea or DAP",
    Nutrient.PHOSPHORUS: "DAP or Single Super Phosphate",
    Nutrient.POTASSIUM: "Muriate of Potash (MOP)",
    Nutrient.SULPHUR: "Bensulf or Gypsum",
    Nutrient.ZINC: "Zinc Sulphate",
    Nutrient.BORON: "Borax Decahydrate",
    Nutrient.MAGNESIUM: "Epsom Salt",
    Nutrient.CALCIUM: "Gypsum or Lime",
}

# (store name, search URL template)
STOREFRONTS = [
    ("IFFCO BAZAR", "https://www.iffcobazar.in/en/search?q={query}"),
    ("AgriBegri", "https://www.agribegri.com/search?q={query}"),
]

REASON_TEMPLATE = "Your soil is deficient in {title}, which is crucial for {description}"

# ============================================================================
# DISPLAY GROUPS
# ============================================================================
# (group name, start, stop) slices over NUTRIENT_ORDER
DISPLAY_GROUPS = [
    ("core_properties", 0, 3),
    ("primary_nutrients", 3, 6),
    ("secondary_nutrients", 6, 9),
    ("micronutrients", 9, None),
]

# ============================================================================
# INPUT FIELD ALIASES
# ============================================================================
# Soil card extraction uses short symbols, the manual entry form uses names.
FIELD_ALIASES = {
    "ph": Nutrient.PH,
    "ec": Nutrient.EC,
    "oc": Nutrient.ORGANIC_CARBON,
    "organicCarbon": Nutrient.ORGANIC_CARBON,
    "organic_carbon": Nutrient.ORGANIC_CARBON,
    "n": Nutrient.NITROGEN,
    "nitrogen": Nutrient.NITROGEN,
    "p": Nutrient.PHOSPHORUS,
    "phosphorus": Nutrient.PHOSPHORUS,
    "k": Nutrient.POTASSIUM,
    "potassium": Nutrient.POTASSIUM,
    "s": Nutrient.SULPHUR,
    "sulfur": Nutrient.SULPHUR,
    "sulphur": Nutrient.SULPHUR,
    "ca": Nutrient.CALCIUM,
    "calcium": Nutrient.CALCIUM,
    "mg": Nutrient.MAGNESIUM,
    "magnesium": Nutrient.MAGNESIUM,
    "fe": Nutrient.IRON,
    "iron": Nutrient.IRON,
    "mn": Nutrient.MANGANESE,
    "manganese": Nutrient.MANGANESE,
    "zn": Nutrient.ZINC,
    "zinc": Nutrient.ZINC,
    "cu": Nutrient.COPPER,
    "copper": Nutrient.COPPER,
    "b": Nutrient.BORON,
    "boron": Nutrient.BORON,
}

# ============================================================================
# GUIDANCE LANGUAGES
# ============================================================================
GUIDANCE_LANGUAGES = {
    "en": "English",
    "hi": "Hindi",
    "mr": "Marathi",
    "pa": "Punjabi",
    "kn": "Kannada",
    "ta": "Tamil",
}

# ============================================================================
# HELPER FUNCTIONS FOR CLASSIFICATION
# ============================================================================

def resolve_nutrient(key) -> Nutrient:
    """
    Resolve a nutrient identifier, enum member or input alias.

    Args:
        key: Nutrient member, canonical value ("organic_carbon") or alias ("oc")

    Returns:
        Nutrient member

    Raises:
        ValueError: If the key does not name a soil parameter
    """
    if isinstance(key, Nutrient):
        return key
    if key in FIELD_ALIASES:
        return FIELD_ALIASES[key]
    try:
        return Nutrient(key)
    except ValueError:
        raise ValueError(f"Unknown soil parameter: {key}")


def get_parameter_title(nutrient) -> str:
    return SOIL_PARAMETERS[resolve_nutrient(nutrient)]["title"]


def classify_ph(value: float) -> tuple:
    if value < 6.25:
        return (ACIDIC, YELLOW, "Acidic soil can lock nutrients. Consider applying lime.")
    if value > 7.5:
        return (ALKALINE, BLUE, "Alkaline soil can limit micronutrient uptake. Consider gypsum.")
    return (NEUTRAL, GREEN, "Excellent pH for nutrient availability.")


def classify_salinity(value: float) -> tuple:
    # Salinity above range is more severe than a generic High
    if value > 1.0:
        return (HIGH, RED, "High salinity can cause salt stress to plants.")
    return (OPTIMAL, GREEN, "Ideal salt level, safe for all crops.")


def classify_organic_carbon(value: float) -> tuple:
    if value < 0.75:
        return (LOW, RED, "A critical area for improvement. Add compost or FYM.")
    return (OPTIMAL, GREEN, "Excellent organic matter content for soil health.")


OVERRIDE_RULES = {
    "ph": classify_ph,
    "salinity": classify_salinity,
    "organic_carbon": classify_organic_carbon,
}


def classify(nutrient, value: float) -> tuple:
    """
    Classify a soil parameter value against its ideal range.

    Args:
        nutrient: Nutrient member or identifier
        value: Numeric measurement in the parameter's unit

    Returns:
        (level, color, description) tuple

    Raises:
        ValueError: If the nutrient is not recognized
    """
    config = SOIL_PARAMETERS[resolve_nutrient(nutrient)]

    if config["rule"]:
        return OVERRIDE_RULES[config["rule"]](value)

    low, high = config["ideal_range"]
    if value < low:
        return (LOW, YELLOW, config["description"])
    if value > high:
        return (HIGH, BLUE, config["description"])
    return (OPTIMAL, GREEN, config["description"])


def get_guidance_language(code: str) -> str:
    """
    Get the language name used in guidance prompts.

    Args:
        code: Language code ("en", "hi", "mr", ...)

    Returns:
        Language name, English when the code is unknown
    """
    return GUIDANCE_LANGUAGES.get((code or "en").lower(), "English")
