"""
Soil Insight & Fertilizer Recommendation Engine
Turns a soil health card sample into per-parameter insights and a fertilizer plan.

DATA FLOW:
    SoilSample → compute_insights (scorer) → compute_recommendations (recommender)

Both steps are pure: nothing is cached or persisted, every call recomputes from
its input. Thresholds and product mappings live in soil_config.
"""

import math
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Mapping
from urllib.parse import quote

from soil_config import (
    Nutrient, NUTRIENT_ORDER, SOIL_PARAMETERS, FERTILIZER_PRODUCTS, STOREFRONTS,
    DEFICIENT_LEVELS, DISPLAY_GROUPS, REASON_TEMPLATE, UNMEASURED, GRAY,
    UNMEASURED_VALUE, UNMEASURED_DESCRIPTION,
    classify, resolve_nutrient,
)

# Characters left unescaped by JavaScript's encodeURIComponent
URI_COMPONENT_SAFE = "-_.!~*'()"


def _coerce_measurement(key: str, value) -> Optional[float]:
    """
    Validate a single raw measurement from caller input.

    Args:
        key: Input field name (for error messages)
        value: Raw value (number, numeric string, None or "")

    Returns:
        float value, or None when the parameter was not measured

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for {key}: {value!r}. Expected a number.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {key}: {value!r}. Expected a number.")
    if not math.isfinite(number):
        raise ValueError(f"Invalid value for {key}: {value!r}. Value must be finite.")
    return number


@dataclass(frozen=True)
class SoilSample:
    """Raw soil health card measurements. None means the parameter was not measured."""
    ph: Optional[float] = None
    ec: Optional[float] = None
    organic_carbon: Optional[float] = None
    nitrogen: Optional[float] = None
    phosphorus: Optional[float] = None
    potassium: Optional[float] = None
    sulphur: Optional[float] = None
    calcium: Optional[float] = None
    magnesium: Optional[float] = None
    iron: Optional[float] = None
    manganese: Optional[float] = None
    zinc: Optional[float] = None
    copper: Optional[float] = None
    boron: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SoilSample":
        """
        Build a sample from card-extraction keys ("oc", "n"), manual form keys
        ("organicCarbon", "sulfur") or canonical names. Unknown keys are ignored.

        Raises:
            ValueError: If data is not a mapping or a value is not a finite number
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Soil data must be an object, got {type(data).__name__}")

        values = {}
        for key, raw in data.items():
            try:
                nutrient = resolve_nutrient(key)
            except ValueError:
                continue
            values[nutrient.value] = _coerce_measurement(key, raw)
        return cls(**values)

    def get(self, nutrient) -> Optional[float]:
        return getattr(self, resolve_nutrient(nutrient).value)

    def measured(self) -> List[Nutrient]:
        return [n for n in NUTRIENT_ORDER if self.get(n) is not None]

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


@dataclass(frozen=True)
class Insight:
    nutrient: Nutrient
    title: str
    value: str
    level: str
    color: str
    description: str
    icon: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nutrient": self.nutrient.value,
            "title": self.title,
            "value": self.value,
            "level": self.level,
            "color": self.color,
            "description": self.description,
            "icon": self.icon,
        }


@dataclass(frozen=True)
class StoreLink:
    name: str
    url: str


@dataclass(frozen=True)
class FertilizerRecommendation:
    nutrient: Nutrient
    product_name: str
    reason: str
    icon: Any = None
    links: tuple = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nutrient": self.nutrient.value,
            "title": SOIL_PARAMETERS[self.nutrient]["title"],
            "product_name": self.product_name,
            "reason": self.reason,
            "icon": self.icon,
            "links": [{"name": link.name, "url": link.url} for link in self.links],
        }


# ============================================================================
# SCORER
# ============================================================================

def format_value(value: float, unit: str) -> str:
    return f"{value:.2f} {unit}".strip()


def compute_insights(
    sample: SoilSample,
    icons: Optional[Mapping[Nutrient, Any]] = None,
    flag_unmeasured: bool = False
) -> List[Insight]:
    """
    Score every soil parameter of a sample.

    Args:
        sample: Soil measurements
        icons: Optional nutrient → icon handle mapping supplied by the presentation
            layer. Icons default to the nutrient identifier string.
        flag_unmeasured: Report absent parameters as "Unmeasured" instead of
            scoring them as zero

    Returns:
        14 insights in canonical order (pH, EC, OC, N, P, K, S, Ca, Mg, Fe, Mn, Zn, Cu, B)
    """
    icons = icons or {}
    insights = []

    for nutrient in NUTRIENT_ORDER:
        config = SOIL_PARAMETERS[nutrient]
        icon = icons.get(nutrient, nutrient.value)
        raw = sample.get(nutrient)

        if raw is None and flag_unmeasured:
            insights.append(Insight(
                nutrient=nutrient,
                title=config["title"],
                value=UNMEASURED_VALUE,
                level=UNMEASURED,
                color=GRAY,
                description=UNMEASURED_DESCRIPTION,
                icon=icon,
            ))
            continue

        # Absent measurements are scored as zero
        value = raw if raw is not None else 0.0
        level, color, description = classify(nutrient, value)
        insights.append(Insight(
            nutrient=nutrient,
            title=config["title"],
            value=format_value(value, config["unit"]),
            level=level,
            color=color,
            description=description,
            icon=icon,
        ))

    return insights


def group_insights(insights: List[Insight]) -> Dict[str, List[Insight]]:
    """Slice the canonical insight sequence into the dashboard's display groups."""
    return {name: list(insights[start:stop]) for name, start, stop in DISPLAY_GROUPS}


# ============================================================================
# RECOMMENDER
# ============================================================================

def build_store_links(product_name: str) -> tuple:
    query = quote(product_name, safe=URI_COMPONENT_SAFE)
    return tuple(StoreLink(name=name, url=template.format(query=query)) for name, template in STOREFRONTS)


def compute_recommendations(insights: List[Insight]) -> List[FertilizerRecommendation]:
    """
    Derive fertilizer products for deficient nutrients.

    A recommendation is emitted only when the insight level is deficient
    (Low, Very Low, Acidic, Alkaline) AND the nutrient has a product mapping.
    pH, EC and organic carbon have no product and are skipped.

    Args:
        insights: Insights as returned by compute_insights (order is preserved)

    Returns:
        List of FertilizerRecommendation
    """
    plan = []
    for insight in insights:
        if insight.level not in DEFICIENT_LEVELS:
            continue
        product_name = FERTILIZER_PRODUCTS.get(insight.nutrient)
        if not product_name:
            continue
        plan.append(FertilizerRecommendation(
            nutrient=insight.nutrient,
            product_name=product_name,
            reason=REASON_TEMPLATE.format(title=insight.title, description=insight.description.lower()),
            icon=insight.icon,
            links=build_store_links(product_name),
        ))
    return plan


def analyze_sample(
    sample: SoilSample,
    icons: Optional[Mapping[Nutrient, Any]] = None,
    flag_unmeasured: bool = False,
    insights: Optional[List[Insight]] = None
) -> Dict[str, Any]:
    """
    Run the scorer and recommender and return JSON-serializable output
    for the presentation layer. Precomputed insights are used as-is.
    """
    if insights is None:
        insights = compute_insights(sample, icons=icons, flag_unmeasured=flag_unmeasured)
    recommendations = compute_recommendations(insights)

    return {
        "sample": sample.to_dict(),
        "insights": [i.to_dict() for i in insights],
        "insight_groups": {
            name: [i.to_dict() for i in group]
            for name, group in group_insights(insights).items()
        },
        "recommendations": [r.to_dict() for r in recommendations],
    }
