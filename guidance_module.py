import os
import sys
import json
import re
from typing import Dict, Any, Optional, List

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import JsonOutputParser

from soil_config import (
    Nutrient, SOIL_PARAMETERS, FIELD_ALIASES, OPTIMAL, NEUTRAL, UNMEASURED,
    get_guidance_language, resolve_nutrient,
)
from soil_insights import SoilSample, Insight, compute_insights, compute_recommendations
from soil_card_module import clean_error_message

# ============================================================================
# AI GUIDANCE
# ============================================================================
# Levels are computed by soil_insights before the model is called and are
# passed in as read-only facts. The model only writes the advice around them;
# output that contradicts a computed level is discarded in favour of the
# rule-based guidance.
# ============================================================================

_llm = None


def get_guidance_llm():
    global _llm
    if _llm is None:
        _llm = ChatGoogleGenerativeAI(
            model=os.getenv("SOIL_GUIDANCE_MODEL", "gemini-2.0-flash"),
            temperature=0.2
        )
    return _llm


prompt_template = ChatPromptTemplate.from_template("""
You are an agricultural soil advisor for Indian farmers.

Soil health card measurements (READ-ONLY):
{measurements}

Computed parameter levels (READ-ONLY, these are final):
{levels}

Deficient nutrients and suggested products:
{products}

🔴 CONSTRAINTS:
- NEVER contradict the computed levels above
- NEVER invent new numeric soil values
- Mention only the parameters listed above
- Write "general_analysis", "action" and "actionable_steps" in {language}
- Keep every "nutrient" and "level" value in English, exactly as listed in the computed levels

Return ONLY valid JSON with this structure:
{{
  "general_analysis": "2-3 sentence overview of soil health",
  "nutrient_recommendations": [
    {{"nutrient": "Nitrogen (N)", "level": "Low", "action": "what the farmer should do"}}
  ],
  "actionable_steps": ["step 1", "step 2", "step 3"]
}}
""")


def _format_measurements(sample: SoilSample) -> str:
    lines = []
    for nutrient, value in sample.to_dict().items():
        config = SOIL_PARAMETERS[resolve_nutrient(nutrient)]
        shown = "not measured" if value is None else f"{value} {config['unit']}".strip()
        lines.append(f"- {config['title']}: {shown}")
    return "\n".join(lines)


def _name_variants(nutrient) -> List[str]:
    # "Nitrogen (N)" → "nitrogen (n)", "nitrogen", "n"
    title = SOIL_PARAMETERS[nutrient]["title"].lower()
    variants = [title, nutrient.value, nutrient.value.replace("_", " ")]
    match = re.match(r"^(.*?)\s*\((.+)\)$", title)
    if match:
        variants.extend([match.group(1), match.group(2)])
    if title.startswith("soil "):
        variants.append(title[len("soil "):])
    return variants


NUTRIENT_NAMES = {
    variant: nutrient
    for nutrient in SOIL_PARAMETERS
    for variant in _name_variants(nutrient)
}
NUTRIENT_NAMES.update({alias.lower(): nutrient for alias, nutrient in FIELD_ALIASES.items()})


def match_nutrient(name: str) -> Optional[Nutrient]:
    """
    Map a nutrient name written by the AI to a Nutrient.
    Accepts the display title, the title without its symbol, the symbol or an input alias.
    """
    key = re.sub(r"\s+", " ", (name or "").strip().lower())
    return NUTRIENT_NAMES.get(key)


def validate_guidance(guidance: Any, insights: List[Insight]) -> Dict[str, Any]:
    """
    Check AI guidance shape and consistency with computed levels.

    Raises:
        ValueError: If a field is missing or a nutrient level is contradicted
    """
    if not isinstance(guidance, dict):
        raise ValueError("Guidance is not a JSON object")

    analysis = guidance.get("general_analysis")
    if not isinstance(analysis, str) or not analysis.strip():
        raise ValueError("Guidance missing 'general_analysis'")

    steps = guidance.get("actionable_steps")
    if not isinstance(steps, list) or not all(isinstance(s, str) for s in steps):
        raise ValueError("Guidance 'actionable_steps' must be a list of strings")

    items = guidance.get("nutrient_recommendations")
    if not isinstance(items, list):
        raise ValueError("Guidance 'nutrient_recommendations' must be a list")

    by_nutrient = {i.nutrient: i for i in insights}
    cleaned_items = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"Invalid nutrient recommendation entry: {item!r}")
        name = str(item.get("nutrient", "")).strip()
        level = str(item.get("level", "")).strip()
        action = str(item.get("action", "")).strip()

        nutrient = match_nutrient(name)
        if nutrient is None or nutrient not in by_nutrient:
            raise ValueError(f"Guidance names an unknown soil parameter: '{name}'")
        insight = by_nutrient[nutrient]
        if level and level.lower() != insight.level.lower():
            raise ValueError(
                f"Guidance contradicts computed level for {insight.title}: "
                f"AI said '{level}', computed '{insight.level}'"
            )
        cleaned_items.append({"nutrient": insight.title, "level": insight.level, "action": action})

    return {
        "general_analysis": analysis.strip(),
        "nutrient_recommendations": cleaned_items,
        "actionable_steps": [s.strip() for s in steps if s.strip()],
    }


def build_rule_based_guidance(insights: List[Insight], language: str = "en") -> Dict[str, Any]:
    """
    Deterministic guidance assembled from insights only. Always available,
    used when the AI step fails or is not configured. Text is English.
    """
    recommendations = compute_recommendations(insights)
    products = {r.nutrient: r.product_name for r in recommendations}

    flagged = [i for i in insights if i.level not in (OPTIMAL, NEUTRAL, UNMEASURED)]
    unmeasured = [i for i in insights if i.level == UNMEASURED]

    if flagged:
        names = ", ".join(f"{i.title} ({i.level.lower()})" for i in flagged)
        analysis = f"Your soil needs attention in {len(flagged)} parameter(s): {names}."
    else:
        analysis = "All measured soil parameters are within their ideal ranges."
    if unmeasured:
        analysis += f" {len(unmeasured)} parameter(s) were not measured."

    nutrient_recommendations = []
    for insight in flagged:
        action = insight.description
        if insight.nutrient in products:
            action = f"{action} Apply {products[insight.nutrient]}."
        nutrient_recommendations.append({
            "nutrient": insight.title,
            "level": insight.level,
            "action": action,
        })

    steps = [
        f"Apply {r.product_name} to correct low {SOIL_PARAMETERS[r.nutrient]['title']}."
        for r in recommendations
    ]
    if unmeasured:
        steps.append("Get the unmeasured parameters tested at a soil testing lab.")
    steps.append("Re-test your soil after the next cropping season.")

    return {
        "general_analysis": analysis,
        "nutrient_recommendations": nutrient_recommendations,
        "actionable_steps": steps,
        "language": language,
        "source": "rule-based",
    }


def generate_guidance(
    sample: SoilSample,
    insights: Optional[List[Insight]] = None,
    language: str = "en",
    llm=None
) -> Dict[str, Any]:
    """
    Structured soil guidance from Gemini, falling back to rule-based guidance.

    Args:
        sample: Raw soil measurements
        insights: Precomputed insights (computed from the sample when omitted)
        language: Guidance language code ("en", "hi", "mr", "pa", "kn", "ta")
        llm: Chat model override

    Returns:
        Guidance dict with "source" set to "ai" or "rule-based"
    """
    if insights is None:
        insights = compute_insights(sample)

    recommendations = compute_recommendations(insights)
    products = "\n".join(f"- {SOIL_PARAMETERS[r.nutrient]['title']}: {r.product_name}" for r in recommendations) or "- none"
    levels = "\n".join(f"- {i.title}: {i.level}" for i in insights)

    try:
        if llm is None:
            llm = get_guidance_llm()
        chain = prompt_template | llm | JsonOutputParser()
        raw = chain.invoke({
            "measurements": _format_measurements(sample),
            "levels": levels,
            "products": products,
            "language": get_guidance_language(language),
        })
        guidance = validate_guidance(raw, insights)
        guidance["language"] = language
        guidance["source"] = "ai"
        return guidance
    except Exception as e:
        error_msg = clean_error_message(e)
        print(f"⚠️ Guidance generation error: {error_msg}. Using rule-based guidance.", file=sys.stderr)
        fallback = build_rule_based_guidance(insights, language)
        fallback["error"] = error_msg
        return fallback


if __name__ == "__main__":
    data = json.loads(sys.stdin.read())
    print(json.dumps(generate_guidance(SoilSample.from_dict(data)), ensure_ascii=False))
