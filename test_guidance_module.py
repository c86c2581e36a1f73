"""
Tests for AI guidance generation and the rule-based fallback.
"""

import json

import pytest
from langchain_core.language_models import FakeListChatModel

from soil_insights import SoilSample, compute_insights
from soil_config import Nutrient
from guidance_module import (
    generate_guidance, build_rule_based_guidance, validate_guidance, match_nutrient,
)

SAMPLE = SoilSample(
    ph=7.0, ec=0.5, organic_carbon=1.0, nitrogen=100, phosphorus=17, potassium=200,
    sulphur=10, calcium=0.5, magnesium=0.1, iron=3.0, manganese=1.5, zinc=0.8,
    copper=0.4, boron=0.4,
)


def fake_llm(payload):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return FakeListChatModel(responses=[text])


def test_ai_guidance():
    response = {
        "general_analysis": "Your soil is healthy except for nitrogen.",
        "nutrient_recommendations": [
            {"nutrient": "Nitrogen (N)", "level": "Low", "action": "Apply urea in split doses."}
        ],
        "actionable_steps": ["Apply urea before sowing.", "Add compost."],
    }
    guidance = generate_guidance(SAMPLE, language="hi", llm=fake_llm(response))
    assert guidance["source"] == "ai"
    assert guidance["language"] == "hi"
    assert guidance["nutrient_recommendations"][0]["nutrient"] == "Nitrogen (N)"
    assert guidance["actionable_steps"] == ["Apply urea before sowing.", "Add compost."]
    assert "error" not in guidance


def test_contradicting_guidance_falls_back():
    response = {
        "general_analysis": "Nitrogen is fine.",
        "nutrient_recommendations": [
            {"nutrient": "Nitrogen (N)", "level": "Optimal", "action": "Nothing to do."}
        ],
        "actionable_steps": [],
    }
    guidance = generate_guidance(SAMPLE, llm=fake_llm(response))
    assert guidance["source"] == "rule-based"
    assert "contradicts computed level" in guidance["error"]
    assert guidance["nutrient_recommendations"][0]["level"] == "Low"


@pytest.mark.parametrize("name", ["Nitrogen", "nitrogen", "N"])
def test_contradiction_under_short_name_falls_back(name):
    response = {
        "general_analysis": "Nitrogen is fine.",
        "nutrient_recommendations": [
            {"nutrient": name, "level": "Optimal", "action": "Nothing to do."}
        ],
        "actionable_steps": [],
    }
    guidance = generate_guidance(SAMPLE, llm=fake_llm(response))
    assert guidance["source"] == "rule-based"
    assert "contradicts computed level for Nitrogen (N)" in guidance["error"]


def test_short_names_are_normalized_to_titles():
    response = {
        "general_analysis": "Nitrogen is low.",
        "nutrient_recommendations": [
            {"nutrient": "nitrogen", "level": "Low", "action": "Apply urea."},
            {"nutrient": "Zn", "level": "optimal", "action": "No zinc needed."},
        ],
        "actionable_steps": ["Apply urea."],
    }
    guidance = generate_guidance(SAMPLE, llm=fake_llm(response))
    assert guidance["source"] == "ai"
    assert guidance["nutrient_recommendations"] == [
        {"nutrient": "Nitrogen (N)", "level": "Low", "action": "Apply urea."},
        {"nutrient": "Zinc (Zn)", "level": "Optimal", "action": "No zinc needed."},
    ]


def test_unknown_parameter_falls_back():
    response = {
        "general_analysis": "Moisture is low.",
        "nutrient_recommendations": [
            {"nutrient": "Moisture", "level": "Low", "action": "Irrigate."}
        ],
        "actionable_steps": [],
    }
    guidance = generate_guidance(SAMPLE, llm=fake_llm(response))
    assert guidance["source"] == "rule-based"
    assert "unknown soil parameter: 'Moisture'" in guidance["error"]


@pytest.mark.parametrize("name,expected", [
    ("Soil pH", Nutrient.PH),
    ("pH", Nutrient.PH),
    ("Conductivity", Nutrient.EC),
    ("EC", Nutrient.EC),
    ("organicCarbon", Nutrient.ORGANIC_CARBON),
    ("Organic  Carbon", Nutrient.ORGANIC_CARBON),
    ("Zn", Nutrient.ZINC),
    ("Sulfur", Nutrient.SULPHUR),
    ("Moisture", None),
    ("", None),
])
def test_match_nutrient(name, expected):
    assert match_nutrient(name) == expected


def test_malformed_guidance_falls_back():
    guidance = generate_guidance(SAMPLE, llm=fake_llm("Sorry, I could not process that."))
    assert guidance["source"] == "rule-based"
    assert guidance["error"]


def test_missing_field_is_invalid():
    insights = compute_insights(SAMPLE)
    with pytest.raises(ValueError, match="nutrient_recommendations"):
        validate_guidance({"general_analysis": "ok", "actionable_steps": []}, insights)


def test_rule_based_guidance_for_deficient_soil():
    guidance = build_rule_based_guidance(compute_insights(SAMPLE))
    assert guidance["source"] == "rule-based"
    assert "Nitrogen (N) (low)" in guidance["general_analysis"]
    assert guidance["nutrient_recommendations"] == [{
        "nutrient": "Nitrogen (N)",
        "level": "Low",
        "action": "For leafy growth. Apply Urea or DAP.",
    }]
    assert guidance["actionable_steps"][0] == "Apply Urea or DAP to correct low Nitrogen (N)."


def test_rule_based_guidance_for_healthy_soil():
    healthy = SoilSample(**{**SAMPLE.to_dict(), "nitrogen": 300})
    guidance = build_rule_based_guidance(compute_insights(healthy))
    assert guidance["general_analysis"] == "All measured soil parameters are within their ideal ranges."
    assert guidance["nutrient_recommendations"] == []
    assert guidance["actionable_steps"] == ["Re-test your soil after the next cropping season."]


def test_rule_based_guidance_mentions_unmeasured():
    insights = compute_insights(SoilSample(ph=7.0), flag_unmeasured=True)
    guidance = build_rule_based_guidance(insights)
    assert "13 parameter(s) were not measured" in guidance["general_analysis"]
    assert "Get the unmeasured parameters tested at a soil testing lab." in guidance["actionable_steps"]
