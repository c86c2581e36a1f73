import os
import sys
import json
import re
from typing import Dict, Any

from langchain_ollama import ChatOllama
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import JsonOutputParser

from soil_config import resolve_nutrient
from soil_insights import SoilSample

# ============================================================================
# SOIL CARD EXTRACTION - HARDENED FOR DETERMINISTIC OUTPUT
# ============================================================================
#
# The LLM only transcribes numbers that are printed on the card. It never
# classifies them: levels are computed by soil_insights from soil_config.
#
#   Card photo → OCR (extract_image) → extract (AI, JSON mode) → validate → SoilSample
#
# temperature=0.1 and format="json" keep the extraction deterministic.
# ============================================================================

EXTRACTION_VERSION = "soil-card-extract-v1.0"

VALID_SOURCES = ("report", "missing")

_llm_json = None


def get_extraction_llm():
    """Lazily build the JSON-mode Ollama client."""
    global _llm_json
    if _llm_json is None:
        _llm_json = ChatOllama(
            model=os.getenv("OLLAMA_MODEL", "llama3.2"),
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            temperature=0.1,
            format="json",
        )
    return _llm_json


def clean_error_message(error: Exception) -> str:
    """Strip langchain troubleshooting links from an exception message."""
    error_msg = str(error)
    error_msg = re.sub(r'For troubleshooting.*?OUTPUT_PARSING_FAILURE.*?', '', error_msg, flags=re.DOTALL)
    error_msg = re.sub(r'https?://[^\s]+langchain[^\s]+', '', error_msg)
    return error_msg.strip()


EXTRACTION_PROMPT = ChatPromptTemplate.from_template("""
You are a soil health card text extractor for Indian agriculture.

🔴 CRITICAL CONSTRAINTS (MANDATORY - NEVER VIOLATE):

1. EXTRACTION ONLY - NO GENERATION:
   - Extract ONLY numeric values that are EXPLICITLY written in the card text
   - NEVER generate, predict, estimate, or infer any numeric values
   - NEVER use typical values, averages, or ranges

2. MISSING PARAMETER HANDLING:
   - If a parameter is NOT found, or has no numeric value:
     → Set value: null
     → Set source: "missing"

3. PARAMETER KEYS (use exactly these keys):
   - "ph": pH / Soil Reaction (no unit)
   - "ec": Electrical Conductivity (dS/m or mS/cm)
   - "oc": Organic Carbon (%)
   - "n": Available Nitrogen (kg/ha)
   - "p": Available Phosphorus (kg/ha)
   - "k": Available Potassium (kg/ha)
   - "s": Available Sulphur (ppm)
   - "ca": Calcium (%)
   - "mg": Magnesium (%)
   - "zn": Zinc (ppm)
   - "b": Boron (ppm)
   - "fe": Iron (ppm)
   - "mn": Manganese (ppm)
   - "cu": Copper (ppm)

4. OUTPUT REQUIREMENTS:
   - Return ONLY valid JSON, no markdown, no text before/after JSON
   - Every parameter must have: value, unit, source

Card Text:
{report_text}

✓ ACCEPTABLE OUTPUT EXAMPLE:
{{
  "extracted_parameters": {{
    "ph": {{"value": 7.8, "unit": "", "source": "report"}},
    "n": {{"value": 210, "unit": "kg/ha", "source": "report"}},
    "zn": {{"value": null, "unit": "", "source": "missing"}}
  }}
}}

Now extract parameters from the card text above. Return ONLY the JSON structure.
""")


def validate_extracted_parameters(result: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Safety check: keep only known parameters and reject values the AI did not
    read from the card.

    Args:
        result: Parsed JSON response from the extraction model

    Returns:
        Normalized {key: {"value", "unit", "source"}} mapping

    Raises:
        ValueError: If the response shape is wrong or a value looks fabricated
    """
    if not isinstance(result, dict):
        raise ValueError("Result is not a dictionary")

    extracted = result.get("extracted_parameters", {})
    if not isinstance(extracted, dict):
        raise ValueError("Result 'extracted_parameters' is not an object")

    cleaned = {}
    for param_name, param_data in extracted.items():
        try:
            resolve_nutrient(param_name)
        except ValueError:
            print(f"⚠️ Ignoring unknown soil card parameter: {param_name}", file=sys.stderr)
            continue

        if not isinstance(param_data, dict):
            param_data = {"value": param_data, "source": "report" if param_data is not None else "missing"}

        value = param_data.get("value")
        source = param_data.get("source", "missing" if value is None else "")

        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(
                    f"SAFETY VIOLATION: Parameter {param_name} has non-numeric value {value!r}."
                )
            if source != "report":
                raise ValueError(
                    f"SAFETY VIOLATION: Parameter {param_name} has value {value} "
                    f"with source '{source}'. AI may have generated this value. "
                    f"Valid sources are {' or '.join(repr(s) for s in VALID_SOURCES)} only."
                )

        cleaned[param_name] = {
            "value": value,
            "unit": param_data.get("unit", "") or "",
            "source": "report" if value is not None else "missing",
        }

    return cleaned


def extract_soil_parameters(report_text: str, llm=None) -> Dict[str, Any]:
    """
    Extract raw soil health card values from OCR text.

    Never raises: failures are reported in the "error" key with an empty
    parameter set so the caller can fall back to manual entry.

    Args:
        report_text: Text read from the soil health card
        llm: Chat model override (defaults to the JSON-mode Ollama client)

    Returns:
        {"version", "extracted_parameters"} plus "error" on failure
    """
    if not report_text or not report_text.strip():
        return {
            "version": EXTRACTION_VERSION,
            "extracted_parameters": {},
            "error": "Soil card text is empty"
        }

    try:
        if llm is None:
            llm = get_extraction_llm()
        chain = EXTRACTION_PROMPT | llm | JsonOutputParser()
        result = chain.invoke({"report_text": report_text})
        extracted = validate_extracted_parameters(result)

        found = [k for k, v in extracted.items() if v["source"] == "report"]
        print(f"✓ Extracted {len(found)} soil card parameters: {', '.join(found) or 'none'}", file=sys.stderr)

        return {
            "version": EXTRACTION_VERSION,
            "extracted_parameters": extracted
        }
    except Exception as e:
        error_msg = clean_error_message(e)
        print(f"❌ SOIL CARD EXTRACTION ERROR: {error_msg}", file=sys.stderr)
        return {
            "version": EXTRACTION_VERSION,
            "extracted_parameters": {},
            "error": error_msg
        }


def soil_sample_from_extraction(result: Dict[str, Any]) -> SoilSample:
    """Convert an extraction result into a SoilSample. Missing parameters stay absent."""
    extracted = result.get("extracted_parameters", {}) if isinstance(result, dict) else {}
    values = {
        key: data.get("value")
        for key, data in extracted.items()
        if isinstance(data, dict)
    }
    return SoilSample.from_dict(values)


def extract_soil_sample(report_text: str, llm=None) -> SoilSample:
    """
    Extract a SoilSample from soil card text.

    Raises:
        ValueError: If the extraction failed
    """
    result = extract_soil_parameters(report_text, llm=llm)
    if result.get("error"):
        raise ValueError(f"Could not read soil health card: {result['error']}")
    return soil_sample_from_extraction(result)


if __name__ == "__main__":
    text = sys.stdin.read()
    print(json.dumps(extract_soil_parameters(text), ensure_ascii=False))
