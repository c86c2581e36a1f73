#!/usr/bin/env python3
import sys
import json
from typing import Dict, Any

from soil_insights import SoilSample, analyze_sample, compute_insights
from soil_card_module import extract_soil_sample
from guidance_module import generate_guidance
from extract_image import extract_text_from_image


def load_sample(request: Dict[str, Any]) -> SoilSample:
    """
    Resolve the soil sample for a request.
    Precedence: soil_data (manual form / card JSON), then report_text, then image_path.

    Raises:
        ValueError: If no source is given or the source cannot be read
    """
    if request.get("soil_data") is not None:
        return SoilSample.from_dict(request["soil_data"])

    if request.get("report_text"):
        return extract_soil_sample(request["report_text"])

    if request.get("image_path"):
        text = extract_text_from_image(request["image_path"])
        return extract_soil_sample(text)

    raise ValueError("Request must include 'soil_data', 'report_text' or 'image_path'")


def get_flag(request: Dict[str, Any], key: str) -> bool:
    """
    Read an optional boolean request field.

    Raises:
        ValueError: If the field is present but not a JSON boolean
    """
    value = request.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


def run_request(request: Dict[str, Any]) -> Dict[str, Any]:
    """Analyze one request and build the response for the presentation layer."""
    if not isinstance(request, dict):
        raise ValueError("Request must be a JSON object")

    flag_unmeasured = get_flag(request, "flag_unmeasured")
    include_guidance = get_flag(request, "include_guidance")

    sample = load_sample(request)
    insights = compute_insights(sample, flag_unmeasured=flag_unmeasured)

    result = {"success": True}
    result.update(analyze_sample(sample, insights=insights))

    if include_guidance:
        result["guidance"] = generate_guidance(
            sample,
            insights=insights,
            language=request.get("lang", "en"),
        )

    return result


def main():
    try:
        input_data = json.loads(sys.stdin.read())
        result = run_request(input_data)
        print(json.dumps(result, ensure_ascii=False))

    except Exception as e:
        error_result = {
            "success": False,
            "error": str(e),
        }
        print(json.dumps(error_result, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
