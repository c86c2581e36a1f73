#!/usr/bin/env python3
import sys
import os
import re

import pytesseract
from pytesseract import Output
from PIL import Image, ImageEnhance

# Tokens below this Tesseract confidence are dropped from structured lines
MIN_TOKEN_CONFIDENCE = 45
# Below this many characters a pass is considered weak
WEAK_TEXT_LENGTH = 150
MIN_USEFUL_TEXT_LENGTH = 50

SOIL_CARD_KEYWORDS = [
    "soil health card", "ph", "ec", "organic carbon", "nitrogen", "phosphorus",
    "potassium", "sulphur", "sulfur", "zinc", "boron", "iron", "manganese",
    "copper", "kg/ha", "ppm", "ds/m", "%",
]


def preprocess_image_for_ocr(image):
    """
    Conservative enhancement for photographed soil health cards.

    Args:
        image: PIL Image object

    Returns:
        Preprocessed PIL Image object (the original on failure)
    """
    try:
        if image.mode != 'RGB':
            image = image.convert('RGB')

        image = ImageEnhance.Contrast(image).enhance(1.5)
        image = ImageEnhance.Sharpness(image).enhance(1.3)
        image = ImageEnhance.Brightness(image).enhance(1.1)

        # Phone thumbnails are too small for Tesseract
        if image.size[0] < 800:
            scale_factor = 1.5
            new_size = (int(image.size[0] * scale_factor), int(image.size[1] * scale_factor))
            image = image.resize(new_size, Image.Resampling.LANCZOS)

        return image
    except (OSError, ValueError) as e:
        print(f"⚠️ Image preprocessing failed: {e}. Proceeding with original image", file=sys.stderr)
        return image


def extract_structured_lines(image) -> str:
    """
    Rebuild table rows from Tesseract word boxes.
    Soil health cards are tabular: words are grouped by block/paragraph/line
    and ordered left to right so each parameter stays on the line with its value.
    """
    try:
        data = pytesseract.image_to_data(
            image,
            lang='eng',
            config='--oem 1 --psm 6',
            output_type=Output.DICT,
        )
    except pytesseract.TesseractError as e:
        print(f"⚠️ Structured OCR failed: {e}", file=sys.stderr)
        return ""

    lines = {}
    for i, txt in enumerate(data.get('text', [])):
        try:
            conf = int(float(str(data['conf'][i])))
        except ValueError:
            conf = -1
        if conf < MIN_TOKEN_CONFIDENCE or not txt or not txt.strip():
            continue
        key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
        lines.setdefault(key, []).append((data['left'][i], txt))

    line_texts = []
    for key in sorted(lines):
        tokens = sorted(lines[key], key=lambda t: t[0])
        line = re.sub(r"\s+", " ", ' '.join(tok for _, tok in tokens)).strip()
        if line:
            line_texts.append(line)

    return "\n".join(line_texts)


def soil_card_hits(text: str) -> int:
    text_low = text.lower()
    return sum(1 for k in SOIL_CARD_KEYWORDS if k in text_low)


def _ocr_text(image) -> str:
    try:
        return pytesseract.image_to_string(image, lang='eng', config='--oem 1 --psm 3')
    except pytesseract.TesseractError as e:
        print(f"⚠️ OCR pass failed: {e}", file=sys.stderr)
        return ""


def extract_text_from_image(image_path) -> str:
    """
    Read a photographed soil health card.

    Runs plain and structured OCR on the raw image, adds a lightly
    preprocessed pass when both are weak, and merges the best candidates
    ranked by soil card keyword hits.

    Raises:
        FileNotFoundError: If the image does not exist
        OSError: If the file is not a readable image
    """
    if not os.path.exists(image_path):
        raise FileNotFoundError(f"File not found: {image_path}")

    with Image.open(image_path) as opened:
        image = opened.copy()

    candidates = [
        _ocr_text(image),
        extract_structured_lines(image),
    ]

    if all(len(c.strip()) < WEAK_TEXT_LENGTH for c in candidates):
        processed_image = preprocess_image_for_ocr(image)
        candidates.append(_ocr_text(processed_image))
        candidates.append(extract_structured_lines(processed_image))

    ranked = sorted(candidates, key=lambda t: (soil_card_hits(t), len(t.strip())), reverse=True)
    merged_parts = []
    for content in ranked:
        c = content.strip()
        if c and c not in merged_parts:
            merged_parts.append(c)
        if len(merged_parts) >= 3:
            break

    text_final = "\n".join(merged_parts)

    if len(text_final) < MIN_USEFUL_TEXT_LENGTH:
        print("⚠️  WARNING: OCR extraction returned insufficient text. Image quality may be poor.", file=sys.stderr)
        print("Try uploading a clearer photo of the soil health card.", file=sys.stderr)

    return text_final


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python3 extract_image.py <image_file_path>", file=sys.stderr)
        sys.exit(1)

    try:
        print(extract_text_from_image(sys.argv[1]))
    except (OSError, pytesseract.TesseractNotFoundError) as e:
        print(f"Error extracting text from image: {e}", file=sys.stderr)
        sys.exit(1)
