"""
CoffeeTime AI Backend: Prompt Builders
======================================

What:  Pure string factories for every prompt the AI tasks send.
How:   Templates are module constants; builders only substitute values.
Who:   AITaskService.

The JSON shapes described in these prompts are the contract the structured
extraction step and the result schemas in `schemas/ai.py` rely on.
"""

import json
from typing import Iterable, Optional, Union

from coffeetime.exceptions import ValidationError
from coffeetime.schemas.ai import EquipmentItem, UserEquipment
from coffeetime.schemas.llm import ProductType

PRODUCT_TYPE_REQUIRED = "Valid product type (coffee, grinder, brewer) is required"


def parse_product_type(value: Union[str, ProductType, None]) -> ProductType:
    """Product type from client input. Anything outside the closed set is rejected."""
    try:
        return ProductType(value)
    except ValueError:
        raise ValidationError(PRODUCT_TYPE_REQUIRED, field="productType") from None


# ══════════════════════════════════════════════════════════════════════════
# Image Analysis
# ══════════════════════════════════════════════════════════════════════════

_COFFEE_ANALYSIS_PROMPT = """Analyze this coffee bag/packaging image. Extract:
- Brand/Roaster name
- Coffee name/origin
- Roast level (light, medium, dark)
- Flavor notes if listed
- Any visible barcode number

Return JSON:
{
  "detected": {
    "roaster": "brand name" or null,
    "brand": "brand name" or null,
    "model": "coffee name" or null,
    "origin": "country/region" or null,
    "roastLevel": "light/medium/dark" or null,
    "flavorNotes": ["note1", "note2"] or []
  },
  "barcode": "number" or null,
  "confidence": 0-1 (how confident you are in the reading),
  "sources": ["Text from label", "Logo recognition"]
}"""

_GRINDER_ANALYSIS_PROMPT = """Analyze this coffee grinder image. Extract:
- Manufacturer/brand
- Model name/number
- Type (manual/electric)
- Burr type if visible (flat/conical, steel/ceramic)

Return JSON:
{
  "detected": {
    "manufacturer": "brand name" or null,
    "brand": "brand name" or null,
    "model": "model name" or null,
    "burrType": "flat steel/conical ceramic/etc" or null
  },
  "barcode": "number" or null,
  "confidence": 0-1,
  "sources": ["Label text", "Visual identification"]
}"""

_BREWER_ANALYSIS_PROMPT = """Analyze this coffee brewer/brewing device image. Extract:
- Brand/manufacturer
- Model name
- Brew method type (pour over, French press, espresso, etc.)

Return JSON:
{
  "detected": {
    "manufacturer": "brand name" or null,
    "brand": "brand name" or null,
    "model": "model name" or null,
    "brewMethod": "pour over/French press/etc" or null
  },
  "barcode": "number" or null,
  "confidence": 0-1,
  "sources": ["Label text", "Visual identification"]
}"""

IMAGE_ANALYSIS_PROMPTS = {
    ProductType.COFFEE: _COFFEE_ANALYSIS_PROMPT,
    ProductType.GRINDER: _GRINDER_ANALYSIS_PROMPT,
    ProductType.BREWER: _BREWER_ANALYSIS_PROMPT,
}


def build_image_analysis_prompt(product_type: Union[str, ProductType]) -> str:
    return IMAGE_ANALYSIS_PROMPTS[parse_product_type(product_type)]


# ══════════════════════════════════════════════════════════════════════════
# Voice Parsing
# ══════════════════════════════════════════════════════════════════════════

_VOICE_SYSTEM_PROMPT = """You are a coffee brew log assistant. Extract structured data from a voice transcript describing a coffee brew.

Available equipment:
- Coffees: {coffees}
- Grinders: {grinders}
- Brewers: {brewers}

Extract any mentioned values and match equipment to the user's list. Return JSON in this format:
{{
  "parsed": {{
    "doseGrams": number or null,
    "waterGrams": number or null,
    "waterTempF": number or null (Fahrenheit),
    "waterTempC": number or null (Celsius),
    "grindSetting": number or null,
    "bloomTimeSeconds": number or null,
    "bloomWaterGrams": number or null,
    "totalTimeSeconds": number or null,
    "tdsPercent": number or null,
    "rating": number 1-10 or null,
    "techniqueNotes": string or null,
    "tastingNotes": string or null
  }},
  "matchedEquipment": {{
    "coffee": {{ "id": "matched-id", "name": "matched-name", "confidence": 0-1 }} or null,
    "grinder": {{ "id": "matched-id", "name": "matched-name", "confidence": 0-1 }} or null,
    "brewer": {{ "id": "matched-id", "name": "matched-name", "confidence": 0-1 }} or null
  }},
  "rawNotes": "any other information that doesn't fit the structured fields"
}}

Only include fields that are mentioned. Convert time expressions like "3 minutes 30 seconds" to seconds (210).
Match equipment by name similarity - partial matches are OK if confident.
If temperature is given without unit, assume Fahrenheit if > 50, Celsius otherwise."""


def _equipment_json(items: Iterable[EquipmentItem]) -> str:
    # Only id and name are ever shown to the model
    return json.dumps([{"id": item.id, "name": item.name} for item in items], separators=(",", ":"))


def build_voice_system_prompt(equipment: Optional[UserEquipment] = None) -> str:
    equipment = equipment or UserEquipment()
    return _VOICE_SYSTEM_PROMPT.format(
        coffees=_equipment_json(equipment.coffees),
        grinders=_equipment_json(equipment.grinders),
        brewers=_equipment_json(equipment.brewers),
    )


def build_voice_user_message(transcript: str) -> str:
    return f'Parse this coffee brew description: "{transcript}"'


# ══════════════════════════════════════════════════════════════════════════
# Image Generation
# ══════════════════════════════════════════════════════════════════════════

PRODUCT_NOUNS = {
    ProductType.COFFEE: "coffee bag",
    ProductType.GRINDER: "coffee grinder",
    ProductType.BREWER: "coffee brewer",
}


def build_image_generation_prompt(
    product_name: str,
    product_type: Union[str, ProductType],
    brand: Optional[str] = None,
    model: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """
    Product photography prompt for the image backends.

    e.g. "Professional product photo of a Counter Culture Hologram coffee bag, ..."
    """
    noun = PRODUCT_NOUNS[parse_product_type(product_type)]
    subject = " ".join(part for part in (brand, model, product_name) if part)

    prompt = (
        f"Professional product photo of a {subject} {noun}, "
        "centered on a clean white background, soft studio lighting, "
        "sharp focus, high resolution, e-commerce catalog style"
    )
    if description:
        prompt += f". Details: {description}"
    return prompt
