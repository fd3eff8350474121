"""
CoffeeTime AI Backend: AI Task Request/Response Schemas
=======================================================

What:  Pydantic models for the AI endpoints, the typed task results and the
       per-user AI Settings record.
How:   camelCase on the wire (matching the web client), snake_case in Python.
       Request fields the client may omit are Optional so the service layer
       can reject them with the same messages the client already shows.
Who:   Route handlers (bodies), AITaskService (results), AISettingsService.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from coffeetime.schemas.llm import (
    CamelModel,
    ImageProvider,
    LLMProvider,
)

Number = Union[int, float]

DEFAULT_MODEL_ID = "gemini-3-flash-preview"


# ══════════════════════════════════════════════════════════════════════════
# AI Settings (persisted per user)
# ══════════════════════════════════════════════════════════════════════════


class AISettings(CamelModel):
    """
    What:  A user's AI preferences: selected text model, keys per provider,
           and the image-generation preference.
    When:  Returned with defaults when nothing is stored yet.
    """

    selected_provider: LLMProvider = LLMProvider.GEMINI
    selected_model_id: str = DEFAULT_MODEL_ID
    api_keys: Dict[LLMProvider, str] = Field(default_factory=dict)
    image_use_text_settings: bool = True
    image_provider: ImageProvider = ImageProvider.GOOGLE
    image_api_keys: Dict[ImageProvider, str] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @field_validator("api_keys", "image_api_keys", mode="before")
    @classmethod
    def drop_empty_keys(cls, v):
        # Empty strings mean "no key"; never store them as a key
        if v is None:
            return {}
        return {k: key for k, key in dict(v).items() if key}


class AISettingsUpdate(CamelModel):
    """
    Partial update. Only fields that are set are written (merge semantics).
    Key maps merge per provider; an empty or null key removes that provider.
    """

    selected_provider: Optional[LLMProvider] = None
    selected_model_id: Optional[str] = None
    api_keys: Optional[Dict[LLMProvider, Optional[str]]] = None
    image_use_text_settings: Optional[bool] = None
    image_provider: Optional[ImageProvider] = None
    image_api_keys: Optional[Dict[ImageProvider, Optional[str]]] = None


class APIKeyUpdate(CamelModel):
    api_key: str = Field(min_length=1)


class ModelSelection(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    provider: LLMProvider
    model_id: str


class AISettingsResponse(CamelModel):
    """Settings as shown to the client: keys are masked to their last 4 chars."""

    selected_provider: LLMProvider
    selected_model_id: str
    api_keys: Dict[LLMProvider, str]
    image_use_text_settings: bool
    image_provider: ImageProvider
    image_api_keys: Dict[ImageProvider, str]
    updated_at: Optional[datetime] = None

    @classmethod
    def from_settings(cls, settings: AISettings) -> "AISettingsResponse":
        return cls(
            selected_provider=settings.selected_provider,
            selected_model_id=settings.selected_model_id,
            api_keys={p: mask_key(k) for p, k in settings.api_keys.items()},
            image_use_text_settings=settings.image_use_text_settings,
            image_provider=settings.image_provider,
            image_api_keys={p: mask_key(k) for p, k in settings.image_api_keys.items()},
            updated_at=settings.updated_at,
        )


def mask_key(key: str) -> str:
    if len(key) <= 4:
        return "*" * len(key)
    return "*" * 8 + key[-4:]


# ══════════════════════════════════════════════════════════════════════════
# Effective configuration (resolver output)
# ══════════════════════════════════════════════════════════════════════════


class AIConfig(CamelModel):
    """Caller-supplied completion config. Used only when all three fields are set."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    provider: Optional[LLMProvider] = None
    model_id: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.provider and self.model_id and self.api_key)


class EffectiveCompletionConfig(CamelModel):
    """The provider/model/key triple used for one completion request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    provider: LLMProvider
    model_id: str
    api_key: str
    source: Literal["caller", "user_settings", "fallback"]


class EffectiveImageSettings(CamelModel):
    provider: ImageProvider
    api_key: str


# ══════════════════════════════════════════════════════════════════════════
# Lenient coercion for model-produced values
# ══════════════════════════════════════════════════════════════════════════

# A number with an optional trailing unit: "18", "18.5g", "205 F", "94°C"
_NUMBER_WITH_UNIT = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*[^\d\s.:/-]*\s*$")


def lenient_number(v: Any) -> Optional[Number]:
    """Best-effort number from a model value; anything unreadable becomes None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return v if math.isfinite(v) else None
    if isinstance(v, str):
        match = _NUMBER_WITH_UNIT.match(v)
        if match is None:
            return None
        digits = match.group(1)
        return float(digits) if "." in digits else int(digits)
    return None


def lenient_text(v: Any) -> Optional[str]:
    """Strings pass through, lists are joined, other shapes are dropped."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, list):
        items = [
            str(x) for x in v if isinstance(x, (str, int, float)) and not isinstance(x, bool)
        ]
        return ", ".join(items) if items else None
    return None


def lenient_confidence(v: Any) -> Optional[float]:
    number = lenient_number(v)
    if number is None:
        return None
    return min(max(float(number), 0.0), 1.0)


# ══════════════════════════════════════════════════════════════════════════
# Analyze Image
# ══════════════════════════════════════════════════════════════════════════


class AnalyzeImageRequest(CamelModel):
    image_base64: Optional[str] = None
    product_type: Optional[str] = None
    ai_config: Optional[AIConfig] = None
    # When set, the user's stored selection is used if no aiConfig is given
    user_id: Optional[str] = None


class AnalyzeImageResult(CamelModel):
    """
    What:  Attributes read off a product photo.
    How:   `detected` stays a free-form map; its keys depend on the product type
           (coffee: roaster/origin/roastLevel/flavorNotes..., grinder:
           manufacturer/burrType..., brewer: manufacturer/brewMethod...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    detected: Dict[str, Any] = Field(default_factory=dict)
    barcode: Optional[str] = None
    confidence: float = 0.0
    sources: List[str] = Field(default_factory=list)

    @field_validator("detected", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return {} if v is None else v

    @field_validator("sources", mode="before")
    @classmethod
    def sources_as_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [s for s in (lenient_text(x) for x in v) if s]
        return v

    @field_validator("barcode", mode="before")
    @classmethod
    def barcode_as_text(cls, v):
        return lenient_text(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        # Unreadable confidence ("high", [], {}) reads as no confidence
        score = lenient_confidence(v)
        return 0.0 if score is None else score


# ══════════════════════════════════════════════════════════════════════════
# Parse Voice
# ══════════════════════════════════════════════════════════════════════════


class EquipmentItem(CamelModel):
    """Only id and name ever reach the prompt."""

    id: str
    name: str


class UserEquipment(CamelModel):
    coffees: List[EquipmentItem] = Field(default_factory=list)
    grinders: List[EquipmentItem] = Field(default_factory=list)
    brewers: List[EquipmentItem] = Field(default_factory=list)


class ParseVoiceRequest(CamelModel):
    transcript: Optional[str] = None
    user_equipment: UserEquipment = Field(default_factory=UserEquipment)
    ai_config: Optional[AIConfig] = None
    user_id: Optional[str] = None


class ParsedBrew(CamelModel):
    """
    What:  Brew attributes explicitly mentioned in the transcript; absent means
           not said.
    How:   Values are coerced leniently ("18g" reads as 18, a list of tasting
           notes is joined). Unreadable values are dropped rather than failing
           the whole result. Keys outside the known set are kept as-is.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    dose_grams: Optional[Number] = None
    water_grams: Optional[Number] = None
    water_temp_f: Optional[Number] = None
    water_temp_c: Optional[Number] = None
    grind_setting: Optional[Union[Number, str]] = None
    bloom_time_seconds: Optional[Number] = None
    bloom_water_grams: Optional[Number] = None
    total_time_seconds: Optional[Number] = None
    tds_percent: Optional[Number] = None
    rating: Optional[Number] = None
    technique_notes: Optional[str] = None
    tasting_notes: Optional[str] = None

    @field_validator(
        "dose_grams",
        "water_grams",
        "water_temp_f",
        "water_temp_c",
        "bloom_time_seconds",
        "bloom_water_grams",
        "total_time_seconds",
        "tds_percent",
        "rating",
        mode="before",
    )
    @classmethod
    def as_number(cls, v):
        return lenient_number(v)

    @field_validator("grind_setting", mode="before")
    @classmethod
    def as_setting(cls, v):
        # Grinder settings are often non-numeric ("2.5 rotations", "medium-fine")
        if isinstance(v, str):
            return v
        return lenient_number(v)

    @field_validator("technique_notes", "tasting_notes", mode="before")
    @classmethod
    def as_text(cls, v):
        return lenient_text(v)


class MatchedEquipment(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def as_text(cls, v):
        return lenient_text(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def as_confidence(cls, v):
        return lenient_confidence(v)


class MatchedEquipmentSet(CamelModel):
    coffee: Optional[MatchedEquipment] = None
    grinder: Optional[MatchedEquipment] = None
    brewer: Optional[MatchedEquipment] = None

    @field_validator("coffee", "grinder", "brewer", mode="before")
    @classmethod
    def unmatched_as_none(cls, v):
        # "none", "" or [] all mean no match
        return v if isinstance(v, (dict, MatchedEquipment)) else None


class ParseVoiceResult(CamelModel):
    parsed: ParsedBrew = Field(default_factory=ParsedBrew)
    matched_equipment: MatchedEquipmentSet = Field(default_factory=MatchedEquipmentSet)
    raw_notes: Optional[str] = None

    @field_validator("parsed", "matched_equipment", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return {} if v is None else v

    @field_validator("raw_notes", mode="before")
    @classmethod
    def notes_as_text(cls, v):
        return lenient_text(v)


# ══════════════════════════════════════════════════════════════════════════
# Generate Image
# ══════════════════════════════════════════════════════════════════════════


class GenerateImageOptions(CamelModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None


class GenerateImageRequest(CamelModel):
    product_name: Optional[str] = None
    product_type: Optional[str] = None
    user_id: Optional[str] = None
    options: Optional[GenerateImageOptions] = None


# ══════════════════════════════════════════════════════════════════════════
# Error / Health
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """Error envelope returned by every endpoint on failure."""

    error: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="Settings store connectivity: connected, disconnected")
    fallback_key: str = Field(description="Server fallback key: configured, missing")
    uptime_seconds: float
