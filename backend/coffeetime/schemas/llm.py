"""
CoffeeTime AI Backend: Canonical LLM Types
==========================================

What:  Provider-independent request/response model shared by every adapter.
How:   Pydantic models; content parts are a discriminated union on `kind`.
Who:   Built by the task service, consumed by the dispatcher and adapters.

Provider discriminants are closed enums. Adding a provider means adding an
enum member, and the dispatchers refuse to start until an adapter exists
for every member.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LLMProvider(str, Enum):
    """Text/vision completion providers."""

    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class ImageProvider(str, Enum):
    """Image-generation providers."""

    GOOGLE = "google"
    OPENAI = "openai"


class ProductType(str, Enum):
    COFFEE = "coffee"
    GRINDER = "grinder"
    BREWER = "brewer"


# Human-readable names used in user-facing configuration messages
LLM_PROVIDER_NAMES = {
    LLMProvider.GEMINI: "Google Gemini",
    LLMProvider.ANTHROPIC: "Anthropic Claude",
    LLMProvider.OPENAI: "OpenAI",
}

IMAGE_PROVIDER_NAMES = {
    ImageProvider.GOOGLE: "Google",
    ImageProvider.OPENAI: "OpenAI",
}


class CamelModel(BaseModel):
    """Base for models exchanged as camelCase JSON with the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ══════════════════════════════════════════════════════════════════════════
# Model Catalog entries
# ══════════════════════════════════════════════════════════════════════════


class ModelPricing(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    input_per_million: float
    output_per_million: float


class LLMModel(CamelModel):
    """An immutable catalog entry describing one model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    provider: LLMProvider
    display_name: str
    description: str = ""
    context_window: int
    output_limit: int
    supports_vision: bool
    endpoint: str
    pricing: ModelPricing
    knowledge_cutoff: str


# ══════════════════════════════════════════════════════════════════════════
# Messages
# ══════════════════════════════════════════════════════════════════════════


class TextPart(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Inline image. `image_bytes` is the base64 payload, never raw bytes."""

    kind: Literal["image"] = "image"
    image_bytes: str
    mime_type: str = "image/jpeg"


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="kind")]


class Message(BaseModel):
    """A conversation message. Content is plain text or a non-empty part list."""

    role: Literal["user", "assistant", "system"]
    content: Union[str, List[ContentPart]]

    @field_validator("content")
    @classmethod
    def parts_not_empty(cls, v):
        if isinstance(v, list) and not v:
            raise ValueError("Message content parts must not be empty")
        return v

    @property
    def parts(self) -> List[Union[TextPart, ImagePart]]:
        """Content as a part list; plain text becomes a single text part."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "\n".join(p.text for p in self.parts if isinstance(p, TextPart))


class CompletionRequest(BaseModel):
    """One completion call. Built fresh per request; never persisted."""

    model_config = ConfigDict(protected_namespaces=())

    provider: LLMProvider
    model_id: str
    api_key: str
    messages: List[Message]
    system_prompt: Optional[str] = None


class Usage(BaseModel):
    input_tokens: int
    output_tokens: int


class CompletionResponse(BaseModel):
    """The full, non-streamed reply of one completion."""

    model_config = ConfigDict(protected_namespaces=())

    text: str
    model_id: str
    usage: Optional[Usage] = None


class GeneratedImage(CamelModel):
    """Base64 image bytes plus MIME type, regardless of backend envelope."""

    image_base64: str
    mime_type: str
