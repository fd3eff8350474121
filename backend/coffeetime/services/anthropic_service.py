"""
CoffeeTime AI Backend: Anthropic Claude Adapter
===============================================

What:  Provider adapter for the Anthropic Messages API.
How:   Roles keep their names; image parts become base64 `image` blocks; the
       system prompt is the top-level `system` field. Authentication uses the
       `x-api-key` header together with a pinned `anthropic-version`.
Who:   Registered in LLMDispatcher under LLMProvider.ANTHROPIC.

Wire format (request):
    POST https://api.anthropic.com/v1/messages
    {"model": "...", "max_tokens": 4096, "system": "...",
     "messages": [{"role": "user", "content": [
        {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "<b64>"}},
        {"type": "text", "text": "..."}]}]}

Wire format (response):
    {"content": [{"type": "text", "text": "..."}],
     "usage": {"input_tokens": 12, "output_tokens": 34}}
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from coffeetime.exceptions import EmptyResponseError, ProviderError
from coffeetime.schemas.llm import (
    CompletionResponse,
    ImagePart,
    LLMModel,
    LLMProvider,
    Message,
    TextPart,
    Usage,
)
from coffeetime.services.llm_base import ProviderAdapter, split_system_messages

ANTHROPIC_VERSION = "2023-06-01"


# ── Wire Structures ───────────────────────────────────────────────────────


class AnthropicImageSource(BaseModel):
    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class AnthropicTextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class AnthropicImageBlock(BaseModel):
    type: Literal["image"] = "image"
    source: AnthropicImageSource


AnthropicBlock = Union[AnthropicTextBlock, AnthropicImageBlock]


class AnthropicMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: Union[str, List[AnthropicBlock]]


class AnthropicRequest(BaseModel):
    model: str
    max_tokens: int
    messages: List[AnthropicMessage]
    system: Optional[str] = None


class AnthropicResponseBlock(BaseModel):
    type: str
    text: Optional[str] = None


class AnthropicUsage(BaseModel):
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class AnthropicResponse(BaseModel):
    content: List[AnthropicResponseBlock] = []
    usage: Optional[AnthropicUsage] = None
    stop_reason: Optional[str] = None


# ── Canonical ↔ Wire Mapping ──────────────────────────────────────────────


def to_anthropic_message(message: Message) -> AnthropicMessage:
    if isinstance(message.content, str):
        return AnthropicMessage(role=message.role, content=message.content)
    blocks: List[AnthropicBlock] = []
    for part in message.content:
        if isinstance(part, TextPart):
            blocks.append(AnthropicTextBlock(text=part.text))
        else:
            blocks.append(
                AnthropicImageBlock(
                    source=AnthropicImageSource(media_type=part.mime_type, data=part.image_bytes)
                )
            )
    return AnthropicMessage(role=message.role, content=blocks)


def from_anthropic_message(message: AnthropicMessage) -> Message:
    if isinstance(message.content, str):
        return Message(role=message.role, content=message.content)
    parts = []
    for block in message.content:
        if isinstance(block, AnthropicTextBlock):
            parts.append(TextPart(text=block.text))
        else:
            parts.append(
                ImagePart(image_bytes=block.source.data, mime_type=block.source.media_type)
            )
    return Message(role=message.role, content=parts)


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Messages API adapter."""

    provider = LLMProvider.ANTHROPIC

    def build_request(
        self,
        model: LLMModel,
        messages: List[Message],
        system_prompt: Optional[str],
    ) -> AnthropicRequest:
        system_text, conversation = split_system_messages(messages, system_prompt)
        return AnthropicRequest(
            model=model.id,
            max_tokens=self.output_tokens_for(model),
            messages=[to_anthropic_message(m) for m in conversation],
            system=system_text,
        )

    def request_target(
        self, model: LLMModel, api_key: str
    ) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        return model.endpoint, headers, {}

    def parse_response(self, model: LLMModel, data: Dict[str, Any]) -> CompletionResponse:
        try:
            wire = AnthropicResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                provider=self.provider.value,
                message="anthropic returned an unexpected response shape",
                context={"detail": str(e)},
            ) from e

        text = "".join(b.text for b in wire.content if b.type == "text" and b.text is not None)
        if not text.strip():
            raise EmptyResponseError(
                self.provider.value,
                context={"model_id": model.id, "stop_reason": wire.stop_reason},
            )

        usage = None
        if wire.usage and wire.usage.input_tokens is not None and wire.usage.output_tokens is not None:
            usage = Usage(
                input_tokens=wire.usage.input_tokens,
                output_tokens=wire.usage.output_tokens,
            )

        return CompletionResponse(text=text, model_id=model.id, usage=usage)

    def error_message(self, data: Dict[str, Any]) -> Optional[str]:
        # {"type": "error", "error": {"type": "authentication_error", "message": "..."}}
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return None
