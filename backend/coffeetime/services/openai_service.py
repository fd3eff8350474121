"""
CoffeeTime AI Backend: OpenAI Chat Completions Adapter
======================================================

What:  Provider adapter for the OpenAI Chat Completions API.
How:   The system prompt becomes a leading `system` message. Image parts
       become `image_url` parts holding a `data:` URL with the base64
       payload. Authentication is a Bearer token.
Who:   Registered in LLMDispatcher under LLMProvider.OPENAI.

Wire format (request):
    POST https://api.openai.com/v1/chat/completions
    {"model": "gpt-4o", "max_completion_tokens": 4096,
     "messages": [{"role": "system", "content": "..."},
                  {"role": "user", "content": [
                     {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,<b64>"}},
                     {"type": "text", "text": "..."}]}]}

Wire format (response):
    {"choices": [{"message": {"role": "assistant", "content": "..."}}],
     "usage": {"prompt_tokens": 12, "completion_tokens": 34}}
"""

import re
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

_DATA_URL = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)


# ── Wire Structures ───────────────────────────────────────────────────────


class OpenAIImageURL(BaseModel):
    url: str


class OpenAITextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class OpenAIImageContent(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: OpenAIImageURL


OpenAIContent = Union[OpenAITextContent, OpenAIImageContent]


class OpenAIMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: Union[str, List[OpenAIContent]]


class OpenAIRequest(BaseModel):
    model: str
    messages: List[OpenAIMessage]
    max_completion_tokens: Optional[int] = None


class OpenAIResponseMessage(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None
    refusal: Optional[str] = None


class OpenAIChoice(BaseModel):
    message: Optional[OpenAIResponseMessage] = None
    finish_reason: Optional[str] = None


class OpenAIUsage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


class OpenAIResponse(BaseModel):
    choices: List[OpenAIChoice] = []
    usage: Optional[OpenAIUsage] = None


# ── Canonical ↔ Wire Mapping ──────────────────────────────────────────────


def image_data_url(part: ImagePart) -> str:
    return f"data:{part.mime_type};base64,{part.image_bytes}"


def to_openai_message(message: Message) -> OpenAIMessage:
    if isinstance(message.content, str):
        return OpenAIMessage(role=message.role, content=message.content)
    content: List[OpenAIContent] = []
    for part in message.content:
        if isinstance(part, TextPart):
            content.append(OpenAITextContent(text=part.text))
        else:
            content.append(OpenAIImageContent(image_url=OpenAIImageURL(url=image_data_url(part))))
    return OpenAIMessage(role=message.role, content=content)


def from_openai_message(message: OpenAIMessage) -> Message:
    if isinstance(message.content, str):
        return Message(role=message.role, content=message.content)
    parts = []
    for item in message.content:
        if isinstance(item, OpenAITextContent):
            parts.append(TextPart(text=item.text))
            continue
        match = _DATA_URL.match(item.image_url.url)
        if match is None:
            raise ValueError("Only base64 data URLs can be mapped back to image parts")
        parts.append(ImagePart(image_bytes=match.group("data"), mime_type=match.group("mime")))
    return Message(role=message.role, content=parts)


class OpenAIAdapter(ProviderAdapter):
    """OpenAI Chat Completions adapter."""

    provider = LLMProvider.OPENAI

    def build_request(
        self,
        model: LLMModel,
        messages: List[Message],
        system_prompt: Optional[str],
    ) -> OpenAIRequest:
        system_text, conversation = split_system_messages(messages, system_prompt)
        wire_messages = []
        if system_text:
            wire_messages.append(OpenAIMessage(role="system", content=system_text))
        wire_messages.extend(to_openai_message(m) for m in conversation)
        return OpenAIRequest(
            model=model.id,
            messages=wire_messages,
            max_completion_tokens=self.output_tokens_for(model),
        )

    def request_target(
        self, model: LLMModel, api_key: str
    ) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        return model.endpoint, headers, {}

    def parse_response(self, model: LLMModel, data: Dict[str, Any]) -> CompletionResponse:
        try:
            wire = OpenAIResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                provider=self.provider.value,
                message="openai returned an unexpected response shape",
                context={"detail": str(e)},
            ) from e

        if not wire.choices or wire.choices[0].message is None:
            raise EmptyResponseError(self.provider.value, context={"model_id": model.id})

        text = wire.choices[0].message.content
        if not text or not text.strip():
            raise EmptyResponseError(
                self.provider.value,
                context={"model_id": model.id, "finish_reason": wire.choices[0].finish_reason},
            )

        usage = None
        if (
            wire.usage
            and wire.usage.prompt_tokens is not None
            and wire.usage.completion_tokens is not None
        ):
            usage = Usage(
                input_tokens=wire.usage.prompt_tokens,
                output_tokens=wire.usage.completion_tokens,
            )

        return CompletionResponse(text=text, model_id=model.id, usage=usage)

    def error_message(self, data: Dict[str, Any]) -> Optional[str]:
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return None
