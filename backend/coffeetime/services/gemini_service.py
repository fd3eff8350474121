"""
CoffeeTime AI Backend: Google Gemini Adapter
============================================

What:  Provider adapter for the Gemini `generateContent` REST API.
How:   Canonical messages map onto `contents[]`: the `assistant` role becomes
       `model`, image parts become `inlineData {mimeType, data}`, and the
       system prompt travels in `systemInstruction`. The API key goes in the
       `key` query parameter.
Who:   Registered in LLMDispatcher under LLMProvider.GEMINI.

Wire format (request):
    POST {model.endpoint}?key=API_KEY
    {
      "contents": [{"role": "user", "parts": [{"text": "..."},
                    {"inlineData": {"mimeType": "image/jpeg", "data": "<b64>"}}]}],
      "systemInstruction": {"parts": [{"text": "..."}]},
      "generationConfig": {"maxOutputTokens": 4096}
    }

Wire format (response):
    {"candidates": [{"content": {"role": "model", "parts": [{"text": "..."}]}}],
     "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 34}}
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

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

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Wire Structures
# ══════════════════════════════════════════════════════════════════════════


class GeminiWire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeminiInlineData(GeminiWire):
    mime_type: str
    data: str


class GeminiPart(GeminiWire):
    text: Optional[str] = None
    inline_data: Optional[GeminiInlineData] = None
    thought: Optional[bool] = None


class GeminiContent(GeminiWire):
    role: Optional[Literal["user", "model"]] = None
    parts: List[GeminiPart] = []


class GeminiGenerationConfig(GeminiWire):
    max_output_tokens: Optional[int] = None


class GeminiRequest(GeminiWire):
    contents: List[GeminiContent]
    system_instruction: Optional[GeminiContent] = None
    generation_config: Optional[GeminiGenerationConfig] = None


class GeminiCandidate(GeminiWire):
    content: Optional[GeminiContent] = None
    finish_reason: Optional[str] = None


class GeminiUsageMetadata(GeminiWire):
    prompt_token_count: Optional[int] = None
    candidates_token_count: Optional[int] = None


class GeminiResponse(GeminiWire):
    candidates: List[GeminiCandidate] = []
    usage_metadata: Optional[GeminiUsageMetadata] = None


# ══════════════════════════════════════════════════════════════════════════
# Canonical ↔ Wire Mapping
# ══════════════════════════════════════════════════════════════════════════

_ROLE_TO_WIRE = {"user": "user", "assistant": "model"}
_ROLE_FROM_WIRE = {"user": "user", "model": "assistant"}


def to_gemini_content(message: Message) -> GeminiContent:
    parts = []
    for part in message.parts:
        if isinstance(part, TextPart):
            parts.append(GeminiPart(text=part.text))
        else:
            parts.append(
                GeminiPart(
                    inline_data=GeminiInlineData(mime_type=part.mime_type, data=part.image_bytes)
                )
            )
    return GeminiContent(role=_ROLE_TO_WIRE[message.role], parts=parts)


def from_gemini_content(content: GeminiContent) -> Message:
    parts = []
    for part in content.parts:
        if part.inline_data is not None:
            parts.append(
                ImagePart(image_bytes=part.inline_data.data, mime_type=part.inline_data.mime_type)
            )
        elif part.text is not None:
            parts.append(TextPart(text=part.text))
    return Message(role=_ROLE_FROM_WIRE[content.role or "user"], content=parts)


class GeminiAdapter(ProviderAdapter):
    """Google Gemini `generateContent` adapter."""

    provider = LLMProvider.GEMINI

    def build_request(
        self,
        model: LLMModel,
        messages: List[Message],
        system_prompt: Optional[str],
    ) -> GeminiRequest:
        system_text, conversation = split_system_messages(messages, system_prompt)
        system_instruction = None
        if system_text:
            system_instruction = GeminiContent(parts=[GeminiPart(text=system_text)])
        return GeminiRequest(
            contents=[to_gemini_content(m) for m in conversation],
            system_instruction=system_instruction,
            generation_config=GeminiGenerationConfig(
                max_output_tokens=self.output_tokens_for(model)
            ),
        )

    def request_target(
        self, model: LLMModel, api_key: str
    ) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return model.endpoint, {"Content-Type": "application/json"}, {"key": api_key}

    def parse_response(self, model: LLMModel, data: Dict[str, Any]) -> CompletionResponse:
        try:
            wire = GeminiResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                provider=self.provider.value,
                message="gemini returned an unexpected response shape",
                context={"detail": str(e)},
            ) from e

        if not wire.candidates or wire.candidates[0].content is None:
            raise EmptyResponseError(self.provider.value, context={"model_id": model.id})

        # Thought parts are the model's reasoning, not its answer
        parts = wire.candidates[0].content.parts
        texts = [p.text for p in parts if p.text is not None and not p.thought]
        skipped = sum(1 for p in parts if p.thought)
        if skipped:
            logger.debug("Skipped %d thought part(s) from %s", skipped, model.id)

        text = "".join(texts)
        if not text.strip():
            raise EmptyResponseError(
                self.provider.value,
                context={"model_id": model.id, "finish_reason": wire.candidates[0].finish_reason},
            )

        usage = None
        meta = wire.usage_metadata
        if meta and meta.prompt_token_count is not None and meta.candidates_token_count is not None:
            usage = Usage(
                input_tokens=meta.prompt_token_count,
                output_tokens=meta.candidates_token_count,
            )

        return CompletionResponse(text=text, model_id=model.id, usage=usage)

    def error_message(self, data: Dict[str, Any]) -> Optional[str]:
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return None
