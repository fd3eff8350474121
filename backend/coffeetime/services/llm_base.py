"""
CoffeeTime AI Backend: Provider Adapter Interface
=================================================

What:  Abstract base class every text/vision provider adapter implements,
       plus the single outbound HTTP helper shared with the image backends.
How:   Concrete adapters supply four translation hooks (wire request, target
       URL/headers, wire response, error envelope). The base class performs
       exactly one non-streaming POST and turns failures into ProviderError /
       EmptyResponseError.
Who:   GeminiAdapter, AnthropicAdapter, OpenAIAdapter; called by LLMDispatcher.

Adapter Contract:
    - Canonical messages are translated to the provider's native roles and
      content encoding. The system prompt and any system-role messages are
      attached through the provider's own mechanism, never dropped.
    - One HTTP call per complete(); the response is awaited fully.
    - Non-success status → ProviderError carrying the provider's own message
      when its error envelope has one, a generic message otherwise.
    - Success with no text payload → EmptyResponseError.
    - Usage is copied only when the provider reports it.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel

from coffeetime.exceptions import ProviderError
from coffeetime.schemas.llm import (
    CompletionResponse,
    LLMModel,
    LLMProvider,
    Message,
)

logger = logging.getLogger(__name__)


async def post_json(
    provider: str,
    url: str,
    *,
    body: Mapping[str, Any],
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, str]] = None,
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """
    Send one JSON POST and return the raw response, whatever its status.

    Timeouts and transport failures become a generic ProviderError; status
    handling is left to the caller because the text and image backends map
    statuses differently.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            return await client.post(url, json=dict(body), headers=headers, params=params or None)
    except httpx.TimeoutException as e:
        raise ProviderError(
            provider=provider,
            message=f"{provider} request timed out",
            context={"error_type": type(e).__name__},
        ) from e
    except httpx.HTTPError as e:
        raise ProviderError(
            provider=provider,
            message=f"{provider} provider error",
            context={"error_type": type(e).__name__, "detail": str(e)},
        ) from e


def read_json(response: httpx.Response) -> Optional[Dict[str, Any]]:
    """Body as a dict, or None when it is not a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def dump_wire(model: BaseModel) -> Dict[str, Any]:
    """Serialize a wire structure the way providers expect it (aliases, no nulls)."""
    return model.model_dump(by_alias=True, exclude_none=True)


def split_system_messages(
    messages: List[Message], system_prompt: Optional[str]
) -> Tuple[Optional[str], List[Message]]:
    """
    Fold system-role messages into one system text.

    Returns the combined system text (None when there is none) and the
    remaining user/assistant messages in their original order.
    """
    system_texts = [system_prompt] if system_prompt else []
    conversation: List[Message] = []
    for message in messages:
        if message.role == "system":
            system_texts.append(message.text)
        else:
            conversation.append(message)
    combined = "\n\n".join(t for t in system_texts if t)
    return (combined or None), conversation


class ProviderAdapter(ABC):
    """
    Base class for text/vision completion adapters.

    Subclasses set `provider` and implement the translation hooks; they
    never touch httpx directly.
    """

    provider: LLMProvider

    def __init__(
        self,
        timeout: float = 60.0,
        max_output_tokens: int = 4096,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Seconds before the outbound call is abandoned.
            max_output_tokens: Upper bound on requested output tokens.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.transport = transport

    def output_tokens_for(self, model: LLMModel) -> int:
        return min(self.max_output_tokens, model.output_limit)

    async def complete(
        self,
        model: LLMModel,
        messages: List[Message],
        api_key: str,
        system_prompt: Optional[str] = None,
    ) -> CompletionResponse:
        """
        Run one completion against this provider.

        Raises:
            ProviderError: non-success status, timeout or transport failure
            EmptyResponseError: success without any text payload
        """
        call_id = str(uuid.uuid4())[:8]
        name = self.provider.value
        wire_request = self.build_request(model, messages, system_prompt)
        url, headers, params = self.request_target(model, api_key)

        logger.info("[%s] Starting %s completion model=%s", call_id, name, model.id)
        start_time = time.time()

        response = await post_json(
            name,
            url,
            body=dump_wire(wire_request),
            headers=headers,
            params=params,
            timeout=self.timeout,
            transport=self.transport,
        )
        duration_ms = (time.time() - start_time) * 1000
        data = read_json(response)

        if response.is_error:
            provider_message = self.error_message(data) if data else None
            logger.warning(
                "[%s] %s returned HTTP %d after %.0fms: %s",
                call_id,
                name,
                response.status_code,
                duration_ms,
                provider_message or "no error envelope",
            )
            raise ProviderError(
                provider=name,
                message=provider_message or f"{name} provider error (HTTP {response.status_code})",
                status_code=response.status_code,
                context={"call_id": call_id, "model_id": model.id},
            )

        if data is None:
            raise ProviderError(
                provider=name,
                message=f"{name} returned a response that is not JSON",
                status_code=response.status_code,
                context={"call_id": call_id},
            )

        result = self.parse_response(model, data)
        logger.info(
            "[%s] %s completion finished in %.0fms, %d chars",
            call_id,
            name,
            duration_ms,
            len(result.text),
        )
        return result

    # ── Translation hooks ─────────────────────────────────────────────────

    @abstractmethod
    def build_request(
        self,
        model: LLMModel,
        messages: List[Message],
        system_prompt: Optional[str],
    ) -> BaseModel:
        """Canonical messages → provider wire request structure."""

    @abstractmethod
    def request_target(
        self, model: LLMModel, api_key: str
    ) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        """URL, headers and query parameters, including authentication."""

    @abstractmethod
    def parse_response(self, model: LLMModel, data: Dict[str, Any]) -> CompletionResponse:
        """Provider wire response → CompletionResponse. Raises EmptyResponseError."""

    @abstractmethod
    def error_message(self, data: Dict[str, Any]) -> Optional[str]:
        """Message from the provider's error envelope, if it has one."""
