"""
CoffeeTime AI Backend: LLM Dispatcher
=====================================

What:  Routes a canonical CompletionRequest to the adapter for its provider.
How:   Resolves the model in the catalog first (unknown id → ModelNotFoundError
       with no network traffic), then delegates to the registered adapter.
Who:   AITaskService.
"""

import logging
from typing import Iterable, Mapping, Optional

import httpx

from coffeetime.exceptions import ConfigurationError
from coffeetime.schemas.llm import CompletionRequest, CompletionResponse, LLMProvider
from coffeetime.services.anthropic_service import AnthropicAdapter
from coffeetime.services.gemini_service import GeminiAdapter
from coffeetime.services.llm_base import ProviderAdapter
from coffeetime.services.model_catalog import ModelCatalog
from coffeetime.services.openai_service import OpenAIAdapter

logger = logging.getLogger(__name__)


class LLMDispatcher:
    """Provider-agnostic entry point for text/vision completions."""

    def __init__(self, adapters: Iterable[ProviderAdapter], catalog: ModelCatalog):
        self.catalog = catalog
        self._adapters: Mapping[LLMProvider, ProviderAdapter] = {a.provider: a for a in adapters}

        # Every provider must have an adapter before the first request is served
        missing = set(LLMProvider) - set(self._adapters)
        if missing:
            names = ", ".join(sorted(p.value for p in missing))
            raise ValueError(f"No adapter registered for provider(s): {names}")

    def adapter_for(self, provider: LLMProvider) -> ProviderAdapter:
        return self._adapters[provider]

    async def dispatch(self, request: CompletionRequest) -> CompletionResponse:
        """
        Run one completion.

        Raises:
            ModelNotFoundError: model id is not in the catalog
            ConfigurationError: model belongs to a different provider
            ProviderError / EmptyResponseError: from the adapter
        """
        model = self.catalog.require(request.model_id)
        if model.provider != request.provider:
            raise ConfigurationError(
                message=(
                    f"Model '{model.id}' belongs to provider '{model.provider.value}', "
                    f"not '{request.provider.value}'"
                ),
                context={"model_id": model.id, "provider": request.provider.value},
            )

        logger.debug("Dispatching completion to %s (%s)", model.provider.value, model.id)
        return await self._adapters[model.provider].complete(
            model,
            request.messages,
            request.api_key,
            system_prompt=request.system_prompt,
        )


def build_llm_dispatcher(
    catalog: ModelCatalog,
    timeout: float = 60.0,
    max_output_tokens: int = 4096,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LLMDispatcher:
    """Dispatcher with the standard adapter set sharing one timeout and transport."""
    options = dict(timeout=timeout, max_output_tokens=max_output_tokens, transport=transport)
    return LLMDispatcher(
        [GeminiAdapter(**options), AnthropicAdapter(**options), OpenAIAdapter(**options)],
        catalog,
    )
