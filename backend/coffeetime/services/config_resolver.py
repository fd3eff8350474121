"""
CoffeeTime AI Backend: Configuration Resolver
=============================================

What:  Decides which provider, model and API key a request uses.
How:   Completion config: caller config > user settings > server fallback
       key bound to the default catalog model. Image settings: derived from
       the user's text settings or their explicit image-provider choice.
Who:   AITaskService, before any prompt is built or network call is made.

The fallback key is injected at construction; nothing here reads the
environment.
"""

import logging
from typing import Optional

from coffeetime.exceptions import (
    FallbackKeyMissingError,
    MissingAPIKeyError,
    UnsupportedModelCapabilityError,
)
from coffeetime.schemas.ai import (
    AIConfig,
    AISettings,
    EffectiveCompletionConfig,
    EffectiveImageSettings,
)
from coffeetime.schemas.llm import IMAGE_PROVIDER_NAMES, ImageProvider, LLMProvider
from coffeetime.services.model_catalog import ModelCatalog

logger = logging.getLogger(__name__)


class ConfigurationResolver:
    def __init__(self, fallback_api_key: Optional[str], catalog: ModelCatalog):
        self.fallback_api_key = fallback_api_key or None
        self.catalog = catalog

    def resolve_completion_config(
        self,
        caller_config: Optional[AIConfig] = None,
        user_settings: Optional[AISettings] = None,
        *,
        require_vision: bool = False,
    ) -> EffectiveCompletionConfig:
        """
        Pick the effective completion configuration.

        Raises:
            UnsupportedModelCapabilityError: require_vision and the chosen
                model is known to lack vision support
            FallbackKeyMissingError: nothing supplied and no server key
        """
        if caller_config is not None and caller_config.is_complete:
            effective = EffectiveCompletionConfig(
                provider=caller_config.provider,
                model_id=caller_config.model_id,
                api_key=caller_config.api_key,
                source="caller",
            )
        elif user_settings is not None and user_settings.api_keys.get(
            user_settings.selected_provider
        ):
            effective = EffectiveCompletionConfig(
                provider=user_settings.selected_provider,
                model_id=user_settings.selected_model_id,
                api_key=user_settings.api_keys[user_settings.selected_provider],
                source="user_settings",
            )
        else:
            if not self.fallback_api_key:
                raise FallbackKeyMissingError()
            default_model = self.catalog.default_model()
            effective = EffectiveCompletionConfig(
                provider=default_model.provider,
                model_id=default_model.id,
                api_key=self.fallback_api_key,
                source="fallback",
            )

        if require_vision:
            # Unknown ids pass here; the dispatcher rejects them before any call
            model = self.catalog.lookup(effective.model_id)
            if model is not None and not model.supports_vision:
                raise UnsupportedModelCapabilityError(
                    model.display_name, context={"model_id": model.id}
                )

        logger.debug(
            "Resolved completion config: provider=%s model=%s source=%s",
            effective.provider.value,
            effective.model_id,
            effective.source,
        )
        return effective

    def resolve_effective_image_settings(self, user_settings: AISettings) -> EffectiveImageSettings:
        """
        Image provider and key for a user.

        Raises:
            MissingAPIKeyError: the resolved provider has no key
        """
        if user_settings.image_use_text_settings:
            if user_settings.selected_provider == LLMProvider.OPENAI:
                provider = ImageProvider.OPENAI
                api_key = user_settings.api_keys.get(LLMProvider.OPENAI)
            else:
                provider = ImageProvider.GOOGLE
                api_key = user_settings.api_keys.get(LLMProvider.GEMINI)
        else:
            provider = user_settings.image_provider
            api_key = user_settings.image_api_keys.get(provider)

        if not api_key:
            raise MissingAPIKeyError(
                IMAGE_PROVIDER_NAMES[provider], context={"image_provider": provider.value}
            )
        return EffectiveImageSettings(provider=provider, api_key=api_key)
