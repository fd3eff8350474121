"""
CoffeeTime AI Backend: AI Task Service (Business Logic Orchestrator)
====================================================================

What:  The three AI tasks: analyze a product photo, parse a spoken brew
       description, generate a product image.
How:   validate input → resolve configuration → build prompt → dispatch →
       extract structured result. Each call is independent and stateless.
Who:   Called by the /api/ai route handlers.

Orchestration Flow (analyze-image / parse-voice):
    ┌──────────┐    ┌───────────┐    ┌─────────┐    ┌──────────┐    ┌─────────┐
    │ Validate │───▶│  Resolve  │───▶│ Prompt  │───▶│ Dispatch │───▶│ Extract │
    │  input   │    │  config   │    │ builder │    │ (adapter)│    │  JSON   │
    └──────────┘    └───────────┘    └─────────┘    └──────────┘    └─────────┘

    Validation and configuration failures happen before any network call.
    Provider and extraction failures propagate unchanged.
"""

import base64
import binascii
import logging
import re
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from coffeetime.config import settings
from coffeetime.exceptions import ValidationError
from coffeetime.middleware.logging import record_ai_call
from coffeetime.schemas.ai import (
    AIConfig,
    AISettings,
    AnalyzeImageResult,
    GenerateImageOptions,
    ParseVoiceResult,
    UserEquipment,
)
from coffeetime.schemas.llm import (
    CompletionRequest,
    GeneratedImage,
    ImagePart,
    Message,
    TextPart,
)
from coffeetime.services.ai_settings_service import AISettingsService, ai_settings_service
from coffeetime.services.config_resolver import ConfigurationResolver
from coffeetime.services.image_generation import ImageDispatcher, build_image_dispatcher
from coffeetime.services.llm_dispatcher import LLMDispatcher, build_llm_dispatcher
from coffeetime.services.model_catalog import model_catalog
from coffeetime.services.prompts import (
    build_image_analysis_prompt,
    build_image_generation_prompt,
    build_voice_system_prompt,
    build_voice_user_message,
    parse_product_type,
)
from coffeetime.services.structured_extraction import extract_model

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/jpeg"

_DATA_URL_PREFIX = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,", re.IGNORECASE)

# (offset, signature, mime)
_IMAGE_SIGNATURES = (
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (8, b"WEBP", "image/webp"),
)


def split_image_payload(image_base64: str) -> Tuple[str, str]:
    """
    Base64 payload and MIME type of a client-supplied image.

    A `data:image/...;base64,` prefix wins; otherwise the decoded header is
    matched against known signatures, and JPEG is assumed when nothing matches.
    """
    match = _DATA_URL_PREFIX.match(image_base64)
    if match:
        return image_base64[match.end() :], match.group("mime").lower()

    try:
        header = base64.b64decode(image_base64[:24])
    except (binascii.Error, ValueError):
        return image_base64, DEFAULT_IMAGE_MIME

    for offset, signature, mime in _IMAGE_SIGNATURES:
        if header[offset : offset + len(signature)] == signature:
            if mime == "image/webp" and not header.startswith(b"RIFF"):
                continue
            return image_base64, mime
    return image_base64, DEFAULT_IMAGE_MIME


class AITaskService:
    """
    Entry points for the AI tasks.

    Dependencies are injected so tests can supply dispatchers built on
    `httpx.MockTransport` and resolvers with or without a fallback key.
    """

    def __init__(
        self,
        dispatcher: LLMDispatcher,
        image_dispatcher: ImageDispatcher,
        resolver: ConfigurationResolver,
        settings_service: AISettingsService,
        low_confidence_threshold: float = 0.3,
    ):
        self.dispatcher = dispatcher
        self.image_dispatcher = image_dispatcher
        self.resolver = resolver
        self.settings_service = settings_service
        self.low_confidence_threshold = low_confidence_threshold

    async def analyze_image(
        self,
        image_base64: Optional[str],
        product_type: Optional[str],
        caller_config: Optional[AIConfig] = None,
        user_settings: Optional[AISettings] = None,
    ) -> AnalyzeImageResult:
        """
        Read product attributes off a photo.

        Raises:
            ValidationError: missing image or unknown product type
            UnsupportedModelCapabilityError: resolved model has no vision support
            FallbackKeyMissingError: no caller key and no server key
            ProviderError / EmptyResponseError / ExtractionError
        """
        if not image_base64:
            raise ValidationError("Image is required", field="imageBase64")
        kind = parse_product_type(product_type)

        config = self.resolver.resolve_completion_config(
            caller_config, user_settings, require_vision=True
        )
        payload, mime_type = split_image_payload(image_base64)

        request = CompletionRequest(
            provider=config.provider,
            model_id=config.model_id,
            api_key=config.api_key,
            messages=[
                Message(
                    role="user",
                    content=[
                        ImagePart(image_bytes=payload, mime_type=mime_type),
                        TextPart(text=build_image_analysis_prompt(kind)),
                    ],
                )
            ],
        )
        record_ai_call(
            provider=config.provider.value, model_id=config.model_id, key_source=config.source
        )
        logger.info(
            "Analyzing %s image (%s) with %s/%s [%s]",
            kind.value,
            mime_type,
            config.provider.value,
            config.model_id,
            config.source,
        )
        response = await self.dispatcher.dispatch(request)
        result = extract_model(response.text, AnalyzeImageResult)

        if result.confidence < self.low_confidence_threshold:
            logger.warning(
                "Low-confidence %s analysis: %.2f (threshold %.2f)",
                kind.value,
                result.confidence,
                self.low_confidence_threshold,
            )
        return result

    async def parse_voice(
        self,
        transcript: Optional[str],
        equipment: Optional[UserEquipment] = None,
        caller_config: Optional[AIConfig] = None,
        user_settings: Optional[AISettings] = None,
    ) -> ParseVoiceResult:
        """
        Turn a spoken brew description into brew attributes and equipment matches.

        Raises:
            ValidationError: missing transcript
            FallbackKeyMissingError: no caller key and no server key
            ProviderError / EmptyResponseError / ExtractionError
        """
        if not transcript:
            raise ValidationError("Transcript is required", field="transcript")

        config = self.resolver.resolve_completion_config(caller_config, user_settings)
        request = CompletionRequest(
            provider=config.provider,
            model_id=config.model_id,
            api_key=config.api_key,
            messages=[Message(role="user", content=build_voice_user_message(transcript))],
            system_prompt=build_voice_system_prompt(equipment),
        )
        record_ai_call(
            provider=config.provider.value, model_id=config.model_id, key_source=config.source
        )
        logger.info(
            "Parsing voice transcript (%d chars) with %s/%s [%s]",
            len(transcript),
            config.provider.value,
            config.model_id,
            config.source,
        )
        response = await self.dispatcher.dispatch(request)
        return extract_model(response.text, ParseVoiceResult)

    async def generate_image(
        self,
        db: AsyncSession,
        product_name: Optional[str],
        product_type: Optional[str],
        user_id: Optional[str],
        options: Optional[GenerateImageOptions] = None,
    ) -> GeneratedImage:
        """
        Generate a product photo with the user's image provider.

        Raises:
            ValidationError: missing product name / user id, unknown product type
            MissingAPIKeyError: resolved image provider has no key
            ImageGenerationError / NoImageProducedError / ProviderError
        """
        if not product_name:
            raise ValidationError("Product name is required", field="productName")
        kind = parse_product_type(product_type)
        if not user_id:
            raise ValidationError("User ID is required", field="userId")

        user_settings = await self.settings_service.get_settings(db, user_id)
        image_settings = self.resolver.resolve_effective_image_settings(user_settings)

        options = options or GenerateImageOptions()
        prompt = build_image_generation_prompt(
            product_name,
            kind,
            brand=options.brand,
            model=options.model,
            description=options.description,
        )
        record_ai_call(provider=image_settings.provider.value)
        logger.info(
            "Generating %s image for user %s with %s",
            kind.value,
            user_id,
            image_settings.provider.value,
        )
        return await self.image_dispatcher.generate(
            image_settings.provider, prompt, image_settings.api_key
        )

    async def load_user_settings(
        self, db: AsyncSession, user_id: Optional[str]
    ) -> Optional[AISettings]:
        """Stored settings for a user, or None when no user id was given."""
        if not user_id:
            return None
        return await self.settings_service.get_settings(db, user_id)


# ── Singleton Instance ────────────────────────────────────────────────────
ai_task_service = AITaskService(
    dispatcher=build_llm_dispatcher(
        model_catalog,
        timeout=settings.llm_request_timeout,
        max_output_tokens=settings.llm_max_output_tokens,
    ),
    image_dispatcher=build_image_dispatcher(timeout=settings.image_request_timeout),
    resolver=ConfigurationResolver(settings.gemini_api_key, model_catalog),
    settings_service=ai_settings_service,
    low_confidence_threshold=settings.low_confidence_threshold,
)
