"""
CoffeeTime AI Backend: Image Generation
=======================================

What:  Product image generation through Google Imagen or OpenAI DALL-E 3.
How:   One generator per ImageProvider, each doing a single POST and
       normalizing its envelope into GeneratedImage. Non-success statuses go
       through one shared policy so both backends fail with the same wording.
Who:   AITaskService.generate_image via ImageDispatcher.

Status Policy (both backends, no retry):
    400 → the prompt was refused; the user should refine the description
    401 → invalid API key for the provider
    429 → rate limited; the user should retry later
    *   → generic "image generation failed"
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from coffeetime.exceptions import ImageGenerationError, NoImageProducedError
from coffeetime.schemas.llm import IMAGE_PROVIDER_NAMES, GeneratedImage, ImageProvider
from coffeetime.services.llm_base import dump_wire, post_json, read_json

logger = logging.getLogger(__name__)

IMAGEN_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/imagen-3.0-generate-002:predict"
)
OPENAI_IMAGES_URL = "https://api.openai.com/v1/images/generations"


def image_error_message(provider: ImageProvider, status_code: int) -> str:
    name = IMAGE_PROVIDER_NAMES[provider]
    if status_code == 400:
        return "Unable to generate this image. Please refine the product description and try again."
    if status_code == 429:
        return f"{name} image generation is rate limited. Please retry later."
    if status_code == 401:
        return f"Invalid API key for {name}. Please check it in Settings > AI Settings."
    return f"Image generation failed for {name}."


class ImageGenerator(ABC):
    """One image backend: build request, single POST, normalize the reply."""

    provider: ImageProvider

    def __init__(
        self,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    @property
    def display_name(self) -> str:
        return IMAGE_PROVIDER_NAMES[self.provider]

    async def generate(self, prompt: str, api_key: str) -> GeneratedImage:
        """
        Raises:
            ImageGenerationError: non-success status, mapped by the status policy
            NoImageProducedError: success with an empty result list
            ProviderError: timeout, transport failure or non-JSON body
        """
        call_id = str(uuid.uuid4())[:8]
        url, headers, body = self.build_call(prompt, api_key)

        logger.info("[%s] Starting %s image generation", call_id, self.provider.value)
        start_time = time.time()

        response = await post_json(
            self.provider.value,
            url,
            body=body,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )
        duration_ms = (time.time() - start_time) * 1000

        if response.is_error:
            logger.warning(
                "[%s] %s image generation returned HTTP %d after %.0fms",
                call_id,
                self.provider.value,
                response.status_code,
                duration_ms,
            )
            raise ImageGenerationError(
                provider=self.provider.value,
                message=image_error_message(self.provider, response.status_code),
                status_code=response.status_code,
                context={"call_id": call_id},
            )

        data = read_json(response)
        if data is None:
            raise ImageGenerationError(
                provider=self.provider.value,
                message=image_error_message(self.provider, response.status_code),
                status_code=response.status_code,
                context={"call_id": call_id, "detail": "response is not JSON"},
            )

        image = self.parse_reply(data)
        logger.info(
            "[%s] %s image generated in %.0fms (%s)",
            call_id,
            self.provider.value,
            duration_ms,
            image.mime_type,
        )
        return image

    @abstractmethod
    def build_call(self, prompt: str, api_key: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """URL, headers and JSON body for one generation."""

    @abstractmethod
    def parse_reply(self, data: Dict[str, Any]) -> GeneratedImage:
        """Envelope → GeneratedImage. Raises NoImageProducedError."""

    def _validate(self, wire_type, data: Dict[str, Any]):
        try:
            return wire_type.model_validate(data)
        except PydanticValidationError as e:
            raise NoImageProducedError(self.display_name, context={"detail": str(e)}) from e


# ── Google Imagen ─────────────────────────────────────────────────────────


class ImagenWire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImagenInstance(ImagenWire):
    prompt: str


class ImagenParameters(ImagenWire):
    sample_count: int = 1
    aspect_ratio: str = "1:1"


class ImagenRequest(ImagenWire):
    instances: List[ImagenInstance]
    parameters: ImagenParameters = ImagenParameters()


class ImagenPrediction(ImagenWire):
    bytes_base64_encoded: Optional[str] = None
    mime_type: Optional[str] = None


class ImagenResponse(ImagenWire):
    predictions: List[ImagenPrediction] = []


class GoogleImagenGenerator(ImageGenerator):
    provider = ImageProvider.GOOGLE

    def build_call(self, prompt: str, api_key: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}
        return IMAGEN_URL, headers, dump_wire(ImagenRequest(instances=[ImagenInstance(prompt=prompt)]))

    def parse_reply(self, data: Dict[str, Any]) -> GeneratedImage:
        wire = self._validate(ImagenResponse, data)
        if not wire.predictions or not wire.predictions[0].bytes_base64_encoded:
            raise NoImageProducedError(self.display_name)
        prediction = wire.predictions[0]
        return GeneratedImage(
            image_base64=prediction.bytes_base64_encoded,
            mime_type=prediction.mime_type or "image/png",
        )


# ── OpenAI DALL-E 3 ───────────────────────────────────────────────────────


class DallERequest(BaseModel):
    model: str = "dall-e-3"
    prompt: str
    n: int = 1
    size: str = "1024x1024"
    response_format: Literal["b64_json", "url"] = "b64_json"


class DallEImage(BaseModel):
    b64_json: Optional[str] = None
    revised_prompt: Optional[str] = None


class DallEResponse(BaseModel):
    data: List[DallEImage] = []


class OpenAIImageGenerator(ImageGenerator):
    provider = ImageProvider.OPENAI

    def build_call(self, prompt: str, api_key: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
        return OPENAI_IMAGES_URL, headers, dump_wire(DallERequest(prompt=prompt))

    def parse_reply(self, data: Dict[str, Any]) -> GeneratedImage:
        wire = self._validate(DallEResponse, data)
        if not wire.data or not wire.data[0].b64_json:
            raise NoImageProducedError(self.display_name)
        return GeneratedImage(image_base64=wire.data[0].b64_json, mime_type="image/png")


# ── Dispatcher ────────────────────────────────────────────────────────────


class ImageDispatcher:
    """Selects the generator for an ImageProvider. Every provider must be covered."""

    def __init__(self, generators: Iterable[ImageGenerator]):
        self._generators: Mapping[ImageProvider, ImageGenerator] = {
            g.provider: g for g in generators
        }
        missing = set(ImageProvider) - set(self._generators)
        if missing:
            names = ", ".join(sorted(p.value for p in missing))
            raise ValueError(f"No image generator registered for provider(s): {names}")

    async def generate(self, provider: ImageProvider, prompt: str, api_key: str) -> GeneratedImage:
        return await self._generators[provider].generate(prompt, api_key)


def build_image_dispatcher(
    timeout: float = 120.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ImageDispatcher:
    return ImageDispatcher(
        [
            GoogleImagenGenerator(timeout=timeout, transport=transport),
            OpenAIImageGenerator(timeout=timeout, transport=transport),
        ]
    )
