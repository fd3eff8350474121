"""
CoffeeTime AI Backend: AI Task Route Handlers
=============================================

What:  POST /api/ai/analyze-image, /api/ai/parse-voice, /api/ai/generate-image
       and GET /api/ai/models.
How:   Thin handlers: parse the body, delegate to AITaskService, return the
       typed result. Every failure is raised as an application exception and
       rendered by the global handlers as `{"error": ...}`.
Who:   Called by the CoffeeTime web client (brew logging and equipment forms).
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coffeetime.database import get_db_session
from coffeetime.schemas.ai import (
    AnalyzeImageRequest,
    AnalyzeImageResult,
    ErrorResponse,
    GenerateImageRequest,
    ParseVoiceRequest,
    ParseVoiceResult,
)
from coffeetime.schemas.llm import GeneratedImage, LLMModel, LLMProvider
from coffeetime.services.ai_task_service import AITaskService, ai_task_service
from coffeetime.services.model_catalog import ModelCatalog, model_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["AI"])

_ERRORS = {
    400: {"description": "Invalid input or configuration", "model": ErrorResponse},
    500: {"description": "Provider, extraction or server failure", "model": ErrorResponse},
}


def get_ai_task_service() -> AITaskService:
    return ai_task_service


def get_model_catalog() -> ModelCatalog:
    return model_catalog


@router.post(
    "/analyze-image",
    response_model=AnalyzeImageResult,
    responses=_ERRORS,
    summary="Identify a coffee, grinder or brewer from a photo",
)
async def analyze_image(
    body: AnalyzeImageRequest,
    service: AITaskService = Depends(get_ai_task_service),
    db: AsyncSession = Depends(get_db_session),
) -> AnalyzeImageResult:
    user_settings = await service.load_user_settings(db, body.user_id)
    return await service.analyze_image(
        body.image_base64,
        body.product_type,
        caller_config=body.ai_config,
        user_settings=user_settings,
    )


@router.post(
    "/parse-voice",
    response_model=ParseVoiceResult,
    response_model_exclude_none=True,
    responses=_ERRORS,
    summary="Parse a spoken brew description into brew attributes",
)
async def parse_voice(
    body: ParseVoiceRequest,
    service: AITaskService = Depends(get_ai_task_service),
    db: AsyncSession = Depends(get_db_session),
) -> ParseVoiceResult:
    """Attributes not mentioned in the transcript are omitted from the response."""
    user_settings = await service.load_user_settings(db, body.user_id)
    return await service.parse_voice(
        body.transcript,
        body.user_equipment,
        caller_config=body.ai_config,
        user_settings=user_settings,
    )


@router.post(
    "/generate-image",
    response_model=GeneratedImage,
    responses=_ERRORS,
    summary="Generate a product photo with the user's image provider",
)
async def generate_image(
    body: GenerateImageRequest,
    service: AITaskService = Depends(get_ai_task_service),
    db: AsyncSession = Depends(get_db_session),
) -> GeneratedImage:
    return await service.generate_image(
        db,
        body.product_name,
        body.product_type,
        body.user_id,
        options=body.options,
    )


@router.get(
    "/models",
    response_model=List[LLMModel],
    summary="List catalog models, optionally for one provider",
)
async def list_models(
    provider: Optional[LLMProvider] = Query(default=None),
    catalog: ModelCatalog = Depends(get_model_catalog),
) -> List[LLMModel]:
    if provider is None:
        return catalog.all()
    return catalog.by_provider(provider)
