"""
CoffeeTime AI Backend: AI Settings Route Handlers
=================================================

What:  Read and update a user's AI Settings.
How:   Each endpoint owns one field group (model selection, one text key,
       one image key, or a PATCH of explicitly supplied fields). Responses
       always mask API keys to their last four characters.
Who:   Called by the web client's Settings > AI Settings page.

Endpoints (prefix /api/users/{user_id}/ai-settings):
    GET                              current settings (defaults if none stored)
    PATCH                            merge a partial update
    PUT    /api-keys/{provider}      set one text-provider key
    DELETE /api-keys/{provider}      remove one text-provider key
    PUT    /image-api-keys/{provider}
    DELETE /image-api-keys/{provider}
    PUT    /model                    select provider + model
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coffeetime.database import get_db_session
from coffeetime.schemas.ai import (
    AISettingsResponse,
    AISettingsUpdate,
    APIKeyUpdate,
    ErrorResponse,
    ModelSelection,
)
from coffeetime.schemas.llm import ImageProvider, LLMProvider
from coffeetime.services.ai_settings_service import AISettingsService, ai_settings_service

router = APIRouter(prefix="/api/users/{user_id}/ai-settings", tags=["AI Settings"])

_ERRORS = {
    400: {"description": "Invalid settings", "model": ErrorResponse},
    500: {"description": "Settings store failure", "model": ErrorResponse},
}


def get_ai_settings_service() -> AISettingsService:
    return ai_settings_service


@router.get("", response_model=AISettingsResponse, responses=_ERRORS)
async def get_ai_settings(
    user_id: str,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.get_settings(db, user_id)
    return AISettingsResponse.from_settings(settings)


@router.patch("", response_model=AISettingsResponse, responses=_ERRORS)
async def update_ai_settings(
    user_id: str,
    body: AISettingsUpdate,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.update_settings(db, user_id, body)
    return AISettingsResponse.from_settings(settings)


@router.put("/api-keys/{provider}", response_model=AISettingsResponse, responses=_ERRORS)
async def set_api_key(
    user_id: str,
    provider: LLMProvider,
    body: APIKeyUpdate,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.set_api_key(db, user_id, provider, body.api_key)
    return AISettingsResponse.from_settings(settings)


@router.delete("/api-keys/{provider}", response_model=AISettingsResponse, responses=_ERRORS)
async def remove_api_key(
    user_id: str,
    provider: LLMProvider,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.remove_api_key(db, user_id, provider)
    return AISettingsResponse.from_settings(settings)


@router.put("/image-api-keys/{provider}", response_model=AISettingsResponse, responses=_ERRORS)
async def set_image_api_key(
    user_id: str,
    provider: ImageProvider,
    body: APIKeyUpdate,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.set_image_api_key(db, user_id, provider, body.api_key)
    return AISettingsResponse.from_settings(settings)


@router.delete("/image-api-keys/{provider}", response_model=AISettingsResponse, responses=_ERRORS)
async def remove_image_api_key(
    user_id: str,
    provider: ImageProvider,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.remove_image_api_key(db, user_id, provider)
    return AISettingsResponse.from_settings(settings)


@router.put("/model", response_model=AISettingsResponse, responses=_ERRORS)
async def select_model(
    user_id: str,
    body: ModelSelection,
    service: AISettingsService = Depends(get_ai_settings_service),
    db: AsyncSession = Depends(get_db_session),
) -> AISettingsResponse:
    settings = await service.select_model(db, user_id, body.provider, body.model_id)
    return AISettingsResponse.from_settings(settings)
