"""
CoffeeTime AI Backend: AI Settings Service
==========================================

What:  Per-user AI Settings store: model selection, provider API keys and
       the image-generation preference.
How:   One `ai_settings` row per user. Every write touches only the field
       group it owns, so concurrent updates of different groups do not
       clobber each other (last write wins within a group).
Who:   Settings routes; AITaskService.generate_image (read only).
When:  Reads never insert. The first write for a user creates the row.

Stored key maps use provider discriminant strings ("gemini", "google", ...)
as JSON object keys. Unknown providers found in stored data are ignored.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coffeetime.exceptions import ConfigurationError, DatabaseError
from coffeetime.models.ai_settings import AISettingsRecord
from coffeetime.schemas.ai import AISettings, AISettingsUpdate
from coffeetime.schemas.llm import ImageProvider, LLMProvider
from coffeetime.services.model_catalog import ModelCatalog, model_catalog

logger = logging.getLogger(__name__)


def _known_keys(raw: Optional[Dict[str, Any]], enum_type: Type) -> Dict[str, str]:
    valid = {member.value for member in enum_type}
    return {p: k for p, k in (raw or {}).items() if p in valid and k}


def _merge_keys(
    stored: Optional[Dict[str, str]], changes: Dict[Any, Optional[str]]
) -> Dict[str, str]:
    """Apply per-provider changes to a stored key map. Empty or null removes."""
    merged = dict(stored or {})
    for provider, key in changes.items():
        name = getattr(provider, "value", provider)
        if key:
            merged[name] = key
        else:
            merged.pop(name, None)
    return merged


class AISettingsService:
    """
    Async repository over `ai_settings`.

    Every method takes the request's AsyncSession; commit/rollback is left
    to the session dependency.
    """

    def __init__(self, catalog: ModelCatalog = model_catalog):
        self.catalog = catalog

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_settings(self, db: AsyncSession, user_id: str) -> AISettings:
        """Stored values merged over defaults. Defaults when nothing is stored."""
        record = await self._load(db, user_id)
        if record is None:
            return AISettings()
        return self._to_settings(record)

    # ── Writes ────────────────────────────────────────────────────────────

    async def update_settings(
        self, db: AsyncSession, user_id: str, update: AISettingsUpdate
    ) -> AISettings:
        """
        Merge a partial update. Only fields present in `update` are written.
        Key maps merge per provider: providers not named keep their stored
        key, and an empty or null key removes that provider's key.

        Raises:
            ModelNotFoundError: selected model id is not in the catalog
            ConfigurationError: selected model belongs to another provider
        """
        fields = update.model_dump(exclude_unset=True)
        record = await self._load_or_create(db, user_id)

        if fields.get("selected_model_id") or fields.get("selected_provider"):
            current = self._to_settings(record)
            model_id = fields.get("selected_model_id") or current.selected_model_id
            if fields.get("selected_provider"):
                provider = LLMProvider(fields["selected_provider"])
            else:
                # A bare model id implies its own provider
                provider = self.catalog.require(model_id).provider
            self._check_model(provider, model_id)
            record.selected_provider = provider.value
            record.selected_model_id = model_id

        if fields.get("api_keys") is not None:
            record.api_keys = _merge_keys(record.api_keys, fields["api_keys"])
        if fields.get("image_use_text_settings") is not None:
            record.image_use_text_settings = fields["image_use_text_settings"]
        if fields.get("image_provider") is not None:
            record.image_provider = ImageProvider(fields["image_provider"]).value
        if fields.get("image_api_keys") is not None:
            record.image_api_keys = _merge_keys(record.image_api_keys, fields["image_api_keys"])

        return await self._save(db, record, "settings")

    async def set_api_key(
        self, db: AsyncSession, user_id: str, provider: LLMProvider, api_key: str
    ) -> AISettings:
        record = await self._load_or_create(db, user_id)
        # Reassign rather than mutate so the JSON column is marked dirty
        record.api_keys = {**(record.api_keys or {}), provider.value: api_key}
        return await self._save(db, record, f"api key ({provider.value})")

    async def remove_api_key(
        self, db: AsyncSession, user_id: str, provider: LLMProvider
    ) -> AISettings:
        record = await self._load_or_create(db, user_id)
        record.api_keys = {p: k for p, k in (record.api_keys or {}).items() if p != provider.value}
        return await self._save(db, record, f"api key removal ({provider.value})")

    async def set_image_api_key(
        self, db: AsyncSession, user_id: str, provider: ImageProvider, api_key: str
    ) -> AISettings:
        record = await self._load_or_create(db, user_id)
        record.image_api_keys = {**(record.image_api_keys or {}), provider.value: api_key}
        return await self._save(db, record, f"image api key ({provider.value})")

    async def remove_image_api_key(
        self, db: AsyncSession, user_id: str, provider: ImageProvider
    ) -> AISettings:
        record = await self._load_or_create(db, user_id)
        record.image_api_keys = {
            p: k for p, k in (record.image_api_keys or {}).items() if p != provider.value
        }
        return await self._save(db, record, f"image api key removal ({provider.value})")

    async def select_model(
        self, db: AsyncSession, user_id: str, provider: LLMProvider, model_id: str
    ) -> AISettings:
        """
        Raises:
            ModelNotFoundError: model id is not in the catalog
            ConfigurationError: model belongs to another provider
        """
        self._check_model(provider, model_id)
        record = await self._load_or_create(db, user_id)
        record.selected_provider = provider.value
        record.selected_model_id = model_id
        return await self._save(db, record, "model selection")

    # ── Internals ─────────────────────────────────────────────────────────

    def _check_model(self, provider: LLMProvider, model_id: str) -> None:
        model = self.catalog.require(model_id)
        if model.provider != provider:
            raise ConfigurationError(
                message=f"Model '{model_id}' is not offered by provider '{provider.value}'",
                context={"model_id": model_id, "provider": provider.value},
            )

    async def _load(self, db: AsyncSession, user_id: str) -> Optional[AISettingsRecord]:
        try:
            return await db.get(AISettingsRecord, user_id)
        except SQLAlchemyError as e:
            logger.error("Database error loading AI settings for %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not load AI settings. Please try again.",
                context={"user_id": user_id},
            ) from e

    async def _load_or_create(self, db: AsyncSession, user_id: str) -> AISettingsRecord:
        record = await self._load(db, user_id)
        if record is None:
            record = AISettingsRecord(user_id=user_id)
            db.add(record)
        return record

    async def _save(self, db: AsyncSession, record: AISettingsRecord, what: str) -> AISettings:
        record.updated_at = datetime.now(timezone.utc)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Database error saving AI %s for %s: %s", what, record.user_id, str(e), exc_info=True
            )
            raise DatabaseError(
                message="Could not save AI settings. Please try again.",
                context={"user_id": record.user_id},
            ) from e
        logger.info("AI %s updated for user %s", what, record.user_id)
        return self._to_settings(record)

    @staticmethod
    def _to_settings(record: AISettingsRecord) -> AISettings:
        values: Dict[str, Any] = {
            "api_keys": _known_keys(record.api_keys, LLMProvider),
            "image_api_keys": _known_keys(record.image_api_keys, ImageProvider),
            "updated_at": record.updated_at,
        }
        if record.selected_provider in {p.value for p in LLMProvider}:
            values["selected_provider"] = record.selected_provider
        if record.selected_model_id:
            values["selected_model_id"] = record.selected_model_id
        if record.image_use_text_settings is not None:
            values["image_use_text_settings"] = record.image_use_text_settings
        if record.image_provider in {p.value for p in ImageProvider}:
            values["image_provider"] = record.image_provider
        return AISettings(**values)


# ── Singleton Instance ────────────────────────────────────────────────────
ai_settings_service = AISettingsService()
