"""
CoffeeTime AI Backend: AI Settings Service Unit Tests
=====================================================

What we test:
    ✅ Reads return defaults without creating a row
    ✅ Per-provider key set / remove for text and image keys
    ✅ Partial updates only touch supplied fields
    ✅ Model selection is validated against the catalog
    ✅ Unknown providers in stored data are ignored
"""

import pytest

from coffeetime.exceptions import ConfigurationError, ModelNotFoundError
from coffeetime.models.ai_settings import AISettingsRecord
from coffeetime.schemas.ai import DEFAULT_MODEL_ID, AISettingsUpdate
from coffeetime.schemas.llm import ImageProvider, LLMProvider
from coffeetime.services.ai_settings_service import AISettingsService


@pytest.fixture
def service():
    return AISettingsService()


class TestReads:
    @pytest.mark.asyncio
    async def test_defaults_without_row(self, service, db_session):
        """A user with nothing stored gets defaults and no row is written."""
        settings = await service.get_settings(db_session, "new-user")

        assert settings.selected_provider == LLMProvider.GEMINI
        assert settings.selected_model_id == DEFAULT_MODEL_ID
        assert settings.api_keys == {}
        assert settings.image_use_text_settings is True
        assert settings.image_provider == ImageProvider.GOOGLE
        assert await db_session.get(AISettingsRecord, "new-user") is None

    @pytest.mark.asyncio
    async def test_unknown_stored_providers_ignored(self, service, db_session):
        db_session.add(
            AISettingsRecord(
                user_id="legacy",
                selected_provider="mistral",
                api_keys={"mistral": "m-key", "openai": "sk-1"},
                image_api_keys={"stability": "s-key"},
            )
        )
        await db_session.flush()

        settings = await service.get_settings(db_session, "legacy")

        assert settings.selected_provider == LLMProvider.GEMINI
        assert settings.api_keys == {LLMProvider.OPENAI: "sk-1"}
        assert settings.image_api_keys == {}


class TestKeys:
    @pytest.mark.asyncio
    async def test_set_and_remove_text_key(self, service, db_session):
        await service.set_api_key(db_session, "u1", LLMProvider.OPENAI, "sk-1")
        settings = await service.set_api_key(db_session, "u1", LLMProvider.ANTHROPIC, "sk-ant")

        assert settings.api_keys == {LLMProvider.OPENAI: "sk-1", LLMProvider.ANTHROPIC: "sk-ant"}
        assert settings.updated_at is not None

        settings = await service.remove_api_key(db_session, "u1", LLMProvider.OPENAI)

        assert settings.api_keys == {LLMProvider.ANTHROPIC: "sk-ant"}

    @pytest.mark.asyncio
    async def test_set_key_replaces_previous_value(self, service, db_session):
        await service.set_api_key(db_session, "u1", LLMProvider.GEMINI, "old")
        await service.set_api_key(db_session, "u1", LLMProvider.GEMINI, "new")

        settings = await service.get_settings(db_session, "u1")

        assert settings.api_keys[LLMProvider.GEMINI] == "new"

    @pytest.mark.asyncio
    async def test_image_keys_are_separate(self, service, db_session):
        await service.set_api_key(db_session, "u1", LLMProvider.OPENAI, "text-key")
        settings = await service.set_image_api_key(db_session, "u1", ImageProvider.OPENAI, "img-key")

        assert settings.api_keys == {LLMProvider.OPENAI: "text-key"}
        assert settings.image_api_keys == {ImageProvider.OPENAI: "img-key"}

        settings = await service.remove_image_api_key(db_session, "u1", ImageProvider.OPENAI)

        assert settings.image_api_keys == {}
        assert settings.api_keys == {LLMProvider.OPENAI: "text-key"}

    @pytest.mark.asyncio
    async def test_remove_missing_key_is_noop(self, service, db_session):
        settings = await service.remove_api_key(db_session, "u1", LLMProvider.GEMINI)
        assert settings.api_keys == {}


class TestUpdates:
    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, service, db_session):
        await service.set_api_key(db_session, "u1", LLMProvider.GEMINI, "g-key")

        settings = await service.update_settings(
            db_session, "u1", AISettingsUpdate(image_use_text_settings=False)
        )

        assert settings.image_use_text_settings is False
        assert settings.api_keys == {LLMProvider.GEMINI: "g-key"}
        assert settings.selected_model_id == DEFAULT_MODEL_ID

    @pytest.mark.asyncio
    async def test_model_id_alone_implies_provider(self, service, db_session):
        settings = await service.update_settings(
            db_session, "u1", AISettingsUpdate(selected_model_id="claude-sonnet-4-20250514")
        )

        assert settings.selected_provider == LLMProvider.ANTHROPIC
        assert settings.selected_model_id == "claude-sonnet-4-20250514"

    @pytest.mark.asyncio
    async def test_provider_without_matching_model_rejected(self, service, db_session):
        # Stored default model is a Gemini model
        with pytest.raises(ConfigurationError, match="not offered by provider 'openai'"):
            await service.update_settings(
                db_session, "u1", AISettingsUpdate(selected_provider="openai")
            )

    @pytest.mark.asyncio
    async def test_camel_case_update_body(self, service, db_session):
        update = AISettingsUpdate.model_validate(
            {"imageProvider": "openai", "imageApiKeys": {"openai": "img"}}
        )

        settings = await service.update_settings(db_session, "u1", update)

        assert settings.image_provider == ImageProvider.OPENAI
        assert settings.image_api_keys == {ImageProvider.OPENAI: "img"}

    @pytest.mark.asyncio
    async def test_key_map_merges_per_provider(self, service, db_session):
        """Providers not named in the update keep their stored key."""
        await service.set_api_key(db_session, "u1", LLMProvider.GEMINI, "g-key")

        settings = await service.update_settings(
            db_session, "u1", AISettingsUpdate(api_keys={"openai": "sk-1"})
        )

        assert settings.api_keys == {LLMProvider.GEMINI: "g-key", LLMProvider.OPENAI: "sk-1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("removal", ["", None])
    async def test_empty_or_null_key_removes_provider(self, service, db_session, removal):
        await service.set_api_key(db_session, "u1", LLMProvider.GEMINI, "g-key")
        await service.set_api_key(db_session, "u1", LLMProvider.ANTHROPIC, "sk-ant")
        await service.set_image_api_key(db_session, "u1", ImageProvider.OPENAI, "img")

        update = AISettingsUpdate.model_validate(
            {"apiKeys": {"gemini": removal}, "imageApiKeys": {"openai": removal}}
        )
        settings = await service.update_settings(db_session, "u1", update)

        assert settings.api_keys == {LLMProvider.ANTHROPIC: "sk-ant"}
        assert settings.image_api_keys == {}


class TestSelectModel:
    @pytest.mark.asyncio
    async def test_select_known_model(self, service, db_session):
        settings = await service.select_model(db_session, "u1", LLMProvider.OPENAI, "gpt-4.1")

        assert (settings.selected_provider, settings.selected_model_id) == (
            LLMProvider.OPENAI,
            "gpt-4.1",
        )

    @pytest.mark.asyncio
    async def test_unknown_model_rejected(self, service, db_session):
        with pytest.raises(ModelNotFoundError):
            await service.select_model(db_session, "u1", LLMProvider.OPENAI, "gpt-5-turbo-max")

        assert await db_session.get(AISettingsRecord, "u1") is None

    @pytest.mark.asyncio
    async def test_model_of_other_provider_rejected(self, service, db_session):
        with pytest.raises(ConfigurationError):
            await service.select_model(db_session, "u1", LLMProvider.GEMINI, "gpt-4o")
