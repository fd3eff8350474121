"""
CoffeeTime AI Backend: API Route Integration Tests
==================================================

What we test:
    ✅ Health endpoint reports database and fallback-key status
    ✅ AI endpoints: success bodies in camelCase, error envelope with request id
    ✅ Status mapping: validation/configuration → 400, fallback missing → 500,
       provider failure → 500
    ✅ Settings endpoints: keys masked, round trip through the store
    ✅ Model listing, optionally filtered by provider
    ✅ Access log lines name the provider behind each AI request

Provider traffic goes through a stub-backed AITaskService installed via
dependency override; the settings store is the in-memory SQLite database.
"""

import logging

import pytest

from coffeetime.main import app
from coffeetime.routes.ai import get_ai_task_service

from conftest import JPEG_B64, gemini_reply


@pytest.fixture
def use_task_service(make_task_service):
    """Install a stub-backed AITaskService for the duration of a test."""

    def install(stub, **kwargs):
        service = make_task_service(stub, **kwargs)
        app.dependency_overrides[get_ai_task_service] = lambda: service
        return service

    return install


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["fallback_key"] == "configured"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_unknown_route_is_plain_404(self, test_client):
        response = await test_client.get("/api/ai/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}


class TestAnalyzeImageRoute:
    @pytest.mark.asyncio
    async def test_success(self, test_client, provider_stub, use_task_service):
        stub = provider_stub(
            gemini_reply('{"detected": {"roaster": "Onyx"}, "barcode": "0123", "confidence": 0.85}')
        )
        use_task_service(stub)

        response = await test_client.post(
            "/api/ai/analyze-image",
            json={"imageBase64": JPEG_B64, "productType": "coffee"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "detected": {"roaster": "Onyx"},
            "barcode": "0123",
            "confidence": 0.85,
            "sources": [],
        }

    @pytest.mark.asyncio
    async def test_missing_image(self, test_client, provider_stub, use_task_service):
        stub = provider_stub(gemini_reply("{}"))
        use_task_service(stub)

        response = await test_client.post(
            "/api/ai/analyze-image",
            json={"productType": "coffee"},
            headers={"X-Request-ID": "req-1"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Image is required", "request_id": "req-1"}
        assert stub.call_count == 0

    @pytest.mark.asyncio
    async def test_non_vision_model(self, test_client, provider_stub, use_task_service):
        stub = provider_stub(gemini_reply("{}"))
        use_task_service(stub)

        response = await test_client.post(
            "/api/ai/analyze-image",
            json={
                "imageBase64": JPEG_B64,
                "productType": "grinder",
                "aiConfig": {"provider": "openai", "modelId": "o3-mini", "apiKey": "sk"},
            },
        )

        assert response.status_code == 400
        assert "does not support image analysis" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_fallback_key_missing(self, test_client, provider_stub, use_task_service):
        stub = provider_stub(gemini_reply("{}"))
        use_task_service(stub, fallback_key=None)

        response = await test_client.post(
            "/api/ai/analyze-image",
            json={"imageBase64": JPEG_B64, "productType": "coffee"},
        )

        assert response.status_code == 500
        assert response.json()["error"].startswith("No AI API key configured")

    @pytest.mark.asyncio
    async def test_provider_error(self, test_client, provider_stub, use_task_service):
        stub = provider_stub({"error": {"code": 403, "message": "API key not valid"}}, status_code=403)
        use_task_service(stub)

        response = await test_client.post(
            "/api/ai/analyze-image",
            json={"imageBase64": JPEG_B64, "productType": "brewer"},
        )

        assert response.status_code == 500
        assert response.json()["error"] == "API key not valid"

    @pytest.mark.asyncio
    async def test_stored_user_settings_used(self, test_client, provider_stub, use_task_service):
        stub = provider_stub(
            {"content": [{"type": "text", "text": '{"confidence": 0.5}'}]}
        )
        use_task_service(stub)
        await test_client.put(
            "/api/users/u7/ai-settings/api-keys/anthropic", json={"apiKey": "sk-ant-stored"}
        )
        await test_client.put(
            "/api/users/u7/ai-settings/model",
            json={"provider": "anthropic", "modelId": "claude-sonnet-4-20250514"},
        )

        response = await test_client.post(
            "/api/ai/analyze-image",
            json={"imageBase64": JPEG_B64, "productType": "coffee", "userId": "u7"},
        )

        assert response.status_code == 200
        assert stub.last_request.headers["x-api-key"] == "sk-ant-stored"


class TestParseVoiceRoute:
    @pytest.mark.asyncio
    async def test_unmentioned_fields_omitted(self, test_client, provider_stub, use_task_service):
        stub = provider_stub(
            gemini_reply('{"parsed": {"totalTimeSeconds": 210, "rating": null}, "matchedEquipment": {}}')
        )
        use_task_service(stub)

        response = await test_client.post(
            "/api/ai/parse-voice",
            json={
                "transcript": "three thirty total",
                "userEquipment": {"coffees": [], "grinders": [], "brewers": []},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["parsed"] == {"totalTimeSeconds": 210}
        assert data["matchedEquipment"] == {}
        assert "rawNotes" not in data

    @pytest.mark.asyncio
    async def test_loosely_typed_values_are_tolerated(
        self, test_client, provider_stub, use_task_service
    ):
        reply = (
            '{"parsed": {"doseGrams": "18g", "waterTempF": "205 F", "rating": "great", '
            '"tastingNotes": ["cherry", "cocoa"], "milkGrams": 120}, '
            '"matchedEquipment": {"grinder": {"id": "g1", "name": "C40", "confidence": "high"}, '
            '"brewer": "none"}}'
        )
        use_task_service(provider_stub(gemini_reply(reply)))

        response = await test_client.post("/api/ai/parse-voice", json={"transcript": "18g, 205"})

        assert response.status_code == 200
        data = response.json()
        assert data["parsed"] == {
            "doseGrams": 18,
            "waterTempF": 205,
            "tastingNotes": "cherry, cocoa",
            "milkGrams": 120,
        }
        assert data["matchedEquipment"] == {"grinder": {"id": "g1", "name": "C40"}}

    @pytest.mark.asyncio
    async def test_blank_reply_is_empty_response(
        self, test_client, provider_stub, use_task_service
    ):
        use_task_service(provider_stub(gemini_reply("   ")))

        response = await test_client.post("/api/ai/parse-voice", json={"transcript": "18 grams"})

        assert response.status_code == 500
        assert response.json()["error"] == "Empty response from gemini"

    @pytest.mark.asyncio
    async def test_missing_transcript(self, test_client, provider_stub, use_task_service):
        use_task_service(provider_stub(gemini_reply("{}")))

        response = await test_client.post("/api/ai/parse-voice", json={"transcript": ""})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Transcript is required"
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_malformed_reply(self, test_client, provider_stub, use_task_service):
        use_task_service(provider_stub(gemini_reply("{dose: 18}")))

        response = await test_client.post("/api/ai/parse-voice", json={"transcript": "18 grams"})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Malformed structured data")


class TestGenerateImageRoute:
    @pytest.mark.asyncio
    async def test_missing_image_key(self, test_client, provider_stub, use_task_service):
        stub = provider_stub({})
        use_task_service(stub)

        response = await test_client.post(
            "/api/ai/generate-image",
            json={"productName": "Hologram", "productType": "coffee", "userId": "u1"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == (
            "Google API key is required for image generation. "
            "Please add it in Settings > AI Settings."
        )
        assert stub.call_count == 0

    @pytest.mark.asyncio
    async def test_rate_limited(self, test_client, provider_stub, use_task_service):
        stub = provider_stub({"error": {"message": "quota"}}, status_code=429)
        use_task_service(stub)
        await test_client.put("/api/users/u2/ai-settings/api-keys/gemini", json={"apiKey": "g-key"})

        response = await test_client.post(
            "/api/ai/generate-image",
            json={"productName": "C40", "productType": "grinder", "userId": "u2"},
        )

        assert response.status_code == 500
        assert "rate limited" in response.json()["error"]
        assert stub.call_count == 1

    @pytest.mark.asyncio
    async def test_success(self, test_client, provider_stub, use_task_service):
        stub = provider_stub({"data": [{"b64_json": "QUJD"}]})
        use_task_service(stub)
        await test_client.put("/api/users/u3/ai-settings/api-keys/openai", json={"apiKey": "sk-o"})
        await test_client.put(
            "/api/users/u3/ai-settings/model", json={"provider": "openai", "modelId": "gpt-4o"}
        )

        response = await test_client.post(
            "/api/ai/generate-image",
            json={
                "productName": "V60",
                "productType": "brewer",
                "userId": "u3",
                "options": {"brand": "Hario"},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"imageBase64": "QUJD", "mimeType": "image/png"}


class TestSettingsRoutes:
    @pytest.mark.asyncio
    async def test_defaults(self, test_client):
        response = await test_client.get("/api/users/fresh/ai-settings")

        assert response.status_code == 200
        data = response.json()
        assert data["selectedProvider"] == "gemini"
        assert data["selectedModelId"] == "gemini-3-flash-preview"
        assert data["apiKeys"] == {}
        assert data["imageUseTextSettings"] is True

    @pytest.mark.asyncio
    async def test_keys_masked(self, test_client):
        put = await test_client.put(
            "/api/users/u1/ai-settings/api-keys/openai", json={"apiKey": "sk-test-98765"}
        )
        assert put.status_code == 200

        data = (await test_client.get("/api/users/u1/ai-settings")).json()

        assert data["apiKeys"] == {"openai": "********8765"}
        assert "sk-test-98765" not in str(data)

    @pytest.mark.asyncio
    async def test_delete_key(self, test_client):
        await test_client.put("/api/users/u1/ai-settings/image-api-keys/google", json={"apiKey": "gk-1234"})

        response = await test_client.delete("/api/users/u1/ai-settings/image-api-keys/google")

        assert response.status_code == 200
        assert response.json()["imageApiKeys"] == {}

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, test_client):
        response = await test_client.put(
            "/api/users/u1/ai-settings/api-keys/openai", json={"apiKey": ""}
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("apiKey")

    @pytest.mark.asyncio
    async def test_unknown_provider_rejected(self, test_client):
        response = await test_client.put(
            "/api/users/u1/ai-settings/api-keys/mistral", json={"apiKey": "m"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_select_unknown_model(self, test_client):
        response = await test_client.put(
            "/api/users/u1/ai-settings/model", json={"provider": "openai", "modelId": "gpt-2"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Model 'gpt-2' was not found"

    @pytest.mark.asyncio
    async def test_patch_merges(self, test_client):
        await test_client.put("/api/users/u1/ai-settings/api-keys/gemini", json={"apiKey": "g-0001"})

        response = await test_client.patch(
            "/api/users/u1/ai-settings",
            json={"imageUseTextSettings": False, "imageProvider": "openai"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["imageUseTextSettings"] is False
        assert data["imageProvider"] == "openai"
        assert data["apiKeys"] == {"gemini": "********0001"}

    @pytest.mark.asyncio
    async def test_patch_key_map_merges_per_provider(self, test_client):
        await test_client.put("/api/users/u1/ai-settings/api-keys/gemini", json={"apiKey": "g-0001"})
        await test_client.put("/api/users/u1/ai-settings/api-keys/anthropic", json={"apiKey": "a-0002"})

        response = await test_client.patch(
            "/api/users/u1/ai-settings",
            json={"apiKeys": {"openai": "sk-1234", "anthropic": None}},
        )

        assert response.status_code == 200
        assert response.json()["apiKeys"] == {
            "gemini": "********0001",
            "openai": "********1234",
        }


class TestModelsRoute:
    @pytest.mark.asyncio
    async def test_all_models(self, test_client):
        response = await test_client.get("/api/ai/models")

        assert response.status_code == 200
        ids = {m["id"] for m in response.json()}
        assert {"gemini-3-flash-preview", "gpt-4o", "claude-sonnet-4-20250514", "o3-mini"} <= ids

    @pytest.mark.asyncio
    async def test_filtered_by_provider(self, test_client):
        response = await test_client.get("/api/ai/models", params={"provider": "openai"})

        models = response.json()
        assert {m["provider"] for m in models} == {"openai"}
        o3 = next(m for m in models if m["id"] == "o3-mini")
        assert o3["supportsVision"] is False


class TestAccessLog:
    """
    What we test:
        ✅ AI requests log the provider, model and key source that served them
        ✅ Non-AI requests log without AI fields; health checks are not logged
    """

    @staticmethod
    def access_records(caplog, path):
        return [r for r in caplog.records if r.name == "coffeetime.access" and r.path == path]

    @pytest.mark.asyncio
    async def test_ai_call_fields(self, test_client, provider_stub, use_task_service, caplog):
        caplog.set_level(logging.INFO, logger="coffeetime.access")
        use_task_service(provider_stub(gemini_reply('{"parsed": {"rating": 7}}')))

        await test_client.post("/api/ai/parse-voice", json={"transcript": "a seven"})

        (record,) = self.access_records(caplog, "/api/ai/parse-voice")
        assert record.status == 200
        assert record.ai_call == {
            "provider": "gemini",
            "model_id": "gemini-3-flash-preview",
            "key_source": "fallback",
        }
        assert "provider=gemini model=gemini-3-flash-preview key=fallback" in record.getMessage()

    @pytest.mark.asyncio
    async def test_failed_ai_call_still_names_provider(
        self, test_client, provider_stub, use_task_service, caplog
    ):
        caplog.set_level(logging.INFO, logger="coffeetime.access")
        use_task_service(provider_stub({"error": {"message": "quota"}}, status_code=429))

        await test_client.post("/api/ai/parse-voice", json={"transcript": "18 grams"})

        (record,) = self.access_records(caplog, "/api/ai/parse-voice")
        assert record.levelno == logging.ERROR
        assert record.ai_call["provider"] == "gemini"

    @pytest.mark.asyncio
    async def test_settings_and_health_lines(self, test_client, caplog):
        caplog.set_level(logging.INFO, logger="coffeetime.access")

        await test_client.get("/health")
        await test_client.get("/api/users/u1/ai-settings")

        assert self.access_records(caplog, "/health") == []
        (record,) = self.access_records(caplog, "/api/users/u1/ai-settings")
        assert record.ai_call == {}
        assert "provider=" not in record.getMessage()
