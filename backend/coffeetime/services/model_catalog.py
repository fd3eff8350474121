"""
CoffeeTime AI Backend: Model Catalog
====================================

What:  Static registry of the models each provider offers (capabilities,
       endpoint, token limits, vision support, pricing).
How:   Immutable LLMModel entries built at import time; lookups are pure.
Who:   LLMDispatcher (endpoint + limits), ConfigurationResolver (vision
       check, default model), the settings routes (model listing).
"""

from typing import Dict, Iterable, List, Optional

from coffeetime.exceptions import ModelNotFoundError
from coffeetime.schemas.ai import DEFAULT_MODEL_ID
from coffeetime.schemas.llm import LLMModel, LLMProvider, ModelPricing

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


def _gemini_endpoint(model_id: str) -> str:
    return f"{GEMINI_BASE_URL}/{model_id}:generateContent"


class ModelCatalog:
    """
    Read-only model registry.

    Contract:
        lookup(model_id)      → LLMModel or None (never raises)
        require(model_id)     → LLMModel or ModelNotFoundError
        default_model()       → the default LLMModel
        by_provider(provider) → models of one provider, catalog order
    """

    def __init__(self, models: Iterable[LLMModel], default_model_id: str):
        self._models: Dict[str, LLMModel] = {}
        for model in models:
            if model.id in self._models:
                raise ValueError(f"Duplicate model id in catalog: {model.id}")
            self._models[model.id] = model
        if not self._models:
            raise ValueError("Model catalog must contain at least one model")
        self._default_model_id = default_model_id

    def lookup(self, model_id: str) -> Optional[LLMModel]:
        return self._models.get(model_id)

    def require(self, model_id: str) -> LLMModel:
        model = self._models.get(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model

    def default_model(self) -> LLMModel:
        # Falls back to the first entry if the default id was removed
        return self._models.get(self._default_model_id) or next(iter(self._models.values()))

    def by_provider(self, provider: LLMProvider) -> List[LLMModel]:
        return [m for m in self._models.values() if m.provider == provider]

    def all(self) -> List[LLMModel]:
        return list(self._models.values())

    def providers(self) -> set:
        return {m.provider for m in self._models.values()}


# ── Catalog Contents ──────────────────────────────────────────────────────
CATALOG_MODELS: List[LLMModel] = [
    # Google Gemini
    LLMModel(
        id="gemini-3-flash-preview",
        provider=LLMProvider.GEMINI,
        display_name="Gemini 3 Flash",
        description="Latest 3-series model with Pro-level intelligence at Flash speed and pricing",
        context_window=1_000_000,
        output_limit=65_536,
        supports_vision=True,
        endpoint=_gemini_endpoint("gemini-3-flash-preview"),
        pricing=ModelPricing(input_per_million=0.50, output_per_million=3.00),
        knowledge_cutoff="January 2025",
    ),
    LLMModel(
        id="gemini-2.0-flash",
        provider=LLMProvider.GEMINI,
        display_name="Gemini 2.0 Flash",
        description="Fast and efficient multimodal model",
        context_window=1_000_000,
        output_limit=8_192,
        supports_vision=True,
        endpoint=_gemini_endpoint("gemini-2.0-flash"),
        pricing=ModelPricing(input_per_million=0.10, output_per_million=0.40),
        knowledge_cutoff="August 2024",
    ),
    # Anthropic Claude
    LLMModel(
        id="claude-sonnet-4-20250514",
        provider=LLMProvider.ANTHROPIC,
        display_name="Claude Sonnet 4",
        description="Balanced performance and speed, excellent for code and analysis",
        context_window=200_000,
        output_limit=8_192,
        supports_vision=True,
        endpoint=ANTHROPIC_MESSAGES_URL,
        pricing=ModelPricing(input_per_million=3.00, output_per_million=15.00),
        knowledge_cutoff="April 2024",
    ),
    LLMModel(
        id="claude-opus-4-5-20251101",
        provider=LLMProvider.ANTHROPIC,
        display_name="Claude Opus 4.5",
        description="Most capable Claude model for complex reasoning",
        context_window=200_000,
        output_limit=8_192,
        supports_vision=True,
        endpoint=ANTHROPIC_MESSAGES_URL,
        pricing=ModelPricing(input_per_million=15.00, output_per_million=75.00),
        knowledge_cutoff="January 2025",
    ),
    LLMModel(
        id="claude-3-5-haiku-20241022",
        provider=LLMProvider.ANTHROPIC,
        display_name="Claude 3.5 Haiku",
        description="Fast and cost-effective for simple tasks",
        context_window=200_000,
        output_limit=8_192,
        supports_vision=True,
        endpoint=ANTHROPIC_MESSAGES_URL,
        pricing=ModelPricing(input_per_million=0.25, output_per_million=1.25),
        knowledge_cutoff="April 2024",
    ),
    # OpenAI GPT
    LLMModel(
        id="gpt-4o",
        provider=LLMProvider.OPENAI,
        display_name="GPT-4o",
        description="Multimodal flagship model with vision and text capabilities",
        context_window=128_000,
        output_limit=16_384,
        supports_vision=True,
        endpoint=OPENAI_CHAT_URL,
        pricing=ModelPricing(input_per_million=2.50, output_per_million=10.00),
        knowledge_cutoff="October 2023",
    ),
    LLMModel(
        id="gpt-4o-mini",
        provider=LLMProvider.OPENAI,
        display_name="GPT-4o Mini",
        description="Affordable and fast version of GPT-4o",
        context_window=128_000,
        output_limit=16_384,
        supports_vision=True,
        endpoint=OPENAI_CHAT_URL,
        pricing=ModelPricing(input_per_million=0.15, output_per_million=0.60),
        knowledge_cutoff="October 2023",
    ),
    LLMModel(
        id="gpt-4.1",
        provider=LLMProvider.OPENAI,
        display_name="GPT-4.1",
        description="Excels at instruction following with 1M context window",
        context_window=1_000_000,
        output_limit=32_768,
        supports_vision=True,
        endpoint=OPENAI_CHAT_URL,
        pricing=ModelPricing(input_per_million=2.00, output_per_million=8.00),
        knowledge_cutoff="December 2024",
    ),
    LLMModel(
        id="o3-mini",
        provider=LLMProvider.OPENAI,
        display_name="o3-mini",
        description="Small reasoning model, text only",
        context_window=200_000,
        output_limit=100_000,
        supports_vision=False,
        endpoint=OPENAI_CHAT_URL,
        pricing=ModelPricing(input_per_million=1.10, output_per_million=4.40),
        knowledge_cutoff="October 2023",
    ),
]

model_catalog = ModelCatalog(CATALOG_MODELS, default_model_id=DEFAULT_MODEL_ID)
