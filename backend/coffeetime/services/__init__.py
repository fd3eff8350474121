"""
CoffeeTime AI Backend: Services Layer
=====================================

Service Inventory:
    - ModelCatalog:           static registry of models per provider
    - ProviderAdapter (ABC):  one completion call against one provider
        GeminiAdapter, AnthropicAdapter, OpenAIAdapter
    - LLMDispatcher:          model lookup + adapter selection
    - ImageDispatcher:        GoogleImagenGenerator, OpenAIImageGenerator
    - ConfigurationResolver:  caller config / user settings / fallback key
    - prompts, structured_extraction: pure helpers
    - AISettingsService:      per-user AI Settings store (SQLAlchemy)
    - AITaskService:          analyze_image, parse_voice, generate_image
"""
