"""
CoffeeTime AI Backend: Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for each failure category of the
       AI orchestration layer.
How:   Each exception carries a user-facing message and an optional context
       dict. Global exception handlers (registered in main.py) catch these and
       return `{"error": message}` JSON responses with the matching status.
Who:   Raised by services and adapters; caught by global handlers.

Exception Hierarchy:
    CoffeeTimeError (base)
    ├── ValidationError                      → 400 (missing/invalid input)
    ├── ConfigurationError                   → user can fix it in Settings
    │   ├── ModelNotFoundError               → 400
    │   ├── UnsupportedModelCapabilityError  → 400
    │   ├── MissingAPIKeyError               → 400
    │   └── FallbackKeyMissingError          → 500 (server misconfigured)
    ├── ProviderError                        → 500 (non-success HTTP / transport)
    │   └── ImageGenerationError             → 500 (shared status policy message)
    ├── EmptyResponseError                   → 500 (success without payload)
    ├── NoImageProducedError                 → 500
    ├── ExtractionError                      → 500
    │   ├── NoStructuredDataError
    │   └── MalformedStructuredDataError
    └── DatabaseError                        → 500

Propagation policy: every category propagates unchanged to the route layer.
Nothing is retried automatically and nothing is swallowed.
"""

from typing import Any, Dict, Optional


class CoffeeTimeError(Exception):
    """
    Base exception for all CoffeeTime application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CoffeeTimeError):
    """
    Raised when client input fails validation.

    When:    Missing transcript or image, unknown product type, malformed body.
    HTTP:    400 Bad Request. Raised before any network activity.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


# ══════════════════════════════════════════════════════════════════════════
# Configuration
# ══════════════════════════════════════════════════════════════════════════


class ConfigurationError(CoffeeTimeError):
    """
    Base for configuration failures: no usable key, unknown model,
    unsupported model capability.

    Reported distinctly from provider errors so a user can self-correct
    in Settings.
    """


class ModelNotFoundError(ConfigurationError):
    """Raised when a model id is not in the catalog. Fails before any network call."""

    def __init__(self, model_id: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["model_id"] = model_id
        super().__init__(message=f"Model '{model_id}' was not found", context=ctx)
        self.model_id = model_id


class UnsupportedModelCapabilityError(ConfigurationError):
    """Raised when the selected model cannot accept image input."""

    def __init__(self, model_name: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Model {model_name} does not support image analysis",
            context=context,
        )
        self.model_name = model_name


class MissingAPIKeyError(ConfigurationError):
    """
    Raised when the resolved provider has no API key in the user's settings.

    The message names the provider in human-readable form.
    """

    def __init__(
        self,
        provider_name: str,
        purpose: str = "image generation",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=(
                f"{provider_name} API key is required for {purpose}. "
                "Please add it in Settings > AI Settings."
            ),
            context=context,
        )
        self.provider_name = provider_name


class FallbackKeyMissingError(ConfigurationError):
    """Raised when no caller key was supplied and the server has no fallback key."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="No AI API key configured. Please add your API key in Settings.",
            context=context,
        )


# ══════════════════════════════════════════════════════════════════════════
# Provider transport / protocol
# ══════════════════════════════════════════════════════════════════════════


class ProviderError(CoffeeTimeError):
    """
    Raised when a provider call fails: non-success HTTP status, timeout or
    transport error.

    Attributes:
        provider:     Provider discriminant value (e.g. "anthropic")
        status_code:  HTTP status returned by the provider, None for transport errors
    """

    def __init__(
        self,
        provider: str,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["provider"] = provider
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message or f"{provider} provider error", context=ctx)
        self.provider = provider
        self.status_code = status_code


class ImageGenerationError(ProviderError):
    """Non-success status from an image-generation backend, mapped to policy text."""


class EmptyResponseError(CoffeeTimeError):
    """
    Raised when a provider returns success with no extractable text payload
    (empty candidate/choice/content list).

    A protocol-correctness violation, kept separate from ProviderError so
    diagnostics can tell the two apart.
    """

    def __init__(self, provider: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["provider"] = provider
        super().__init__(message=f"Empty response from {provider}", context=ctx)
        self.provider = provider


class NoImageProducedError(CoffeeTimeError):
    """Raised when an image backend answers successfully with an empty result list."""

    def __init__(self, provider_name: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message=f"No image was produced by {provider_name}", context=context)
        self.provider_name = provider_name


# ══════════════════════════════════════════════════════════════════════════
# Extraction
# ══════════════════════════════════════════════════════════════════════════


class ExtractionError(CoffeeTimeError):
    """Base for absent or malformed JSON in an otherwise successful completion."""


class NoStructuredDataError(ExtractionError):
    """The model reply contains no brace-delimited span."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="No structured data found in model response", context=context)


class MalformedStructuredDataError(ExtractionError):
    """The brace-delimited span failed to parse. Carries the parser message."""

    def __init__(self, detail: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message=f"Malformed structured data: {detail}", context=context)
        self.detail = detail


class DatabaseError(CoffeeTimeError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; details are
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
