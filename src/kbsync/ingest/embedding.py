"""Embedding clients.

Every embedding call in kbsync routes through an :class:`EmbeddingClient`.
:class:`LiteLLMEmbeddingClient` is the production implementation; it maps
provider failures onto :class:`~kbsync.errors.EmbeddingError` with a
``transient`` flag so :class:`RetryingEmbeddingClient` knows what to retry.
"""

from __future__ import annotations

import logging
import math
import os
import threading
from typing import Protocol

import litellm

from kbsync.errors import EmbeddingError
from kbsync.retry import RetryPolicy

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

# Provider → env var mapping for API key validation
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "bedrock": None,  # AWS credential chain
    "ollama": None,  # Local, no key required
}

# Provider errors worth another attempt. Anything else (auth, bad request,
# unknown model) fails immediately.
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


class EmbeddingClient(Protocol):
    """Maps text to a fixed-length float vector."""

    model: str
    dimensions: int

    def embed(self, text: str, cancel: threading.Event | None = None) -> list[float]: ...


def validate_api_key(model: str) -> None:
    """Check that the API key env var required by *model*'s provider is set.

    Raises:
        EmbeddingError: Non-transient, if the key is missing.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise EmbeddingError(
            f"API key not found for provider '{provider}'. Set the {env_var} environment variable.",
            transient=False,
        )


class LiteLLMEmbeddingClient:
    """Single-text embeddings through ``litellm.embedding()``.

    Args:
        model: LiteLLM model string (provider/model format).
        dimensions: Expected vector length; any other length is rejected.
        timeout_seconds: Per-request timeout passed to the provider.
    """

    def __init__(self, model: str, dimensions: int, timeout_seconds: float = 60.0) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout_seconds = timeout_seconds

    def embed(self, text: str, cancel: threading.Event | None = None) -> list[float]:
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text", transient=False)
        try:
            response = litellm.embedding(
                model=self.model,
                input=[text],
                timeout=self.timeout_seconds,
            )
        except _TRANSIENT_ERRORS as exc:
            raise EmbeddingError(f"{self.model}: {exc}", transient=True) from exc
        except Exception as exc:
            # auth, bad request, unknown model: retrying cannot help
            raise EmbeddingError(f"{self.model}: {exc}", transient=False) from exc

        try:
            vector = [float(x) for x in response.data[0]["embedding"]]
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise EmbeddingError(f"{self.model}: malformed embedding response", transient=False) from exc
        return check_vector(vector, self.dimensions, self.model)


class RetryingEmbeddingClient:
    """Wrap a client so transient failures are retried under *policy*."""

    def __init__(self, inner: EmbeddingClient, policy: RetryPolicy) -> None:
        self.inner = inner
        self.policy = policy
        self.model = inner.model
        self.dimensions = inner.dimensions

    def embed(self, text: str, cancel: threading.Event | None = None) -> list[float]:
        return self.policy.call(
            f"embed ({self.model})",
            lambda: self.inner.embed(text, cancel),
            cancel,
        )


def check_vector(vector: list[float], dimensions: int, model: str) -> list[float]:
    """Reject vectors of the wrong length or with non-finite or all-zero values."""
    if len(vector) != dimensions:
        raise EmbeddingError(
            f"{model} returned {len(vector)} dimensions, expected {dimensions}. "
            "Check embedding.dimensions in kbsync.yaml.",
            transient=False,
        )
    if not all(math.isfinite(x) for x in vector):
        raise EmbeddingError(f"{model} returned a non-finite value", transient=False)
    if not any(vector):
        raise EmbeddingError(f"{model} returned an all-zero vector", transient=False)
    return vector
