"""LiteLLM + instructor client wrapper.

All embedding and generation calls in the chat pipeline route through this
module. Structured generation uses instructor on top of ``litellm.completion``
so that every response is decoded into a pydantic model; failures surface as
ordinary exceptions for the caller's fallback chain to handle.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any, TypeVar

import instructor
import litellm
from pydantic import BaseModel

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

T = TypeVar("T", bound=BaseModel)


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed(model: str, text: str, num_retries: int = 0) -> list[float]:
    """Call litellm.embedding() and return the embedding vector.

    Retries are off by default: a failed query embedding degrades retrieval
    instead of being retried.
    """
    response = litellm.embedding(
        model=model,
        input=[text],
        num_retries=num_retries,
    )
    return response.data[0]["embedding"]


# ------------------------------------------------------------------
# Structured generation (instructor)
# ------------------------------------------------------------------


def _structured_client() -> instructor.Instructor:
    return instructor.from_litellm(litellm.completion)


def complete_structured(
    model: str,
    messages: list[dict],
    response_model: type[T],
    temperature: float = 0.4,
    max_tokens: int = 2048,
    max_retries: int = 1,
) -> tuple[T, int | None]:
    """Generate an instance of *response_model* with schema-constrained decoding.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list (system prompt first).
        response_model: Pydantic model the output must validate against.
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens.
        max_retries: Validation re-asks performed by instructor for this model.

    Returns:
        ``(parsed, total_tokens)``; ``total_tokens`` is None when the provider
        reports no usage.

    Raises:
        Exception: Any provider, timeout or validation error, unchanged.
    """
    client = _structured_client()
    parsed, completion = client.chat.completions.create_with_completion(
        model=model,
        messages=messages,
        response_model=response_model,
        temperature=temperature,
        max_tokens=max_tokens,
        max_retries=max_retries,
    )
    return parsed, _total_tokens(completion)


def stream_structured(
    model: str,
    messages: list[dict],
    response_model: type[T],
    temperature: float = 0.4,
    max_tokens: int = 2048,
) -> Iterator[Any]:
    """Stream partial instances of *response_model* as they are decoded.

    Yielded objects are instructor ``Partial`` views: every field may still be
    missing. Consumers must validate the last snapshot themselves.
    """
    client = _structured_client()
    return client.chat.completions.create_partial(
        model=model,
        messages=messages,
        response_model=response_model,
        temperature=temperature,
        max_tokens=max_tokens,
    )


def _total_tokens(completion: Any) -> int | None:
    usage = getattr(completion, "usage", None)
    total = getattr(usage, "total_tokens", None) if usage is not None else None
    return total if isinstance(total, int) else None
