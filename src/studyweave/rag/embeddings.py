"""Embedding provider: text → fixed-dimension vector via LiteLLM."""

from __future__ import annotations

import logging

from studyweave.errors import EmbeddingError
from studyweave.rag.llm_client import embed

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """Embed text with one configured model and enforce its dimensionality.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; anything else is rejected so a
            mismatched vector can never reach the document store.
    """

    def __init__(self, model: str = "gemini/text-embedding-004", dimensions: int = 768) -> None:
        self.model = model
        self.dimensions = dimensions

    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            EmbeddingError: On provider failure, empty result, or wrong dimension.
        """
        try:
            vector = embed(self.model, text)
        except Exception as exc:
            raise EmbeddingError(f"Embedding with '{self.model}' failed: {exc}") from exc

        if not vector:
            raise EmbeddingError(f"Embedding with '{self.model}' returned no vector")
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding with '{self.model}' has {len(vector)} dimensions, "
                f"expected {self.dimensions}"
            )
        logger.debug("Embedded %d chars with %s", len(text), self.model)
        return [float(v) for v in vector]
