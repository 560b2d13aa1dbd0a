"""Query embeddings for semantic search."""

from __future__ import annotations

from openai import OpenAI, OpenAIError

from devtrail.config import Settings
from devtrail.errors import CollaboratorError


class OpenAIEmbedder:
    """Embed search queries with an OpenAI-compatible embeddings endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        if not settings.openai_api_key:
            raise ValueError(
                "Missing DEVTRAIL_OPENAI_API_KEY. "
                "Set it in environment variables or a .env file."
            )

        self._client = OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)

    def embed_query(self, text: str) -> list[float]:
        """Return the embedding vector for a query.

        Raises:
            CollaboratorError: If the endpoint fails or returns no vector.
        """

        try:
            resp = self._client.embeddings.create(
                model=self._settings.embedding_model,
                input=[text],
                dimensions=self._settings.embedding_dimensions,
                timeout=self._settings.openai_timeout_s,
            )
        except OpenAIError as e:
            raise CollaboratorError(f"embedding request failed: {e}") from e

        if not resp.data or not resp.data[0].embedding:
            raise CollaboratorError("embedding response contained no vector")
        return list(resp.data[0].embedding)
