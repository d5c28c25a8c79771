"""
Embedding Client

This module implements the embedding client used for both transcript chunks
and search queries. It talks to the OpenAI embeddings API (or any
compatible provider) and is responsible for:

- Batching text inputs
- Network and transport error isolation
- Strict response validation, including vector dimensionality
- Mapping every returned vector back to its input by the record's `index`

Failures raise `EmbeddingError` and are never retried inside a call;
callers re-submit at the segment level.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings
from ..core.errors import EmbeddingError

logger = logging.getLogger("transcripts.embedder")

__all__ = ["Embedder", "EmbeddingError"]


class Embedder:
    """
    Asynchronous embedding generator for batches of text.

    The class is stateless apart from configuration and safe to reuse
    across requests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Override for the API key. Defaults to settings.openai_api_key.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Embeddings endpoint. Defaults to settings.embedding_api_url.

        dimensions : Optional[int]
            Expected vector length. Defaults to settings.embedding_dimensions.

        timeout : Optional[float]
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to stub the provider.
        """
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_api_url
        self.dimensions = dimensions or settings.embedding_dimensions
        self.timeout = timeout or settings.embedding_timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            Input strings. Output position i always belongs to texts[i].

        batch_size : int
            Maximum batch size per request.

        Returns
        -------
        List[List[float]]
            One embedding per input text, in input order.

        Raises
        ------
        EmbeddingError
            If any input is blank, any batch fails or a response is malformed.
        """
        if not texts:
            return []

        for position, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise EmbeddingError(
                    f"Invalid text at index {position}: must be a non-empty string"
                )

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for start in range(0, len(texts), batch_size):
                batch = [t.strip() for t in texts[start : start + batch_size]]
                payload = {
                    "model": self.model,
                    "input": batch,
                }

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.error(
                        "Embedding request failed (%s): batch start=%d, size=%d, error=%s",
                        type(exc).__name__,
                        start,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                try:
                    data = response.json()
                except ValueError as exc:
                    raise EmbeddingError("Embedding response is not valid JSON.") from exc

                embeddings = self._extract_embeddings(data, expected=len(batch))
                all_embeddings.extend(embeddings)

        return all_embeddings

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text, typically a search query."""
        embeddings = await self.embed([text], batch_size=1)
        return embeddings[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embeddings(self, data: dict, expected: int) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are placed by their `index` field; records without one are
        taken in arrival order.

        Raises
        ------
        EmbeddingError
            If the API returns an unexpected structure, count or dimension.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        if len(records) != expected:
            raise EmbeddingError(
                f"Expected {expected} embeddings, got {len(records)}."
            )

        slots: List[Optional[List[float]]] = [None] * expected

        for position, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {position}: {record!r}"
                )

            target = record.get("index", position)
            if not isinstance(target, int) or not 0 <= target < expected:
                raise EmbeddingError(
                    f"Embedding record {position} has out-of-range index {target!r}."
                )
            if slots[target] is not None:
                raise EmbeddingError(f"Duplicate embedding for index {target}.")

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {target}: must be float list."
                )

            if self.dimensions and len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding at index {target} has {len(emb)} dimensions, "
                    f"expected {self.dimensions}."
                )

            slots[target] = [float(x) for x in emb]

        return [emb for emb in slots if emb is not None]
