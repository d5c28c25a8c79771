"""
Vector Search

Semantic search over embedded transcript chunks.

Responsibilities
----------------
- Embed the query
- Ask the chunk store for the nearest embedded chunks
- Return ranked results with segment and module metadata
"""

from __future__ import annotations

import logging
from typing import List

from .embedder import Embedder
from .models import SearchResult
from ..db.chunk_store import ChunkStore

logger = logging.getLogger("transcripts.search")


class VectorSearch:
    def __init__(self, store: ChunkStore, embedder: Embedder) -> None:
        self._store = store
        self._embedder = embedder

    async def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """
        Return up to `limit` chunks ranked by cosine similarity to `query`.

        Results are ordered by descending similarity, ties by ascending
        chunk id. A blank query or an empty corpus gives an empty list;
        `EmbeddingError` from the embedder propagates.
        """
        if not query or not query.strip() or limit < 1:
            return []

        query_embedding = await self._embedder.embed_one(query)
        results = await self._store.search(query_embedding, limit)

        # ties on similarity resolve by chunk id
        results = sorted(results, key=lambda r: (-r.similarity, r.id))[:limit]

        logger.debug("Search %r returned %d results", query[:80], len(results))
        return results
