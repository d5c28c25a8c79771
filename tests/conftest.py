"""
Shared fakes for the pipeline tests.

- `WordEncoding`: a deterministic stand-in for a tiktoken encoding where
  every whitespace-prefixed word is one token.
- `FakeEmbedder`: keyword-count vectors, with optional failure triggers.
"""

import asyncio
import re
from typing import Dict, List, Sequence

import pytest

from transcript_search.core.errors import EmbeddingError
from transcript_search.db.chunk_store import InMemoryChunkStore
from transcript_search.db.sources import InMemorySegmentRepository
from transcript_search.embeddings.chunker import Chunker, ChunkingConfig
from transcript_search.embeddings.models import SourceDocument
from transcript_search.embeddings.tokenizer import Tokenizer


class WordEncoding:
    _pattern = re.compile(r"\s*\S+|\s+")

    def __init__(self) -> None:
        self._ids: Dict[str, int] = {}
        self._words: Dict[int, str] = {}

    def encode_ordinary(self, text: str) -> List[int]:
        tokens = []
        for word in self._pattern.findall(text):
            if word not in self._ids:
                token = len(self._ids)
                self._ids[word] = token
                self._words[token] = word
            tokens.append(self._ids[word])
        return tokens

    def decode_bytes(self, tokens: Sequence[int]) -> bytes:
        return "".join(self._words[t] for t in tokens).encode("utf-8")


KEYWORDS = ["python", "react", "database", "testing"]


def keyword_vector(text: str) -> List[float]:
    lowered = text.lower()
    return [float(lowered.count(k)) for k in KEYWORDS] + [0.1]


class FakeEmbedder:
    def __init__(self, fail_on: Sequence[str] = ()) -> None:
        self.fail_on = list(fail_on)
        self.calls: List[List[str]] = []

    async def embed(self, texts: Sequence[str], batch_size: int = 20) -> List[List[float]]:
        self.calls.append(list(texts))
        for text in texts:
            for marker in self.fail_on:
                if marker in text:
                    raise EmbeddingError(f"provider rejected input containing {marker!r}")
        return [keyword_vector(t) for t in texts]

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]


class SlowEmbedder(FakeEmbedder):
    """Hands the loop to other tasks before answering, like a network call."""

    async def embed(self, texts: Sequence[str], batch_size: int = 20) -> List[List[float]]:
        for _ in range(5):
            await asyncio.sleep(0)
        return await super().embed(texts, batch_size)


def words(count: int, prefix: str = "w") -> str:
    """A text of exactly `count` WordEncoding tokens."""
    return " ".join(f"{prefix}{i}" for i in range(count))


@pytest.fixture
def tokenizer():
    return Tokenizer(encoding=WordEncoding(), yield_every=1000, piece_chars=200)


@pytest.fixture
def chunker(tokenizer):
    return Chunker(tokenizer, ChunkingConfig(target_chunk_size=500, overlap_size=50))


@pytest.fixture
def small_chunker(tokenizer):
    return Chunker(tokenizer, ChunkingConfig(target_chunk_size=10, overlap_size=3))


@pytest.fixture
def segments():
    return InMemorySegmentRepository(
        [
            SourceDocument(
                id=1, title="Intro to Python", slug="intro-python",
                module_title="Getting Started", module_order=1, order=1,
                transcript="python basics " * 30,
            ),
            SourceDocument(
                id=2, title="React Hooks", slug="react-hooks",
                module_title="Frontend", module_order=2, order=1,
                transcript="react hooks and state " * 20,
            ),
            SourceDocument(
                id=3, title="Database Design", slug="database-design",
                module_title="Backend", module_order=3, order=1,
                transcript="database tables and indexes " * 25,
            ),
            SourceDocument(
                id=4, title="Coming Soon", slug="coming-soon",
                module_title="Backend", module_order=3, order=2,
                transcript=None,
            ),
        ]
    )


@pytest.fixture
def store(segments):
    return InMemoryChunkStore(segments)


@pytest.fixture
def embedder():
    return FakeEmbedder()
