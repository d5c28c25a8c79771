"""
Transcript Chunker

Splits a transcript into overlapping, token-bounded windows suitable for
embedding.

Windowing
---------
- Text whose token count fits in one window becomes a single chunk holding
  the whole trimmed text.
- Longer text is covered by windows of `target_chunk_size` tokens. Each
  window after the first starts `overlap_size` tokens before the previous
  window ended, so consecutive chunks share that much context.
- The last window ends exactly at the final token and may be shorter.
- Windows that decode to whitespace only are dropped; the remaining
  chunks are numbered 0, 1, 2, ... without gaps.

Because `overlap_size < target_chunk_size`, every window starts strictly
after the previous one and the loop runs at most
`ceil(total / (target_chunk_size - overlap_size))` times.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List

from .models import Chunk
from .tokenizer import Tokenizer


@dataclass(frozen=True)
class ChunkingConfig:
    """Window sizes for the chunker, in tokens."""

    target_chunk_size: int = 500
    overlap_size: int = 50
    decode_yield_every: int = 10

    def __post_init__(self) -> None:
        if self.target_chunk_size < 1:
            raise ValueError("target_chunk_size must be positive")
        if not 0 <= self.overlap_size < self.target_chunk_size:
            raise ValueError(
                "overlap_size must be >= 0 and smaller than target_chunk_size "
                f"(got overlap_size={self.overlap_size}, "
                f"target_chunk_size={self.target_chunk_size})"
            )
        if self.decode_yield_every < 1:
            raise ValueError("decode_yield_every must be positive")


class Chunker:
    """
    Deterministic overlap-aware windowing over a tokenizer.

    The output depends only on the text and the config.
    """

    def __init__(self, tokenizer: Tokenizer, config: ChunkingConfig = ChunkingConfig()) -> None:
        self.tokenizer = tokenizer
        self.config = config

    async def chunk_document(self, text: str) -> List[Chunk]:
        """
        Split `text` into ordered chunks with indices 0, 1, 2, ...

        Empty or whitespace-only text yields an empty list.
        """
        if not text or not text.strip():
            return []

        tokens = await self.tokenizer.encode(text)
        total = len(tokens)
        size = self.config.target_chunk_size

        if total <= size:
            return [Chunk(index=0, text=text.strip(), token_count=total, start_token=0)]

        chunks: List[Chunk] = []
        start = 0
        windows = 0

        while True:
            end = min(start + size, total)
            window_text = (await self.tokenizer.decode(tokens[start:end])).strip()
            windows += 1

            if window_text:
                chunks.append(
                    Chunk(
                        index=len(chunks),
                        text=window_text,
                        token_count=end - start,
                        start_token=start,
                    )
                )

            if end >= total:
                break

            start = end - self.config.overlap_size

            if windows % self.config.decode_yield_every == 0:
                await asyncio.sleep(0)

        return chunks
