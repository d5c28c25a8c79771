"""
Tokenizer Adapter

Converts text to token ids and back using a tiktoken BPE encoding, without
holding the event loop for the whole of a long transcript.

Encoding a multi-hour transcript is a CPU-bound pass that can take long
enough for pooled database connections to miss their keep-alive traffic.
Both directions therefore work in batches and `await asyncio.sleep(0)`
between them so that other tasks on the loop get a turn.
"""

from __future__ import annotations

import asyncio
import re
from typing import List, Optional, Protocol, Sequence

import tiktoken

from ..core.errors import DecodeError


# Split points between a non-space character and a following " word".
# BPE pre-tokenization never merges across these positions, so encoding the
# pieces one by one yields the same ids as encoding the whole text.
_PIECE_BOUNDARY = re.compile(r"(?<=\S)(?= \S)")


class Encoding(Protocol):
    """The subset of `tiktoken.Encoding` the adapter relies on."""

    def encode_ordinary(self, text: str) -> List[int]: ...

    def decode_bytes(self, tokens: Sequence[int]) -> bytes: ...


class Tokenizer:
    """
    Cooperative text <-> token id adapter.

    Parameters
    ----------
    encoding : Optional[Encoding]
        Encoding to use. Defaults to tiktoken's `encoding_name`, loaded on
        first use.
    encoding_name : str
        tiktoken encoding name used when `encoding` is not given.
    yield_every : int
        Number of tokens processed between yields to the event loop.
    piece_chars : int
        Target size in characters of each piece handed to the encoder.
    """

    def __init__(
        self,
        encoding: Optional[Encoding] = None,
        encoding_name: str = "cl100k_base",
        yield_every: int = 1000,
        piece_chars: int = 2000,
    ) -> None:
        if yield_every < 1:
            raise ValueError("yield_every must be positive")

        self._encoding = encoding
        self._encoding_name = encoding_name
        self.yield_every = yield_every
        self.piece_chars = piece_chars

    @property
    def encoding(self) -> Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._encoding_name)
        return self._encoding

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def encode(self, text: str) -> List[int]:
        """
        Encode text into token ids, yielding to the loop every
        `yield_every` tokens.
        """
        if not text:
            return []

        encoding = self.encoding
        tokens: List[int] = []
        since_yield = 0

        for piece in self._split_pieces(text):
            piece_tokens = encoding.encode_ordinary(piece)
            tokens.extend(piece_tokens)
            since_yield += len(piece_tokens)

            if since_yield >= self.yield_every:
                since_yield = 0
                await asyncio.sleep(0)

        return tokens

    async def decode(self, token_ids: Sequence[int]) -> str:
        """
        Decode token ids back to text.

        Raises
        ------
        DecodeError
            If the sequence holds anything other than known token ids.
        """
        if not token_ids:
            return ""

        for position, token in enumerate(token_ids):
            if isinstance(token, bool) or not isinstance(token, int) or token < 0:
                raise DecodeError(
                    f"Invalid token id at position {position}: {token!r}"
                )

        encoding = self.encoding
        parts: List[bytes] = []

        for start in range(0, len(token_ids), self.yield_every):
            batch = list(token_ids[start : start + self.yield_every])
            try:
                parts.append(encoding.decode_bytes(batch))
            except (KeyError, ValueError, TypeError, OverflowError) as exc:
                raise DecodeError(
                    f"Token ids {start}..{start + len(batch) - 1} could not be decoded: "
                    f"{type(exc).__name__}"
                ) from exc

            if start + self.yield_every < len(token_ids):
                await asyncio.sleep(0)

        # Window edges may fall inside a multi-byte character.
        return b"".join(parts).decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _split_pieces(self, text: str) -> List[str]:
        pieces: List[str] = []
        start = 0

        for match in _PIECE_BOUNDARY.finditer(text):
            if match.start() - start >= self.piece_chars:
                pieces.append(text[start : match.start()])
                start = match.start()

        pieces.append(text[start:])
        return pieces
