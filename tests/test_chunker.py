"""
Chunker Tests

Windowing, overlap and index properties of chunk_document.
"""

import asyncio

import pytest

from transcript_search.embeddings.chunker import Chunker, ChunkingConfig
from transcript_search.embeddings.tokenizer import Tokenizer

from conftest import words


class TestChunkingConfig:
    """Construction-time validation of window sizes."""

    def test_defaults(self):
        config = ChunkingConfig()
        assert config.target_chunk_size == 500
        assert config.overlap_size == 50

    @pytest.mark.parametrize("overlap", [500, 501, -1])
    def test_overlap_must_be_smaller_than_target(self, overlap):
        with pytest.raises(ValueError):
            ChunkingConfig(target_chunk_size=500, overlap_size=overlap)

    def test_target_must_be_positive(self):
        with pytest.raises(ValueError):
            ChunkingConfig(target_chunk_size=0, overlap_size=0)


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t  \n"])
async def test_blank_text_gives_no_chunks(chunker, text):
    assert await chunker.chunk_document(text) == []


@pytest.mark.asyncio
async def test_short_text_is_single_trimmed_chunk(chunker):
    text = "  " + words(120) + "  \n"

    chunks = await chunker.chunk_document(text)

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].text == text.strip()
    # leading whitespace joins the first word, the trailing run is one token
    assert chunks[0].token_count == 121


@pytest.mark.asyncio
async def test_text_of_exactly_target_size_is_one_chunk(chunker):
    chunks = await chunker.chunk_document(words(500))

    assert len(chunks) == 1
    assert chunks[0].token_count == 500


@pytest.mark.asyncio
async def test_1200_tokens_produce_three_windows(chunker):
    chunks = await chunker.chunk_document(words(1200))

    assert [c.index for c in chunks] == [0, 1, 2]
    assert [(c.start_token, c.end_token) for c in chunks] == [(0, 500), (450, 950), (900, 1200)]
    assert [c.token_count for c in chunks] == [500, 500, 300]
    assert chunks[1].text.startswith("w450 ")
    assert chunks[1].text.endswith(" w949")
    assert chunks[2].text.endswith("w1199")


@pytest.mark.asyncio
async def test_one_token_over_target_gives_short_tail(chunker):
    chunks = await chunker.chunk_document(words(501))

    assert [(c.start_token, c.token_count) for c in chunks] == [(0, 500), (450, 51)]


@pytest.mark.asyncio
async def test_consecutive_chunks_share_overlap_tokens(chunker):
    chunks = await chunker.chunk_document(words(2345))

    for current, following in zip(chunks, chunks[1:]):
        assert current.end_token - following.start_token == 50
        assert current.text.split()[-50:] == following.text.split()[:50]

    assert all(c.token_count == 500 for c in chunks[:-1])
    assert chunks[-1].token_count <= 500
    assert chunks[-1].end_token == 2345


@pytest.mark.asyncio
async def test_indices_are_dense_and_windows_cover_all_tokens(small_chunker):
    chunks = await small_chunker.chunk_document(words(25))

    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert [(c.start_token, c.end_token) for c in chunks] == [(0, 10), (7, 17), (14, 24), (21, 25)]

    covered = set()
    for c in chunks:
        covered.update(range(c.start_token, c.end_token))
    assert covered == set(range(25))


@pytest.mark.asyncio
async def test_window_count_is_bounded(small_chunker):
    total = 1000
    chunks = await small_chunker.chunk_document(words(total))

    step = 10 - 3
    assert len(chunks) <= -(-total // step)


@pytest.mark.asyncio
async def test_chunking_is_deterministic(tokenizer):
    chunker = Chunker(tokenizer, ChunkingConfig(target_chunk_size=40, overlap_size=5))
    text = words(333)

    first = await chunker.chunk_document(text)
    second = await chunker.chunk_document(text)

    assert [(c.index, c.text, c.token_count) for c in first] == [
        (c.index, c.text, c.token_count) for c in second
    ]


@pytest.mark.asyncio
async def test_zero_overlap_windows_tile(tokenizer):
    chunker = Chunker(tokenizer, ChunkingConfig(target_chunk_size=100, overlap_size=0))

    chunks = await chunker.chunk_document(words(250))

    assert [(c.start_token, c.token_count) for c in chunks] == [(0, 100), (100, 100), (200, 50)]


class CharEncoding:
    """One token per character."""

    def encode_ordinary(self, text):
        return [ord(c) for c in text]

    def decode_bytes(self, tokens):
        return "".join(chr(t) for t in tokens).encode("utf-8")


@pytest.mark.asyncio
async def test_whitespace_only_windows_are_dropped_and_indices_stay_dense():
    chunker = Chunker(
        Tokenizer(encoding=CharEncoding()),
        ChunkingConfig(target_chunk_size=4, overlap_size=0),
    )

    chunks = await chunker.chunk_document("abc" + " " * 10 + "def")

    assert [(c.index, c.text, c.start_token) for c in chunks] == [(0, "abc", 0), (1, "def", 12)]


async def _ticks_while_chunking(chunker, text):
    ticks = 0
    stop = asyncio.Event()

    async def ticker():
        nonlocal ticks
        while not stop.is_set():
            ticks += 1
            await asyncio.sleep(0)

    task = asyncio.create_task(ticker())
    chunks = await chunker.chunk_document(text)
    stop.set()
    await task
    return chunks, ticks


@pytest.mark.asyncio
async def test_chunking_yields_between_decoded_windows(tokenizer):
    yielding = Chunker(
        tokenizer,
        ChunkingConfig(target_chunk_size=10, overlap_size=0, decode_yield_every=1),
    )
    chunks, ticks = await _ticks_while_chunking(yielding, words(200))

    assert len(chunks) == 20
    assert ticks >= 15


@pytest.mark.asyncio
async def test_chunking_yields_only_every_n_windows(tokenizer):
    sparse = Chunker(
        tokenizer,
        ChunkingConfig(target_chunk_size=10, overlap_size=0, decode_yield_every=100),
    )
    chunks, ticks = await _ticks_while_chunking(sparse, words(200))

    assert len(chunks) == 20
    assert ticks == 0
