"""
Embedder Tests

The OpenAI-compatible client, driven through httpx.MockTransport.
"""

import json

import httpx
import pytest

from transcript_search.embeddings.embedder import Embedder, EmbeddingError


def make_embedder(handler, dimensions=3):
    return Embedder(
        api_key="test-key",
        model="test-model",
        base_url="https://embeddings.test/v1/embeddings",
        dimensions=dimensions,
        transport=httpx.MockTransport(handler),
    )


def vector_for(text):
    return [float(len(text)), 1.0, 0.0]


def ok_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        requests.append(payload)
        data = [
            {"object": "embedding", "index": i, "embedding": vector_for(t)}
            for i, t in enumerate(payload["input"])
        ]
        # providers may return records out of order
        data.reverse()
        return httpx.Response(200, json={"data": data})
    return handler


@pytest.mark.asyncio
async def test_embed_batches_and_keeps_input_order():
    requests = []
    embedder = make_embedder(ok_handler(requests))
    texts = ["a", "bb", "ccc", "dddd", "eeeee"]

    result = await embedder.embed(texts, batch_size=2)

    assert result == [vector_for(t) for t in texts]
    assert [len(r["input"]) for r in requests] == [2, 2, 1]
    assert all(r["model"] == "test-model" for r in requests)


@pytest.mark.asyncio
async def test_embed_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.0, 0.0, 1.0]}]})

    await make_embedder(handler).embed_one("query")

    assert seen["auth"] == "Bearer test-key"


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert await make_embedder(handler).embed([]) == []


@pytest.mark.asyncio
async def test_http_error_raises_embedding_error():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(EmbeddingError):
        await make_embedder(handler).embed(["text"])


@pytest.mark.asyncio
async def test_transport_error_raises_embedding_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingError):
        await make_embedder(handler).embed(["text"])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"nope": []},
        {"data": "not-a-list"},
        {"data": []},
        {"data": [{"index": 0}]},
        {"data": [{"index": 5, "embedding": [0.0, 0.0, 1.0]}]},
        {"data": [{"index": 0, "embedding": ["x", 0.0, 1.0]}]},
        {"data": [{"index": 0, "embedding": [0.0, 1.0]}]},
    ],
)
async def test_malformed_responses_raise_embedding_error(body):
    def handler(request):
        return httpx.Response(200, json=body)

    with pytest.raises(EmbeddingError):
        await make_embedder(handler).embed(["text"])


@pytest.mark.asyncio
async def test_duplicate_indices_raise_embedding_error():
    def handler(request):
        return httpx.Response(
            200,
            json={"data": [
                {"index": 0, "embedding": [0.0, 0.0, 1.0]},
                {"index": 0, "embedding": [0.0, 1.0, 0.0]},
            ]},
        )

    with pytest.raises(EmbeddingError):
        await make_embedder(handler).embed(["one", "two"])


@pytest.mark.asyncio
@pytest.mark.parametrize("texts", [["ok", "   "], ["ok", ""]])
async def test_blank_text_is_rejected_before_request(texts):
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(EmbeddingError):
        await make_embedder(handler).embed(texts)
