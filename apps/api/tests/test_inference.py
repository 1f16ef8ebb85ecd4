from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import OpenAIError

from services.errors import UpstreamError
from services.inference import InferenceClient, ZeroShotClient, get_openai_client

MODEL_URL = "https://zero-shot.test/models/bart"


def _openai_mock(response=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return client


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_placeholder_keys_disable_the_client():
    assert get_openai_client("") is None
    assert get_openai_client("your_openai_api_key") is None
    assert InferenceClient(None, model="gpt-4o-mini").available is False


@pytest.mark.asyncio
async def test_complete_sends_json_mode_and_strips_text():
    client = _openai_mock(response=_completion("  {\"haram\": false}  "))
    inference = InferenceClient(client, model="gpt-4o-mini")

    text = await inference.complete("check this", task="moderation", system="sys", json_mode=True)

    assert text == '{"haram": false}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
    assert "top_p" not in kwargs


@pytest.mark.asyncio
async def test_complete_maps_provider_failures_to_upstream_error():
    failing = InferenceClient(_openai_mock(error=OpenAIError("rate limited")), model="m")
    empty = InferenceClient(_openai_mock(response=SimpleNamespace(choices=[])), model="m")

    with pytest.raises(UpstreamError):
        await failing.complete("x", task="generation")
    with pytest.raises(UpstreamError):
        await empty.complete("x", task="generation")
    with pytest.raises(UpstreamError):
        await InferenceClient(None, model="m").complete("x", task="generation")


@pytest.mark.asyncio
async def test_zero_shot_classify_reads_scores_and_sends_labels():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(
            200,
            json=[{"sequence": "x", "labels": ["alcohol", "halal content"], "scores": [0.81, 0.19]}],
        )

    client = ZeroShotClient("hf_real_key", MODEL_URL, transport=httpx.MockTransport(handler))
    scores = await client.classify("a glass of wine", ["alcohol", "halal content"])

    assert scores == {"alcohol": 0.81, "halal content": 0.19}
    assert seen["auth"] == "Bearer hf_real_key"
    assert b"candidate_labels" in seen["body"]


@pytest.mark.asyncio
async def test_zero_shot_retries_once_on_transport_error():
    attempts = {"count": 0}

    def flaky(request: httpx.Request):
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"labels": ["pork"], "scores": [0.9]})

    client = ZeroShotClient("", MODEL_URL, transport=httpx.MockTransport(flaky))
    assert await client.classify("bacon", ["pork"]) == {"pork": 0.9}
    assert attempts["count"] == 2

    def down(request: httpx.Request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(UpstreamError):
        await ZeroShotClient("", MODEL_URL, transport=httpx.MockTransport(down)).classify("x", ["pork"])


@pytest.mark.asyncio
async def test_zero_shot_http_errors_and_bad_bodies_raise_upstream_error():
    loading = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "Model is loading"}))
    odd = httpx.MockTransport(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(UpstreamError):
        await ZeroShotClient("", MODEL_URL, transport=loading).classify("x", ["pork"])
    with pytest.raises(UpstreamError):
        await ZeroShotClient("", MODEL_URL, transport=odd).classify("x", ["pork"])
