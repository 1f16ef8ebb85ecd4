"""Clients for the hosted inference services.

``InferenceClient`` talks to an OpenAI-compatible chat-completions endpoint and
is used by every pipeline step that needs a language model. ``ZeroShotClient``
calls a Hugging Face zero-shot classification model and only backs the
moderation fallback path.

Both normalize transport and provider failures to ``UpstreamError`` so callers
decide whether to degrade or abort.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError

from config import settings
from services.errors import UpstreamError

logger = logging.getLogger(__name__)


def _is_placeholder_key(api_key: Optional[str]) -> bool:
    key = (api_key or "").strip()
    return not key or "your_" in key or key == "test-key"


def get_openai_client(api_key: str) -> Optional[AsyncOpenAI]:
    """Get OpenAI client, handling placeholders."""
    if _is_placeholder_key(api_key):
        return None
    return AsyncOpenAI(
        api_key=api_key,
        base_url=settings.OPENAI_BASE_URL or None,
        timeout=settings.INFERENCE_TIMEOUT_SECONDS,
        max_retries=max(int(settings.INFERENCE_MAX_RETRIES), 0),
    )


class InferenceClient:
    def __init__(self, client: Optional[AsyncOpenAI], model: str):
        self._client = client
        self.model = model

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        prompt: str,
        *,
        task: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: int = 512,
        temperature: float = 0.1,
        top_p: Optional[float] = None,
    ) -> str:
        """Run one chat completion and return the assistant text."""
        if self._client is None:
            raise UpstreamError(f"Inference API key missing or unavailable ({task})")

        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if top_p is not None:
            kwargs["top_p"] = top_p
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            logger.warning("Inference call failed task=%s model=%s: %s", task, self.model, exc)
            raise UpstreamError(f"Inference call failed ({task})") from exc

        if not response.choices:
            raise UpstreamError(f"Inference returned no choices ({task})")
        return (response.choices[0].message.content or "").strip()


class ZeroShotClient:
    def __init__(
        self,
        api_key: str,
        model_url: str,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model_url = model_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def classify(self, text: str, labels: Sequence[str]) -> Dict[str, float]:
        """Return a score in [0, 1] per candidate label."""
        payload = {"inputs": text, "parameters": {"candidate_labels": list(labels)}}
        headers = {"Content-Type": "application/json"}
        if not _is_placeholder_key(self.api_key):
            headers["Authorization"] = f"Bearer {self.api_key}"

        response: Optional[httpx.Response] = None
        last_error: Optional[Exception] = None
        # one retry on transient transport failures only
        for attempt in range(2):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                    response = await client.post(self.model_url, json=payload, headers=headers)
                break
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning("Zero-shot transport error attempt=%s: %s", attempt + 1, exc)

        if response is None:
            raise UpstreamError("Zero-shot classifier unreachable") from last_error

        try:
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            raise UpstreamError("Zero-shot classifier returned an error") from exc

        if isinstance(body, list) and body:
            body = body[0]
        if not isinstance(body, dict) or "labels" not in body or "scores" not in body:
            raise UpstreamError("Zero-shot classifier returned an unexpected body")

        scores: Dict[str, float] = {}
        for label, score in zip(body.get("labels") or [], body.get("scores") or []):
            try:
                scores[str(label)] = float(score)
            except (TypeError, ValueError):
                continue
        return scores


_inference_client: Optional[InferenceClient] = None
_zero_shot_client: Optional[ZeroShotClient] = None


def get_inference_client() -> InferenceClient:
    global _inference_client
    if _inference_client is None:
        _inference_client = InferenceClient(
            get_openai_client(settings.OPENAI_API_KEY),
            model=settings.INFERENCE_MODEL,
        )
    return _inference_client


def get_zero_shot_client() -> ZeroShotClient:
    global _zero_shot_client
    if _zero_shot_client is None:
        _zero_shot_client = ZeroShotClient(
            api_key=settings.HUGGING_FACE_API_KEY,
            model_url=settings.ZERO_SHOT_MODEL_URL,
            timeout_seconds=settings.ZERO_SHOT_TIMEOUT_SECONDS,
        )
    return _zero_shot_client
