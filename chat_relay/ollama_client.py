"""Ollama API client."""

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from .composer import to_payload
from .config import Config
from .errors import (
    RelayError,
    StreamTransportError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .models import ConversationTurn, ModelSummary

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """Aggregated result of a non-streaming chat call."""
    content: str
    usage: Optional[Dict[str, Any]] = None


class UpstreamStream:
    """
    Live byte source over a streaming upstream response.

    Transport failures after the stream has begun do not raise; iteration
    simply ends and `failure` holds the StreamTransportError.
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self.failure: Optional[StreamTransportError] = None

    async def aiter_chunks(self) -> AsyncIterator[bytes]:
        """Yield raw body chunks exactly as they arrive."""
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.RequestError as e:
            self.failure = StreamTransportError(str(e) or type(e).__name__)
            logger.error(f"Ollama stream transport error: {self.failure}")


class OllamaClient:
    """
    Async client for the Ollama API.

    Handles:
    - Model listing
    - Non-streaming chat completions
    - Streaming chat completions (raw NDJSON bytes, decoded by the relay)

    Transport failures are translated to the RelayError taxonomy.
    """

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.base_url = config.ollama_url
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def list_models(self) -> List[ModelSummary]:
        """List models installed upstream."""
        try:
            resp = await self.client.get(f"{self.base_url}/api/tags")
        except httpx.RequestError as e:
            raise self._translate(e) from e

        if not resp.is_success:
            raise UpstreamError(resp.status_code, _error_body(resp))

        models = []
        for m in resp.json().get("models", []):
            models.append(ModelSummary(
                name=m.get("name", "unknown"),
                size=m.get("size"),
                modified_at=m.get("modified_at") or m.get("modified"),
            ))
        return models

    async def find_model(self, name: str) -> Optional[ModelSummary]:
        """Return the upstream model called `name`, or None."""
        for model in await self.list_models():
            if model.name == name:
                return model
        return None

    async def chat_once(
        self,
        model: str,
        messages: Sequence[ConversationTurn],
        options: Optional[Dict[str, Any]] = None,
    ) -> ChatResult:
        """Non-streaming chat completion."""
        payload = self._chat_payload(model, messages, stream=False, options=options)
        logger.info(f"Sending chat request: model={model}, messages={len(messages)}, stream=False")

        try:
            resp = await self.client.post(f"{self.base_url}/api/chat", json=payload)
        except httpx.RequestError as e:
            raise self._translate(e) from e

        if not resp.is_success:
            logger.error(f"Ollama HTTP error: {resp.status_code}")
            raise UpstreamError(resp.status_code, _error_body(resp))

        data = resp.json()
        content = (data.get("message") or {}).get("content", "")
        return ChatResult(content=content, usage=_usage(data))

    @asynccontextmanager
    async def chat_stream(
        self,
        model: str,
        messages: Sequence[ConversationTurn],
        options: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[UpstreamStream]:
        """
        Open a streaming chat completion.

        Entering the context sends the request and checks the status, so
        connection refusal, timeouts and non-2xx answers raise before any
        byte reaches the caller. Leaving it releases the upstream connection.
        """
        payload = self._chat_payload(model, messages, stream=True, options=options)
        logger.info(f"Starting chat stream: model={model}, messages={len(messages)}")

        request = self.client.build_request("POST", f"{self.base_url}/api/chat", json=payload)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as e:
            raise self._translate(e) from e

        try:
            if not response.is_success:
                try:
                    await response.aread()
                except httpx.RequestError as e:
                    raise self._translate(e) from e
                logger.error(f"Ollama HTTP error: {response.status_code}")
                raise UpstreamError(response.status_code, _error_body(response))

            yield UpstreamStream(response)
        finally:
            await response.aclose()

    def _chat_payload(
        self,
        model: str,
        messages: Sequence[ConversationTurn],
        stream: bool,
        options: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": to_payload(messages),
            "stream": stream,
            "options": options if options is not None else self.config.options,
        }

    def _translate(self, exc: httpx.RequestError) -> RelayError:
        """Map an httpx request failure to the relay taxonomy."""
        if isinstance(exc, httpx.ConnectTimeout):
            logger.error(f"Ollama connect timed out after {self.config.connect_timeout:g}s")
            return UpstreamTimeout(self.config.connect_timeout)
        if isinstance(exc, httpx.TimeoutException):
            logger.error(f"Ollama request timed out after {self.config.timeout:g}s")
            return UpstreamTimeout(self.config.timeout)
        logger.error(f"Ollama unreachable at {self.base_url}: {exc}")
        return UpstreamUnavailable()


def _error_body(resp: httpx.Response) -> Any:
    """Upstream error body, as JSON when it parses."""
    try:
        return resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return resp.text


def _usage(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Usage stats from an upstream chat response, if it reported any."""
    if data.get("usage") is not None:
        return data["usage"]
    if "eval_count" not in data and "prompt_eval_count" not in data:
        return None
    return {
        "prompt_tokens": data.get("prompt_eval_count"),
        "completion_tokens": data.get("eval_count"),
        "total_duration": data.get("total_duration"),
    }
