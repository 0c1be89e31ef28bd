"""Shared fixtures: a scripted Ollama behind httpx.MockTransport."""

import asyncio
import json
from typing import Any, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from chat_relay.config import Config
from chat_relay.main import create_app
from chat_relay.ollama_client import OllamaClient

OLLAMA_URL = "http://ollama.test"


def make_config(**overrides) -> Config:
    """Config with test defaults, independent of the environment."""
    values = {
        "host": "127.0.0.1",
        "port": 3001,
        "cors_origins": ["*"],
        "log_level": "INFO",
        "ollama_url": OLLAMA_URL,
        "model_name": "gemma3:1b",
        "timeout": 120.0,
        "connect_timeout": 10.0,
        "temperature": 0.7,
        "top_p": 0.9,
    }
    values.update(overrides)
    return Config(**values)


def ndjson(*frames: dict) -> bytes:
    """Encode frames as newline-terminated JSON lines."""
    return b"".join(json.dumps(f).encode("utf-8") + b"\n" for f in frames)


def delta(text: str) -> dict:
    return {"model": "gemma3:1b", "message": {"role": "assistant", "content": text}, "done": False}


FINAL = {"model": "gemma3:1b", "message": {"role": "assistant", "content": ""}, "done": True}


class FakeOllama:
    """
    Scripted upstream.

    - `error`: raised for every request (e.g. httpx.ConnectError)
    - `chat_status`: non-200 status returned by /api/chat
    - `chat_error_body`: body sent with that status (JSON, or text when a str)
    - `stream_chunks`: body chunks of a streaming /api/chat
    - `stream_error`: raised after the last chunk
    - `stream_hold`: event awaited after the last chunk, keeping the stream open
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.models = [
            {"name": "gemma3:1b", "size": 815319791, "modified_at": "2025-03-12T10:00:00Z"},
            {"name": "llava:7b", "size": 4733363377, "modified_at": "2025-02-01T08:30:00Z"},
        ]
        self.chat_reply = {
            "model": "gemma3:1b",
            "message": {"role": "assistant", "content": "Hello **there**!"},
            "done": True,
            "prompt_eval_count": 42,
            "eval_count": 7,
            "total_duration": 123456,
        }
        self.chat_status = 200
        self.chat_error_body: Any = {"error": "model 'nope' not found"}
        self.error: Optional[Exception] = None
        self.stream_chunks: List[bytes] = []
        self.stream_error: Optional[Exception] = None
        self.stream_hold: Optional[asyncio.Event] = None
        self.stream_closed = False

    @property
    def chat_payloads(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == "/api/chat"]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error

        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": self.models})

        if request.url.path == "/api/chat":
            if self.chat_status != 200:
                if isinstance(self.chat_error_body, str):
                    return httpx.Response(self.chat_status, text=self.chat_error_body)
                return httpx.Response(self.chat_status, json=self.chat_error_body)
            if json.loads(request.content)["stream"]:
                return httpx.Response(200, content=self._stream())
            return httpx.Response(200, json=self.chat_reply)

        return httpx.Response(404, text="404 page not found")

    async def _stream(self):
        try:
            for chunk in self.stream_chunks:
                yield chunk
            if self.stream_hold is not None:
                await self.stream_hold.wait()
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True


@pytest.fixture()
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture()
def relay_config() -> Config:
    return make_config()


@pytest.fixture()
def ollama_client(fake_ollama, relay_config) -> OllamaClient:
    return OllamaClient(relay_config, transport=httpx.MockTransport(fake_ollama.handler))


@pytest.fixture()
def api_client(relay_config, ollama_client) -> TestClient:
    """TestClient for a relay wired to the fake upstream."""
    return TestClient(create_app(relay_config, ollama_client))
