"""
HTTP endpoints for the chat client.

Chat endpoints compose the message list, call Ollama, and either return
one JSON result or stream plain text deltas through a RelaySession.
Errors raised here are RelayError subclasses, rendered by the exception
handlers installed in main.create_app.
"""

import logging
from contextlib import AsyncExitStack, aclosing
from typing import AsyncIterator, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .capabilities import supports_images
from .composer import compose_request, redact_images
from .config import Config
from .errors import ModelNotFound, RelayError, ValidationError
from .models import ChatRequest, SwitchModelRequest
from .ollama_client import OllamaClient
from .relay import RelaySession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

FEATURES = [
    "chat",
    "streaming",
    "image_annotations",
    "multimodal_stub",
    "model_info",
    "model_switch_check",
]

BodyT = TypeVar("BodyT", bound=BaseModel)


# =============================================================================
# Dependencies
# =============================================================================

def get_config(request: Request) -> Config:
    return request.app.state.config


def get_ollama(request: Request) -> OllamaClient:
    return request.app.state.ollama


async def _read_body(request: Request, model: Type[BodyT]) -> BodyT:
    """Parse the JSON body into `model`, raising ValidationError on bad input."""
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        details = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError("Invalid request body", details=details)


async def _read_chat_request(request: Request) -> ChatRequest:
    chat = await _read_body(request, ChatRequest)
    if not chat.has_input:
        raise ValidationError("Message is required")
    return chat


# =============================================================================
# Status
# =============================================================================

@router.get("/health")
async def health(config: Config = Depends(get_config)):
    """Liveness plus the configured upstream."""
    return {
        "status": "healthy",
        "model": config.model_name,
        "ollama_url": config.ollama_url,
        "features": FEATURES,
    }


@router.get("/check-ollama")
async def check_ollama(
    config: Config = Depends(get_config),
    ollama: OllamaClient = Depends(get_ollama),
):
    """Probe the upstream and report whether the configured model is installed."""
    try:
        models = await ollama.list_models()
    except RelayError as e:
        logger.error(f"Ollama check failed: {e.message}")
        return JSONResponse(
            status_code=500,
            content={"ollama_status": "not_available", "error": e.message},
        )

    names = [m.name for m in models]
    return {
        "ollama_status": "available",
        "gemma_model_available": config.model_name in names,
        "available_models": names,
        "supports_images": supports_images(config.model_name),
    }


# =============================================================================
# Chat
# =============================================================================

@router.post("/chat")
async def chat(
    request: Request,
    config: Config = Depends(get_config),
    ollama: OllamaClient = Depends(get_ollama),
):
    """Single aggregated completion."""
    chat_request = await _read_chat_request(request)
    messages = compose_request(chat_request)

    result = await ollama.chat_once(config.model_name, messages)

    body = {"response": result.content, "model": config.model_name}
    if result.usage is not None:
        body["usage"] = result.usage
    body["images_received"] = len(chat_request.images)
    return body


@router.post("/chat/stream")
async def chat_stream(
    request: Request,
    config: Config = Depends(get_config),
    ollama: OllamaClient = Depends(get_ollama),
):
    """
    Stream the completion as raw text.

    The upstream stream is opened before the response starts, so failures
    up to that point still produce a JSON error. After that the body is
    only ever text deltas followed by a clean close.
    """
    chat_request = await _read_chat_request(request)
    messages = compose_request(chat_request)

    stack = AsyncExitStack()
    source = await stack.enter_async_context(ollama.chat_stream(config.model_name, messages))
    session = RelaySession(source)
    logger.info(f"Relay session {session.session_id}: streaming {config.model_name}")

    return StreamingResponse(
        _relay_body(stack, session),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache", "X-Session-ID": session.session_id},
    )


async def _relay_body(stack: AsyncExitStack, session: RelaySession) -> AsyncIterator[bytes]:
    """Response body; releases the upstream connection however it ends."""
    async with stack:
        async with aclosing(session.relay()) as deltas:
            async for data in deltas:
                yield data


@router.post("/chat/multimodal")
async def chat_multimodal(
    request: Request,
    config: Config = Depends(get_config),
    ollama: OllamaClient = Depends(get_ollama),
):
    """
    Chat with an optional model override and attached images.

    Image payloads are not forwarded; the model sees name/type annotations only.
    """
    chat_request = await _read_chat_request(request)
    model = chat_request.model or config.model_name
    messages = compose_request(chat_request)

    logger.info(
        f"Multimodal request: model={model}, "
        f"images={redact_images(chat_request.images)}"
    )

    result = await ollama.chat_once(model, messages)

    body = {"response": result.content, "model": model}
    if result.usage is not None:
        body["usage"] = result.usage
    body["multimodal"] = True
    body["images_processed"] = len(chat_request.images)
    return body


# =============================================================================
# Models
# =============================================================================

@router.get("/model-info")
async def model_info(
    config: Config = Depends(get_config),
    ollama: OllamaClient = Depends(get_ollama),
):
    """Installed models with image capability flags."""
    models = await ollama.list_models()

    return {
        "current_model": config.model_name,
        "available_models": [
            {
                "name": m.name,
                "size": m.size,
                "modified": m.modified_at,
                "supports_images": supports_images(m.name),
                "is_multimodal": supports_images(m.name),
            }
            for m in models
        ],
        "current_supports_images": supports_images(config.model_name),
    }


@router.post("/switch-model")
async def switch_model(
    request: Request,
    ollama: OllamaClient = Depends(get_ollama),
):
    """
    Check that a model is installed upstream.

    Nothing is persisted; the relay keeps using its configured model.
    """
    switch = await _read_body(request, SwitchModelRequest)
    if not switch.model:
        raise ValidationError("Model name is required")

    if await ollama.find_model(switch.model) is None:
        names = [m.name for m in await ollama.list_models()]
        raise ModelNotFound(
            f"Model '{switch.model}' not found",
            details={"available_models": names},
        )

    logger.info(f"Model switch requested: {switch.model}")
    return {
        "success": True,
        "message": (
            f"Model {switch.model} is available. "
            f"Set MODEL_NAME={switch.model} and restart the relay to use it."
        ),
        "new_model": switch.model,
        "supports_images": supports_images(switch.model),
    }
