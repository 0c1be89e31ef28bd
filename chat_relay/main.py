"""
Chat Relay - Main Entry Point

HTTP relay between a chat client and a local Ollama server. Adds the
formatting system prompt, merges conversation history, and streams
model output back as plain text.

Usage:
    python -m chat_relay.main

Environment Variables:
    RELAY_HOST          - Server host (default: 0.0.0.0)
    PORT                - Server port (default: 3001)
    OLLAMA_URL          - Ollama API URL (default: http://localhost:11434)
    MODEL_NAME          - Model to chat with (default: gemma3:1b)
    OLLAMA_TIMEOUT      - Upstream timeout in seconds (default: 120)
    OLLAMA_TEMPERATURE  - Sampling temperature (default: 0.7)
    OLLAMA_TOP_P        - Nucleus sampling (default: 0.9)
    CORS_ORIGINS        - Comma-separated allowed origins (default: *)
    LOG_LEVEL           - Logging level (default: INFO)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .config import Config, config
from .errors import RelayError
from .ollama_client import OllamaClient

# Configure logging
logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    cfg: Config = app.state.config

    # Startup
    logger.info("=" * 60)
    logger.info("Chat Relay Starting")
    logger.info("=" * 60)
    logger.info(f"Ollama URL: {cfg.ollama_url}")
    logger.info(f"Model: {cfg.model_name}")
    logger.info(f"Upstream timeout: {cfg.timeout:g}s")
    logger.info(f"Sampling options: {cfg.options}")
    logger.info("-" * 60)
    logger.info(f"Server ready at http://{cfg.host}:{cfg.port}")
    logger.info(f"Chat endpoint: http://{cfg.host}:{cfg.port}/api/chat")
    logger.info(f"Stream endpoint: http://{cfg.host}:{cfg.port}/api/chat/stream")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.ollama.close()
    logger.info("Shutdown complete")


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render a RelayError as {"error": ..., "details": ...}."""
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)},
    )


def create_app(cfg: Config = config, ollama: Optional[OllamaClient] = None) -> FastAPI:
    """Build the relay application around one config and one Ollama client."""
    app = FastAPI(
        title="Chat Relay",
        description=(
            "Relay between a chat client and a local Ollama server. "
            "Returns aggregated completions or streams plain text deltas."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.ollama = ollama or OllamaClient(cfg)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Mount routers
    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "Chat Relay",
            "version": __version__,
            "model": cfg.model_name,
            "endpoints": {
                "health": "/api/health",
                "check_ollama": "/api/check-ollama",
                "chat": "/api/chat",
                "stream": "/api/chat/stream",
                "multimodal": "/api/chat/multimodal",
                "model_info": "/api/model-info",
                "switch_model": "/api/switch-model",
            },
        }

    return app


app = create_app()


def main():
    """Run the relay server."""
    uvicorn.run(
        "chat_relay.main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
