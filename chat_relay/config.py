"""Relay configuration."""

import os
from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class Config:
    """Configuration loaded from environment variables. Read-only once built."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("RELAY_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3001")))
    cors_origins: List[str] = field(default_factory=lambda:
        [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()])
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Ollama
    ollama_url: str = field(default_factory=lambda:
        os.getenv("OLLAMA_URL", "http://localhost:11434").rstrip("/"))
    model_name: str = field(default_factory=lambda: os.getenv("MODEL_NAME", "gemma3:1b"))
    timeout: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TIMEOUT", "120")))
    connect_timeout: float = field(default_factory=lambda:
        float(os.getenv("OLLAMA_CONNECT_TIMEOUT", "10")))

    # Sampling options sent with every chat request
    temperature: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TEMPERATURE", "0.7")))
    top_p: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TOP_P", "0.9")))

    @property
    def options(self) -> dict:
        """Upstream `options` block."""
        return {"temperature": self.temperature, "top_p": self.top_p}


def load_config() -> Config:
    """Build a fresh Config from the current environment."""
    return Config()


# Global config instance
config = load_config()
