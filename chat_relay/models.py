"""Data models for the relay."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Request Models
# ============================================================================

class Role(str, Enum):
    """Conversation roles understood by the upstream."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """One chat message. Roles are not re-validated; unknown ones pass through."""
    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class ImageDescriptor(BaseModel):
    """Attached image. Only name and type are ever sent upstream."""
    name: str = "image"
    type: str = "image/unknown"
    data: Optional[str] = None


class ChatRequest(BaseModel):
    """Body of /api/chat, /api/chat/stream and /api/chat/multimodal."""
    message: Optional[str] = None
    images: List[ImageDescriptor] = Field(default_factory=list)
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    model: Optional[str] = None

    @property
    def has_input(self) -> bool:
        return bool(self.message) or bool(self.images)


class SwitchModelRequest(BaseModel):
    """Body of /api/switch-model."""
    model: Optional[str] = None


class ModelSummary(BaseModel):
    """One entry of the upstream model list."""
    name: str
    size: Optional[int] = None
    modified_at: Optional[str] = None


# ============================================================================
# Stream State
# ============================================================================

@dataclass(frozen=True)
class UpstreamFrame:
    """One decoded line of the upstream NDJSON stream."""
    delta_content: Optional[str]
    is_final: bool
    raw: bytes


class RelayState(str, Enum):
    """Relay session state."""
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
