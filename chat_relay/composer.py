"""Builds the message list submitted upstream."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .models import ChatRequest, ConversationTurn, ImageDescriptor, Role

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are Gemma3:1b, a helpful AI assistant. When responding, use markdown "
    "formatting to make your answers more readable:\n"
    "\n"
    "- Use **bold** for emphasis\n"
    "- Use *italic* for subtle emphasis\n"
    "- Use headings (#, ##, ###) to structure longer responses\n"
    "- Use bullet points (- or *) for lists\n"
    "- Use numbered lists for steps\n"
    "- Use `code` for inline code and triple backticks with language "
    "specification for code blocks\n"
    "- Use tables for comparative data\n"
    "- Use > for blockquotes\n"
    "\n"
    "Always format your responses properly for better readability."
)

IMAGE_DATA_PLACEHOLDER = "[base64 image data omitted]"


def describe_images(images: Sequence[ImageDescriptor]) -> str:
    """Text annotation listing attached images, one line per image."""
    count = len(images)
    lines = [f"[The user attached {count} image{'s' if count != 1 else ''}]"]
    for i, image in enumerate(images, start=1):
        lines.append(f"Image {i}: {image.name} ({image.type})")
    return "\n".join(lines)


def compose(
    system_prompt: str,
    history: Sequence[ConversationTurn],
    message: Optional[str],
    images: Sequence[ImageDescriptor] = (),
) -> List[ConversationTurn]:
    """
    Build the ordered turn list: system prompt, history, current user turn.

    History turns are copied unchanged. Image annotations follow any user
    text, or form the whole user turn when no text was given.
    """
    turns = [ConversationTurn(role=Role.SYSTEM.value, content=system_prompt)]
    turns.extend(history)

    content = message or ""
    if images:
        annotation = describe_images(images)
        content = f"{content}\n\n{annotation}" if content else annotation

    turns.append(ConversationTurn(role=Role.USER.value, content=content))
    logger.debug(f"Composed {len(turns)} turns (history={len(history)}, images={len(images)})")
    return turns


def compose_request(request: ChatRequest, system_prompt: str = SYSTEM_PROMPT) -> List[ConversationTurn]:
    """compose() driven by a parsed ChatRequest."""
    return compose(system_prompt, request.conversation_history, request.message, request.images)


def to_payload(turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
    """Turns as plain dicts for the upstream JSON body."""
    return [turn.model_dump() for turn in turns]


def redact_images(images: Sequence[ImageDescriptor]) -> List[Dict[str, Any]]:
    """Image descriptors safe to log: payloads replaced by a placeholder."""
    return [
        {
            "name": image.name,
            "type": image.type,
            "data": IMAGE_DATA_PLACEHOLDER if image.data else None,
        }
        for image in images
    ]
