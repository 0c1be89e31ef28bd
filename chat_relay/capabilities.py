"""Model capability flags derived from model names."""

# Name fragments of models known to accept image input.
VISION_MODEL_FRAGMENTS = (
    "llava",
    "bakllava",
    "vision",
    "moondream",
    "minicpm-v",
    "qwen2.5vl",
    "qwen2-vl",
    "gemma3:4b",
    "gemma3:12b",
    "gemma3:27b",
    "granite3.2-vision",
)


def supports_images(model_name: str) -> bool:
    """Whether the model name matches a known vision model."""
    name = (model_name or "").lower()
    return any(fragment in name for fragment in VISION_MODEL_FRAGMENTS)
