"""
Chat Relay

HTTP relay between a chat client and a locally running Ollama server.

Components:
- composer: System prompt, history and image annotations -> message list
- ollama_client: Ollama API client (models, single-shot chat, streaming chat)
- relay: NDJSON stream re-framing into plain text deltas
- api: Client-facing /api endpoints
- errors: Error taxonomy and HTTP mapping
"""

__version__ = "0.1.0"
