"""
AI Clients package for external speech-to-text and LLM services.

- DeepgramClient: primary speech-to-text (prerecorded API)
- AssemblyAIClient: secondary speech-to-text (upload + poll)
- ClaudeClient: Anthropic Claude API (cloud content tiers)
- OllamaClient: local Ollama (last-resort content tier)

Usage:
    from voicenotes.services.ai_clients import DeepgramClient, ClaudeClient

    async with DeepgramClient.from_settings(settings) as client:
        raw = await client.transcribe(audio_bytes)
"""

from voicenotes.services.ai_clients.assemblyai_client import AssemblyAIClient
from voicenotes.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientError,
    AIClientOutputError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClient,
    BaseAIClientImpl,
    ChatUsage,
)
from voicenotes.services.ai_clients.claude_client import ClaudeClient
from voicenotes.services.ai_clients.deepgram_client import DeepgramClient
from voicenotes.services.ai_clients.ollama_client import OllamaClient

__all__ = [
    # Protocol and base classes
    "BaseAIClient",
    "BaseAIClientImpl",
    "AIClientConfig",
    "ChatUsage",
    # Errors
    "AIClientError",
    "AIClientTimeoutError",
    "AIClientConnectionError",
    "AIClientResponseError",
    "AIClientOutputError",
    # Implementations
    "AssemblyAIClient",
    "ClaudeClient",
    "DeepgramClient",
    "OllamaClient",
]
