"""Provider clients for comicizer.

Text steps (analysis, planning) always go through an OpenAI-compatible
chat-completions endpoint. Image generation has two backends:

    - openrouter: image returned inline in a chat response
      (``InlineImageGenerator``)
    - crsai: submit a draw job, then poll for its result
      (``DrawJobImageGenerator``)

Usage:
    chat = create_chat_client(config, transport, api_key)
    images = create_image_generator(config, transport, api_key)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from comicizer.config import ComicizerConfig
from comicizer.constants import PROVIDER_CRSAI
from comicizer.extract import ResponseExtractor
from comicizer.poller import AsyncJobPoller
from comicizer.prompts import PromptManager
from comicizer.providers.chat import ChatCompletionsClient, provider_headers
from comicizer.providers.images import (
    DrawJobImageGenerator,
    ImageGenerator,
    InlineImageGenerator,
)
from comicizer.transport import Transport


def create_chat_client(
    config: ComicizerConfig, transport: Transport, api_key: str
) -> ChatCompletionsClient:
    """Build the chat client of the configured text provider."""
    name = config.text_provider
    return ChatCompletionsClient(
        transport,
        config.provider(name),
        api_key,
        name=name,
        prompts=PromptManager(config.prompts),
        generation=config.generation,
    )


def create_image_generator(
    config: ComicizerConfig,
    transport: Transport,
    api_key: str,
    *,
    extractor: ResponseExtractor | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> ImageGenerator:
    """Build the image backend of the configured image provider."""
    name = config.image_provider
    provider = config.provider(name)
    if name == PROVIDER_CRSAI:
        poller = AsyncJobPoller(
            transport,
            provider.base_url,
            provider_headers(provider, api_key),
            config.polling,
            sleep=sleep,
            clock=clock,
            provider=name,
        )
        return DrawJobImageGenerator(poller, provider, generation=config.generation)
    return InlineImageGenerator(
        transport,
        provider,
        api_key,
        name=name,
        generation=config.generation,
        extractor=extractor,
    )


__all__ = [
    "ChatCompletionsClient",
    "DrawJobImageGenerator",
    "ImageGenerator",
    "InlineImageGenerator",
    "create_chat_client",
    "create_image_generator",
    "provider_headers",
]
