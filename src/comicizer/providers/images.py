"""Image generation backends.

Two backends render a page prompt into an ``ImageResult``:

- ``InlineImageGenerator`` asks a chat-completions model with image output
  enabled; the image comes back inside the chat response.
- ``DrawJobImageGenerator`` submits a job to the draw API and polls it with
  ``AsyncJobPoller``.
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from comicizer.config import GenerationConfig, ProviderConfig
from comicizer.errors import ExtractionEmptyError
from comicizer.extract import ResponseExtractor, default_extractor
from comicizer.poller import AsyncJobPoller
from comicizer.providers.chat import provider_headers
from comicizer.transport import Transport, join_url
from comicizer.types import ImageResult


class ImageGenerator(Protocol):
    """Render one page prompt into an image."""

    async def generate(self, prompt: str) -> ImageResult: ...


class InlineImageGenerator:
    """Image generation through a chat model that returns images inline."""

    def __init__(
        self,
        transport: Transport,
        provider: ProviderConfig,
        api_key: str,
        *,
        name: str,
        generation: GenerationConfig | None = None,
        extractor: ResponseExtractor | None = None,
    ) -> None:
        self.transport = transport
        self.provider = provider
        self.name = name
        self.generation = generation or GenerationConfig()
        self.extractor = extractor or default_extractor
        self.endpoint = join_url(provider.base_url, provider.chat_path)
        self.headers = provider_headers(provider, api_key)

    async def generate(self, prompt: str) -> ImageResult:
        """Generate an image for ``prompt``.

        Raises:
            ExtractionEmptyError: If the response carries no image
        """
        payload = {
            "model": self.provider.image_model,
            "modalities": ["image", "text"],
            "temperature": self.generation.image_temperature,
            "stream": False,
            "image_config": {"aspect_ratio": self.generation.aspect_ratio},
            "messages": [{"role": "user", "content": prompt}],
        }
        logger.debug(
            f"[{self.name}] Requesting image from {self.provider.image_model} "
            f"(prompt {len(prompt)} chars)"
        )
        response = await self.transport.post(self.endpoint, payload, self.headers)
        image = self.extractor.image_from(response)
        if image is None:
            raise ExtractionEmptyError(
                "No image data found in the response", step="image", provider=self.name
            )
        return image


class DrawJobImageGenerator:
    """Image generation through the asynchronous draw API."""

    def __init__(
        self,
        poller: AsyncJobPoller,
        provider: ProviderConfig,
        *,
        generation: GenerationConfig | None = None,
    ) -> None:
        self.poller = poller
        self.provider = provider
        self.generation = generation or GenerationConfig()

    async def generate(self, prompt: str) -> ImageResult:
        parameters = {
            "model": self.provider.image_model,
            "aspectRatio": self.generation.aspect_ratio,
            "imageSize": self.generation.image_size,
        }
        return await self.poller.run(prompt, parameters)


__all__ = ["DrawJobImageGenerator", "ImageGenerator", "InlineImageGenerator"]
