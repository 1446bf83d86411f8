"""OpenAI-compatible chat client used for the analysis and planning steps."""

from __future__ import annotations

from typing import Any

from loguru import logger

from comicizer.config import GenerationConfig, ProviderConfig
from comicizer.extract import encode_data_uri
from comicizer.prompts import PromptManager
from comicizer.transport import Transport, bearer_headers, join_url


def provider_headers(provider: ProviderConfig, api_key: str) -> dict[str, str]:
    """Request headers for ``provider``, with attribution headers if configured."""
    extra: dict[str, str] = {}
    if provider.referer:
        extra["HTTP-Referer"] = provider.referer
    if provider.title:
        extra["X-Title"] = provider.title
    return bearer_headers(api_key, extra)


class ChatCompletionsClient:
    """Issue the analysis and planning chat calls against one provider.

    Both calls return the raw decoded response; locating the text in it is
    left to ``ResponseExtractor``.
    """

    def __init__(
        self,
        transport: Transport,
        provider: ProviderConfig,
        api_key: str,
        *,
        name: str,
        prompts: PromptManager | None = None,
        generation: GenerationConfig | None = None,
    ) -> None:
        self.transport = transport
        self.provider = provider
        self.name = name
        self.prompts = prompts or PromptManager()
        self.generation = generation or GenerationConfig()
        self.endpoint = join_url(provider.base_url, provider.chat_path)
        self.headers = provider_headers(provider, api_key)

    async def complete(
        self, messages: list[dict[str, Any]], temperature: float
    ) -> dict[str, Any]:
        """Send one non-streaming chat completion request."""
        payload = {
            "model": self.provider.text_model,
            "temperature": temperature,
            "stream": False,
            "messages": messages,
        }
        return await self.transport.post(self.endpoint, payload, self.headers)

    def analysis_messages(self, data_base64: str, mime_type: str) -> list[dict]:
        """Messages attaching the document as a data URL."""
        return [
            {
                "role": "system",
                "content": [{"type": "text", "text": self.prompts.analysis_system}],
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompts.analysis_user},
                    {
                        "type": "image_url",
                        "image_url": {"url": encode_data_uri(mime_type, data_base64)},
                    },
                    {"type": "text", "text": self.prompts.document_note(mime_type)},
                ],
            },
        ]

    def planning_messages(self, analysis: str) -> list[dict]:
        return [
            {"role": "system", "content": self.prompts.planning_system},
            {"role": "user", "content": self.prompts.planning_user(analysis)},
        ]

    async def analyze(self, data_base64: str, mime_type: str) -> dict[str, Any]:
        """Ask the text model to summarize the document."""
        logger.info(
            f"[{self.name}] Analyzing document with {self.provider.text_model} "
            f"({len(data_base64)} base64 chars, {mime_type})"
        )
        return await self.complete(
            self.analysis_messages(data_base64, mime_type),
            self.generation.analysis_temperature,
        )

    async def plan(self, analysis: str) -> dict[str, Any]:
        """Ask the text model for a JSON page plan based on ``analysis``."""
        logger.info(
            f"[{self.name}] Planning pages with {self.provider.text_model} "
            f"({len(analysis)} chars of context)"
        )
        return await self.complete(
            self.planning_messages(analysis),
            self.generation.planning_temperature,
        )


__all__ = ["ChatCompletionsClient", "provider_headers"]
