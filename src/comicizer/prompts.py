"""Prompt management for the analysis, planning and image steps."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from comicizer.config import PromptsConfig
    from comicizer.types import PagePlan


# Built-in prompts
ANALYSIS_SYSTEM = (
    "You are Doraemon and Nobita acting as playful academic tutors who break "
    "down scholarly PDFs into joyful explanations for kids."
)

ANALYSIS_USER = (
    "让大雄和哆啦A梦为主人公，以漫画形式，带领读者由浅入深地学习并了解这篇论文。"
    "请总结核心内容。"
)

PLANNING_SYSTEM = (
    "You are a JSON generator. You MUST respond with ONLY a valid JSON array, "
    "no other text, no explanations, no thinking process. The JSON array must "
    "contain objects with these exact fields: pageNumber (number), "
    "description (string), visualCue (string)."
)

PLANNING_USER = (
    "请基于以上讨论，分析并告知这个漫画学习读本要划分为多少页比较合适，每页内容是什么？"
)

PLANNING_FORMAT_SUFFIX = """

IMPORTANT: Respond with ONLY a valid JSON array. No thinking tags, no explanations, no markdown, no other text. Example format:
[
  {
    "pageNumber": 1,
    "description": "...",
    "visualCue": "..."
  }
]"""

IMAGE_PREFIX = "请生成一张哆啦A梦风格的彩色漫画页面，展示以下内容："


class PromptManager:
    """Render step prompts, honoring configured overrides."""

    def __init__(self, config: PromptsConfig | None = None) -> None:
        self.config = config

    def _override(self, name: str, default: str) -> str:
        value = getattr(self.config, name, None) if self.config else None
        return value or default

    @property
    def analysis_system(self) -> str:
        return self._override("analysis_system", ANALYSIS_SYSTEM)

    @property
    def analysis_user(self) -> str:
        return self._override("analysis_user", ANALYSIS_USER)

    @property
    def planning_system(self) -> str:
        return self._override("planning_system", PLANNING_SYSTEM)

    @property
    def image_prefix(self) -> str:
        return self._override("image_prefix", IMAGE_PREFIX)

    def planning_user(self, analysis: str) -> str:
        """Planning request with the analysis as context."""
        request = self._override("planning_user", PLANNING_USER)
        return f"Context: {analysis}\n{request}{PLANNING_FORMAT_SUFFIX}"

    def document_note(self, mime_type: str) -> str:
        return (
            f"The previous attachment is the academic PDF in data URL format "
            f"({mime_type}). Read it carefully before answering."
        )

    def image_prompt(self, context: str, plan: PagePlan) -> str:
        """Image request for one planned page."""
        return (
            f"{self.image_prefix}第{plan.page_number}页的图像"
            "（页面分辨率统一为竖屏 2:3，语言是中文）。\n\n"
            f"Context: {context}\n\n"
            f"Page Description: {plan.description}\n"
            f"Visual Scene: {plan.visual_cue}"
        )


__all__ = [
    "ANALYSIS_SYSTEM",
    "ANALYSIS_USER",
    "IMAGE_PREFIX",
    "PLANNING_SYSTEM",
    "PLANNING_FORMAT_SUFFIX",
    "PLANNING_USER",
    "PromptManager",
]
