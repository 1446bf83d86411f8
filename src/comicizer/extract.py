"""Text and image extraction from provider responses.

Chat-completion compatible providers disagree about where the useful
payload lives. ``ResponseExtractor`` walks a fixed, ordered list of shape
matchers over the decoded JSON and returns the first non-empty match.
Matchers never raise on a shape mismatch; they return ``None`` and the
next matcher is tried. Some payloads satisfy several shapes at once, so
the order of the matcher lists is part of the contract.

Example:
    >>> extractor = ResponseExtractor()
    >>> extractor.text_from({"choices": [{"message": {"content": "hi"}}]})
    'hi'
    >>> extractor.text_from({"unexpected": True})
    ''
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger

from comicizer.constants import DEFAULT_IMAGE_MIME_TYPE
from comicizer.types import ImageResult

_DATA_URI_PATTERN = re.compile(r"^data:([\w.+-]+/[\w.+-]+)?(;[^,]*)?,", re.IGNORECASE)

# Keys that carry inline base64 image payloads in legacy output items
_BASE64_KEYS = ("b64_json", "image_base64", "base64", "data")

TextMatcher = Callable[[Any], "str | None"]
ImageMatcher = Callable[[Any], "ImageResult | None"]


# =============================================================================
# Typed accessors
# =============================================================================


def _get(value: Any, key: str) -> Any:
    """Return ``value[key]`` if value is a mapping, else None."""
    if isinstance(value, dict):
        return value.get(key)
    return None


def _first(value: Any) -> Any:
    """Return the first element of a non-empty list, else None."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _non_empty(value: Any) -> str | None:
    """Return value if it is a string with non-whitespace content."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def _first_choice(response: Any) -> Any:
    return _first(_get(response, "choices"))


def _text_from_parts(parts: Any) -> str | None:
    """First part with a non-empty ``text`` field or that is a non-empty string."""
    if not isinstance(parts, list):
        return None
    for part in parts:
        text = _non_empty(_get(part, "text")) or _non_empty(part)
        if text is not None:
            return text
    return None


def _text_from_content(content: Any) -> str | None:
    return _non_empty(content) or _text_from_parts(content)


# =============================================================================
# Text matchers, in precedence order
# =============================================================================


def _message_content_string(response: Any) -> str | None:
    return _non_empty(_get(_get(_first_choice(response), "message"), "content"))


def _message_content_parts(response: Any) -> str | None:
    return _text_from_parts(_get(_get(_first_choice(response), "message"), "content"))


def _choice_shorthand(response: Any) -> str | None:
    choice = _first_choice(response)
    return _text_from_content(_get(choice, "content")) or _text_from_content(
        _get(choice, "text")
    )


def _top_level_text(response: Any) -> str | None:
    return _non_empty(_get(response, "text"))


def _output_text(response: Any) -> str | None:
    output_text = _get(response, "output_text")
    if isinstance(output_text, list) and output_text:
        return _non_empty("\n".join(str(item) for item in output_text))
    return None


def _output_items(response: Any) -> str | None:
    items = _get(response, "output")
    if not isinstance(items, list):
        return None
    for item in items:
        text = _text_from_content(_get(item, "content"))
        if text is not None:
            return text
    return None


TEXT_MATCHERS: tuple[tuple[str, TextMatcher], ...] = (
    ("choices[0].message.content", _message_content_string),
    ("choices[0].message.content[]", _message_content_parts),
    ("choices[0].content|text", _choice_shorthand),
    ("text", _top_level_text),
    ("output_text[]", _output_text),
    ("output[].content", _output_items),
)


# =============================================================================
# Image helpers
# =============================================================================


def _mime_from_data_uri(url: str) -> str | None:
    match = _DATA_URI_PATTERN.match(url)
    if match and match.group(1):
        return match.group(1).lower()
    return None


def encode_data_uri(mime_type: str, payload: str) -> str:
    """Wrap a base64 payload as a data URI."""
    return f"data:{mime_type};base64,{payload}"


def _image_from_url(url: Any, mime_type: Any = None) -> ImageResult | None:
    url = _non_empty(url)
    if url is None:
        return None
    mime = _non_empty(mime_type) or _mime_from_data_uri(url) or DEFAULT_IMAGE_MIME_TYPE
    return ImageResult(url=url, mime_type=mime)


def _image_from_base64(payload: Any, mime_type: Any = None) -> ImageResult | None:
    payload = _non_empty(payload)
    if payload is None:
        return None
    if payload.startswith("data:"):
        return _image_from_url(payload, mime_type)
    mime = _non_empty(mime_type) or DEFAULT_IMAGE_MIME_TYPE
    return ImageResult(url=encode_data_uri(mime, payload), mime_type=mime)


def _image_url_field(entry: Any) -> ImageResult | None:
    """Read ``image_url`` in object form ``{"url": ...}`` or as a bare string."""
    image_url = _get(entry, "image_url")
    if isinstance(image_url, dict):
        return _image_from_url(image_url.get("url"), _get(entry, "mime_type"))
    return _image_from_url(image_url, _get(entry, "mime_type"))


def _image_from_entry(entry: Any) -> ImageResult | None:
    """Match a single image entry: object with image_url/url, or a data-URI string."""
    if isinstance(entry, str):
        if entry.startswith("data:"):
            return _image_from_url(entry)
        return None
    return _image_url_field(entry) or _image_from_url(
        _get(entry, "url"), _get(entry, "mime_type")
    )


# =============================================================================
# Image matchers, in precedence order
# =============================================================================


def _message_images(response: Any) -> ImageResult | None:
    images = _get(_get(_first_choice(response), "message"), "images")
    return _image_from_entry(_first(images))


def _message_content_image_parts(response: Any) -> ImageResult | None:
    content = _get(_get(_first_choice(response), "message"), "content")
    if not isinstance(content, list):
        return None
    for part in content:
        if _get(part, "type") == "image_url":
            image = _image_url_field(part)
            if image is not None:
                return image
    return None


def _legacy_output_images(response: Any) -> ImageResult | None:
    items = _get(response, "output")
    if not isinstance(items, list):
        return None
    for item in items:
        parts = _get(item, "content")
        if not isinstance(parts, list):
            continue
        for part in parts:
            if not isinstance(part, dict):
                continue
            mime = part.get("mime_type") or part.get("mimeType")
            part_type = part.get("type")
            if part_type in ("output_image", "image_url"):
                image = _image_url_field(part) or _image_from_url(part.get("url"), mime)
                if image is not None:
                    return image
            for key in _BASE64_KEYS:
                image = _image_from_base64(part.get(key), mime)
                if image is not None:
                    return image
    return None


def _top_level_data(response: Any) -> ImageResult | None:
    entry = _first(_get(response, "data"))
    return _image_from_url(_get(entry, "url")) or _image_from_base64(
        _get(entry, "b64_json")
    )


def _gemini_inline_data(response: Any) -> ImageResult | None:
    candidate = _first(_get(response, "candidates"))
    parts = _get(_get(candidate, "content"), "parts")
    if not isinstance(parts, list):
        return None
    for part in parts:
        inline = _get(part, "inlineData") or _get(part, "inline_data")
        mime = _get(inline, "mimeType") or _get(inline, "mime_type")
        image = _image_from_base64(_get(inline, "data"), mime)
        if image is not None:
            return image
    return None


IMAGE_MATCHERS: tuple[tuple[str, ImageMatcher], ...] = (
    ("choices[0].message.images[0]", _message_images),
    ("choices[0].message.content[image_url]", _message_content_image_parts),
    ("output[].content[]", _legacy_output_images),
    ("data[0]", _top_level_data),
    ("candidates[0].content.parts[].inlineData", _gemini_inline_data),
)


class ResponseExtractor:
    """Locate text or image payloads in provider responses.

    Args:
        text_matchers: Ordered ``(name, matcher)`` pairs for text
        image_matchers: Ordered ``(name, matcher)`` pairs for images
    """

    def __init__(
        self,
        text_matchers: Sequence[tuple[str, TextMatcher]] = TEXT_MATCHERS,
        image_matchers: Sequence[tuple[str, ImageMatcher]] = IMAGE_MATCHERS,
    ) -> None:
        self.text_matchers = tuple(text_matchers)
        self.image_matchers = tuple(image_matchers)

    def text_from(self, response: Any) -> str:
        """Return the first non-empty text in ``response``, or ``""``.

        An empty result means extraction failed; it is never valid content.
        """
        for name, matcher in self.text_matchers:
            text = matcher(response)
            if text is not None:
                logger.debug(f"[Extract] Text found at {name} ({len(text)} chars)")
                return text
        logger.debug("[Extract] No text found in response")
        return ""

    def image_from(self, response: Any) -> ImageResult | None:
        """Return the first image reference in ``response``, or None."""
        for name, matcher in self.image_matchers:
            image = matcher(response)
            if image is not None:
                logger.debug(f"[Extract] Image found at {name} ({image.mime_type})")
                return image
        logger.debug("[Extract] No image found in response")
        return None


# Module-level default, matchers hold no state
default_extractor = ResponseExtractor()


def text_from(response: Any) -> str:
    """Shortcut for ``default_extractor.text_from``."""
    return default_extractor.text_from(response)


def image_from(response: Any) -> ImageResult | None:
    """Shortcut for ``default_extractor.image_from``."""
    return default_extractor.image_from(response)


__all__ = [
    "IMAGE_MATCHERS",
    "TEXT_MATCHERS",
    "ResponseExtractor",
    "default_extractor",
    "encode_data_uri",
    "image_from",
    "text_from",
]
