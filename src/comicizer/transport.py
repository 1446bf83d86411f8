"""HTTP transport for provider calls.

The core only depends on the ``Transport`` protocol: an async
``post(endpoint, payload, headers)`` returning the decoded JSON body.
``HttpTransport`` implements it with ``httpx.AsyncClient``:

- bodies are read as text and decoded leniently; a body holding several
  concatenated JSON objects yields the first one;
- non-2xx responses still have their body parsed for a provider error
  message before raising;
- 401/403 and authentication message patterns raise ``AuthError``, other
  failures ``TransportError``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Protocol

import httpx
from loguru import logger

from comicizer.constants import DEFAULT_PREVIEW_CHARS, DEFAULT_REQUEST_TIMEOUT
from comicizer.errors import AuthError, TransportError, is_auth_message

_AUTH_STATUS_CODES = frozenset({401, 403})


class Transport(Protocol):
    """Injected network dependency of the pipeline."""

    async def post(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> dict[str, Any]: ...


def join_url(base_url: str, path: str) -> str:
    """Join a base URL and a path without doubling slashes."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def bearer_headers(
    api_key: str, extra: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Build JSON request headers with a bearer token."""
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    if extra:
        headers.update(extra)
    return headers


def _first_json_object(text: str) -> Any:
    """Decode the first complete JSON value from text.

    Some chat endpoints return several JSON objects back to back even for
    non-streaming requests.
    """
    decoder = json.JSONDecoder()
    value, _ = decoder.raw_decode(text.lstrip())
    return value


def decode_body(text: str) -> dict[str, Any]:
    """Decode a response body, tolerating trailing concatenated objects.

    Returns an empty dict for empty or undecodable bodies.
    """
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = _first_json_object(text)
        except json.JSONDecodeError:
            logger.warning(
                f"[Transport] Response is not JSON: {text[:DEFAULT_PREVIEW_CHARS]!r}"
            )
            return {}
        logger.debug("[Transport] Parsed first of several concatenated JSON objects")
    if isinstance(data, dict):
        return data
    return {"data": data}


def _stringify(value: Any) -> str | None:
    if not value:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def error_message(data: Mapping[str, Any], raw_text: str, fallback: str) -> str:
    """Pick the most specific provider error message from a response body."""
    error = data.get("error")
    candidates = []
    if isinstance(error, dict):
        candidates.extend([error.get("message"), error.get("code")])
    candidates.extend([error, data.get("message"), raw_text[:DEFAULT_PREVIEW_CHARS]])
    for candidate in candidates:
        message = _stringify(candidate)
        if message:
            return message
    return fallback


def check_invalid_argument(
    data: Mapping[str, Any], provider: str | None = None
) -> None:
    """Raise if a chat reply carries the literal INVALID_ARGUMENT marker.

    CRSAI answers some rejected multimodal requests with status 200 and this
    marker as the message content.
    """
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return
    message = choices[0].get("message")
    if isinstance(message, dict) and message.get("content") == "INVALID_ARGUMENT":
        raise TransportError(
            "Provider returned INVALID_ARGUMENT. The model may not accept the PDF "
            "as a data URL attachment; try another text model or provider.",
            provider=provider,
        )


class HttpTransport:
    """``Transport`` implementation backed by ``httpx.AsyncClient``.

    Args:
        timeout: Request timeout in seconds
        client: Optional preconfigured client (e.g. with ``httpx.MockTransport``)
        provider: Provider name attached to raised errors
    """

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        provider: str | None = None,
    ) -> None:
        self.timeout = timeout
        self.provider = provider
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._client

    async def post(
        self,
        endpoint: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> dict[str, Any]:
        """POST ``payload`` as JSON and return the decoded body.

        Raises:
            AuthError: On 401/403 or an authentication error message
            TransportError: On network errors and other non-2xx responses
        """
        logger.debug(
            f"[Transport] POST {endpoint} (model={payload.get('model')}, "
            f"messages={len(payload.get('messages') or [])})"
        )
        try:
            response = await self.client.post(
                endpoint, json=dict(payload), headers=dict(headers)
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request to {endpoint} timed out after {self.timeout}s",
                provider=self.provider,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Request to {endpoint} failed: {e}", provider=self.provider
            ) from e

        raw_text = response.text
        logger.debug(
            f"[Transport] {response.status_code} from {endpoint}, "
            f"{len(raw_text)} bytes: {raw_text[:DEFAULT_PREVIEW_CHARS]!r}"
        )
        data = decode_body(raw_text)

        if not response.is_success:
            name = self.provider or "Provider"
            message = error_message(
                data, raw_text, f"{name} request failed ({response.status_code})"
            )
            if response.status_code in _AUTH_STATUS_CODES or is_auth_message(message):
                raise AuthError(
                    f"{message} ({response.status_code})", provider=self.provider
                )
            raise TransportError(
                message, provider=self.provider, status_code=response.status_code
            )

        check_invalid_argument(data, self.provider)
        return data

    async def get(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> tuple[int, dict[str, Any]]:
        """GET ``url`` and return ``(status_code, decoded_body)``.

        Raises:
            TransportError: On network errors
        """
        try:
            response = await self.client.get(
                url, headers=dict(headers or {}), params=dict(params or {})
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"Request to {url} failed: {e}", provider=self.provider
            ) from e
        return response.status_code, decode_body(response.text)

    async def aclose(self) -> None:
        """Close the client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


__all__ = [
    "HttpTransport",
    "Transport",
    "bearer_headers",
    "check_invalid_argument",
    "decode_body",
    "error_message",
    "join_url",
]
