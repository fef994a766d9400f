"""Provider client: HTTP connection to the content proxy.

The content client is handed a provider matching the protocol:

    async def generate_text(self, model: str, prompt: str, schema: dict | None) -> str: ...
    async def generate_image(self, prompt: str) -> str: ...

generate_text returns the raw completion text (expected to hold JSON).
generate_image returns a data URL, or "" when the provider produced nothing.

HttpProvider talks to the proxy server in forge.app, which holds the real
upstream credentials:

    POST {proxy}/api/generate-content  {"model", "prompt", "schema"} → {"text": ...}
    POST {proxy}/api/generate-image    {"prompt"}                    → {"image": ...}

Tests use StubProvider (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from forge.errors import (
    ContentError,
    ParseFailure,
    RequestTimeout,
    TransportFailure,
    classify_http_error,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every provider implementation must match this signature
# ---------------------------------------------------------------------------

class Provider(Protocol):
    async def generate_text(
        self, model: str, prompt: str, schema: dict[str, Any] | None = None
    ) -> str: ...

    async def generate_image(self, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# HttpProvider: connects to the proxy
# ---------------------------------------------------------------------------

class HttpProvider:
    """Async HTTP client for the content proxy.

    Args:
        proxy_url: Base URL of the proxy, e.g. "http://localhost:3001".
        timeout:   Per-request budget in seconds. Defaults to 30. A timeout is
                   reported as RequestTimeout and is never retried here.
    """

    def __init__(self, proxy_url: str, timeout: float = 30.0) -> None:
        self._base_url = proxy_url.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _post(self, path: str, body: dict[str, Any], context: str) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise RequestTimeout(
                f"The request to the game server for {context} timed out after "
                f"{self._timeout}s. Please check your connection or try again later."
            ) from e
        except httpx.ConnectError as e:
            raise TransportFailure(
                f"Network error: could not connect to the game server for {context}."
            ) from e
        except httpx.HTTPStatusError as e:
            raise _status_error(e.response, context) from e
        except httpx.HTTPError as e:
            raise TransportFailure(f"Request for {context} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ParseFailure(
                f"Proxy response for {context} is not JSON.", raw_text=resp.text
            ) from e
        if not isinstance(data, dict):
            raise ParseFailure(f"Proxy response for {context} is not an object.", raw_text=resp.text)
        return data

    async def generate_text(
        self, model: str, prompt: str, schema: dict[str, Any] | None = None
    ) -> str:
        logger.debug("provider text call model=%s prompt_len=%d", model, len(prompt))
        body: dict[str, Any] = {"model": model, "prompt": prompt}
        if schema is not None:
            body["schema"] = schema
        data = await self._post("/api/generate-content", body, "generate-content")
        text = data.get("text")
        if not isinstance(text, str) or not text:
            raise ParseFailure(
                "Proxy response missing 'text' field.", raw_text=str(data)
            )
        logger.debug("provider text response len=%d", len(text))
        return text

    async def generate_image(self, prompt: str) -> str:
        logger.debug("provider image call prompt_len=%d", len(prompt))
        data = await self._post("/api/generate-image", {"prompt": prompt}, "generateImage")
        image = data.get("image")
        if not isinstance(image, str):
            return ""
        return image


def _status_error(response: httpx.Response, context: str) -> ContentError:
    message = ""
    try:
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            message = body["error"]
    except ValueError:
        message = response.text
    return classify_http_error(response.status_code, message, context)
