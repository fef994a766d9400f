"""Upstream client for the Generative Language REST API.

Only the proxy server uses this; it is the one place the API key lives.

    Text:   POST /v1beta/models/{model}:generateContent
            → candidates[0].content.parts[*].text
    Imagen: POST /v1beta/models/{imagen}:predict
            → predictions[0].bytesBase64Encoded
    Gemini image model (when Imagen is switched off):
            POST /v1beta/models/{model}:generateContent with IMAGE modality
            → candidates[0].content.parts[*].inlineData
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class UpstreamError(Exception):
    """A non-2xx answer from the upstream API."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class GeminiClient:
    """Async client for text and image generation.

    Args:
        api_key:      Upstream API key. Sent as the `key` query parameter.
        image_model:  Model used for image generation.
        use_imagen:   True for the Imagen :predict endpoint, False to ask a
                      Gemini image-capable model through :generateContent.
        timeout:      HTTP timeout in seconds. httpx.TimeoutException is left
                      to propagate so the proxy can answer 504.
    """

    def __init__(
        self,
        api_key: str,
        image_model: str,
        use_imagen: bool = True,
        timeout: float = 30.0,
        base_url: str = GEMINI_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._image_model = image_model
        self._use_imagen = use_imagen
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")

    async def _post(self, model: str, method: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/models/{model}:{method}"
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(url, params={"key": self._api_key}, json=body)
        if resp.status_code >= 400:
            raise UpstreamError(resp.status_code, _error_message(resp))
        return resp.json()

    async def generate_text(
        self, model: str, prompt: str, schema: dict[str, Any] | None = None
    ) -> str:
        config: dict[str, Any] = {"responseMimeType": "application/json"}
        if schema is not None:
            config["responseSchema"] = schema
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": config,
        }
        data = await self._post(model, "generateContent", body)
        texts = [part.get("text", "") for part in _first_candidate_parts(data)]
        return "".join(texts)

    async def generate_image(self, prompt: str) -> str:
        """Return a data URL, or "" when the upstream produced no image."""
        if self._use_imagen:
            return await self._imagen(prompt)
        return await self._gemini_image(prompt)

    async def _imagen(self, prompt: str) -> str:
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, "outputMimeType": "image/jpeg"},
        }
        data = await self._post(self._image_model, "predict", body)
        predictions = data.get("predictions") or []
        encoded = predictions[0].get("bytesBase64Encoded") if predictions else None
        if not encoded:
            logger.warning("No image generated by %s (prompt_len=%d)", self._image_model, len(prompt))
            return ""
        mime = predictions[0].get("mimeType", "image/jpeg")
        return f"data:{mime};base64,{encoded}"

    async def _gemini_image(self, prompt: str) -> str:
        body = {
            "contents": [{"parts": [{
                "text": "Please generate an image. Your response must include an "
                        f"image based on the following description:\n {prompt}",
            }]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        data = await self._post(self._image_model, "generateContent", body)
        text_reply = ""
        for part in _first_candidate_parts(data):
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                return f"data:{inline.get('mimeType', 'image/png')};base64,{inline['data']}"
            text_reply = part.get("text", text_reply)
        if text_reply:
            logger.info("No image from %s, text reply: %s", self._image_model, text_reply)
        return ""


def _first_candidate_parts(data: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    return (candidates[0].get("content") or {}).get("parts") or []


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        parts = [str(error.get("message", ""))]
        if error.get("status"):
            parts.append(f"({error['status']})")
        return " ".join(p for p in parts if p)
    return resp.text
