"""Generation proxy: forwards text and image requests to the upstream API.

Both endpoints are rate limited per client address. Upstream failures are
translated into {"error", "details"} bodies the client can classify:

    key problem       → 500  "API Key configuration error on the server..."
    quota / 429       → 429  "API quota likely exceeded for <context>. ..."
    upstream timeout  → 504
    anything else     → the upstream status (502 when unreachable)
"""

import logging
import threading
import time

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from forge.errors import SERVER_KEY_ERROR, is_quota_message
from forge.gemini import GeminiClient, UpstreamError

from .models import GenerateContentBody, GenerateImageBody

logger = logging.getLogger(__name__)

router = APIRouter()

AI_UNAVAILABLE = "Proxy's AI Service is not available (API Key issue)."
RATE_LIMITED = "Too many requests for this resource. Please wait a moment."


class ProxyError(Exception):
    """Rendered by the app as a JSON error body with the given status."""

    def __init__(self, status: int, error: str, details: str = "") -> None:
        super().__init__(error)
        self.status = status
        self.error = error
        self.details = details


# ── Rate limiting ────────────────────────────────────────


class SlidingWindowLimiter:
    """Allow at most `max_requests` per client within the last `window` seconds."""

    def __init__(self, max_requests: int, window: float) -> None:
        self._max = max_requests
        self._window = window
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = 0.0
        self._lock = threading.Lock()

    def allow(self, client: str) -> bool:
        now = time.monotonic()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            hits = [ts for ts in self._hits.get(client, []) if now - ts < self._window]
            allowed = len(hits) < self._max
            if allowed:
                hits.append(now)
            if hits:
                self._hits[client] = hits
            else:
                self._hits.pop(client, None)
            return allowed

    def tracked_clients(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        """Forget clients whose newest hit has left the window."""
        self._hits = {
            client: hits for client, hits in self._hits.items()
            if hits and now - hits[-1] < self._window
        }
        self._last_sweep = now


def rate_limit(request: Request) -> None:
    limiter: SlidingWindowLimiter = request.app.state.rate_limiter
    client = request.client.host if request.client else "unknown"
    if not limiter.allow(client):
        logger.info("Rate limit hit for %s on %s", client, request.url.path)
        raise HTTPException(429, RATE_LIMITED)


def upstream(request: Request) -> GeminiClient:
    gemini = request.app.state.gemini
    if gemini is None:
        raise HTTPException(503, AI_UNAVAILABLE)
    return gemini


# ── Error translation ────────────────────────────────────


def proxy_error(error: Exception, context: str) -> ProxyError:
    logger.error("Error in proxy/%s: %s", context, error)
    if isinstance(error, httpx.TimeoutException):
        return ProxyError(504, f"The upstream request for {context} timed out.", repr(error))
    if isinstance(error, UpstreamError):
        message = error.message
        if "API key not valid" in message or (
            error.status == 400 and "api key" in message.lower()
        ):
            logger.error("Proxy server's API key is invalid or missing.")
            return ProxyError(500, SERVER_KEY_ERROR, message)
        if is_quota_message(message) or error.status == 429:
            return ProxyError(429, f"API quota likely exceeded for {context}. {message}", message)
        return ProxyError(error.status, message or f"Upstream error in {context}.", message)
    return ProxyError(502, f"Could not reach the upstream service for {context}.", repr(error))


# ── Endpoints ────────────────────────────────────────────


@router.post("/generate-content", dependencies=[Depends(rate_limit)])
async def generate_content(body: GenerateContentBody, gemini: GeminiClient = Depends(upstream)):
    """Run a text generation request; returns {"text": ...}."""
    if not body.model or not body.prompt:
        raise HTTPException(400, "Proxy: Missing 'model' or 'prompt' in request body for generate-content")
    try:
        text = await gemini.generate_text(body.model, body.prompt, body.response_schema)
    except (UpstreamError, httpx.HTTPError) as e:
        raise proxy_error(e, "generate-content") from e
    return {"text": text}


@router.post("/generate-image", dependencies=[Depends(rate_limit)])
async def generate_image(body: GenerateImageBody, gemini: GeminiClient = Depends(upstream)):
    """Generate one scene image; returns {"image": data-url or ""}."""
    if not body.prompt:
        raise HTTPException(400, "Proxy: Missing 'prompt' in request body for generate-image")
    try:
        image = await gemini.generate_image(body.prompt)
    except (UpstreamError, httpx.HTTPError) as e:
        raise proxy_error(e, "generate-image") from e
    return {"image": image}
