"""FastAPI API endpoints under /api.

Endpoint groups: health, and the generation proxy (generate-content,
generate-image). The proxy holds the upstream key; clients only ever talk
to these endpoints. Error bodies are always {"error": ..., "details"?: ...}.
"""

from fastapi import APIRouter

from .health import router as health_router
from .proxy import router as proxy_router

router = APIRouter()
router.include_router(health_router)
router.include_router(proxy_router)
