"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Health check. `ai` is false when the server has no upstream key."""
    return {"status": "ok", "ai": request.app.state.gemini is not None}
