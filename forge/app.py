import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from forge.config import Settings, load_settings
from forge.gemini import GeminiClient
from forge.routes import router
from forge.routes.proxy import ProxyError, SlidingWindowLimiter

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(title="Forge Your Journey")
    app.state.settings = settings
    app.state.rate_limiter = SlidingWindowLimiter(settings.rate_limit_max, settings.rate_limit_window)
    app.state.gemini = None
    if settings.api_key:
        app.state.gemini = GeminiClient(
            api_key=settings.api_key,
            image_model=settings.image_model if settings.use_imagen else settings.gemini_image_model,
            use_imagen=settings.use_imagen,
            timeout=settings.request_timeout,
        )
    else:
        logger.warning("API_KEY is not set; generation endpoints will answer 503")

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        return JSONResponse(status_code=exc.status, content={"error": exc.error, "details": exc.details})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (reads settings from the environment)
app = create_app()
