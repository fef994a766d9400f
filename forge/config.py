"""Runtime settings read from the environment (and `.env`, if present)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"

_DISABLED_VALUES = ("false", "disabled", "0", "no")


class Settings(BaseModel):
    api_key: str = ""
    proxy_url: str = "http://localhost:3001"
    text_model: str = "gemini-2.5-flash-preview-04-17"
    image_model: str = "imagen-3.0-generate-002"
    gemini_image_model: str = "gemini-2.0-flash-preview-image-generation"
    use_imagen: bool = True
    image_generation_enabled: bool = True
    request_timeout: float = 30.0
    data_dir: Path = DEFAULT_DATA_DIR
    rate_limit_max: int = 10
    rate_limit_window: float = 60.0
    host: str = "0.0.0.0"
    port: int = 3001


def _flag(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in _DISABLED_VALUES


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from environment variables, after loading `.env`."""
    load_dotenv(env_file or ROOT / ".env")
    defaults = Settings()
    return Settings(
        api_key=os.getenv("API_KEY", defaults.api_key),
        proxy_url=os.getenv("PROXY_URL", defaults.proxy_url),
        text_model=os.getenv("TEXT_MODEL", defaults.text_model),
        image_model=os.getenv("IMAGE_MODEL", defaults.image_model),
        gemini_image_model=os.getenv("GEMINI_IMAGE_MODEL", defaults.gemini_image_model),
        use_imagen=_flag(os.getenv("USE_IMAGEN"), defaults.use_imagen),
        image_generation_enabled=_flag(
            os.getenv("IMAGE_GENERATION_ENABLED"), defaults.image_generation_enabled
        ),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", defaults.request_timeout)),
        data_dir=Path(os.getenv("DATA_DIR", str(defaults.data_dir))),
        rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", defaults.rate_limit_max)),
        rate_limit_window=float(os.getenv("RATE_LIMIT_WINDOW", defaults.rate_limit_window)),
        host=os.getenv("HOST", defaults.host),
        port=int(os.getenv("PORT", defaults.port)),
    )
