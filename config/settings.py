import os
from pathlib import Path
from dotenv import load_dotenv

# Load biến môi trường trong .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


class Settings:
    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")

    # "memory" hoặc "redis"
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "memory")

    OPENAI_API_URL: str = os.getenv(
        "OPENAI_API_URL", "https://api.openai.com/v1/chat/completions"
    )
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")

    GEMINI_API_URL: str = os.getenv(
        "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta/models"
    )
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-pro-vision")

    # Endpoint trung gian phía server cho vision
    VISION_ENDPOINT: str = os.getenv("VISION_ENDPOINT", f"{BACKEND_URL}/vision")

    # Chỉ đọc ở backend, không bao giờ gửi xuống frontend
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    GEMINI_API_KEY: str | None = os.getenv("GEMINI_API_KEY")

    REQUEST_TIMEOUT: float = _env_float("REQUEST_TIMEOUT", 30.0)  # giây
    # Client vision chờ /vision, mà /vision lại chờ Gemini: phải dài hơn REQUEST_TIMEOUT
    VISION_CLIENT_TIMEOUT: float = _env_float("VISION_CLIENT_TIMEOUT", REQUEST_TIMEOUT + 15.0)

    SIM_MIN_SECONDS: float = _env_float("SIM_MIN_SECONDS", 3.0)
    SIM_MAX_SECONDS: float = _env_float("SIM_MAX_SECONDS", 6.0)
    ENHANCED_FAILURE_RATE: float = _env_float("ENHANCED_FAILURE_RATE", 0.05)
    BASIC_FAILURE_RATE: float = _env_float("BASIC_FAILURE_RATE", 0.10)

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
