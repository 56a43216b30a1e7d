# backend/errors.py
from typing import Optional


class EnhancementError(Exception):
    """Lỗi gốc cho toàn bộ luồng enhance + generate."""


class ConfigurationError(EnhancementError):
    """Thiếu cấu hình bắt buộc (vd: API key). Không fallback."""


class UpstreamError(EnhancementError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FallbackExhaustedError(EnhancementError):
    """Vision lỗi và lần fallback sang text cũng lỗi."""

    def __init__(self, vision_error: BaseException, text_error: BaseException):
        super().__init__(
            f"Vision enhancement failed ({vision_error}); "
            f"text fallback failed ({text_error})"
        )
        self.vision_error = vision_error
        self.text_error = text_error


class SimulatedTransientError(EnhancementError):
    """Lỗi giả lập từ JobSimulator, user có thể thử lại."""


class GenerationCancelled(EnhancementError):
    pass
