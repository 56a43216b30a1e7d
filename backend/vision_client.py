# backend/vision_client.py

import re
from typing import Optional

import httpx
import structlog

from .cache import ResponseCache, vision_cache_key
from .errors import UpstreamError

logger = structlog.get_logger(__name__)

_DATA_URL_RE = re.compile(r"^data:(image/[a-z]+);base64,")


def process_image_data(image_data: str) -> str:
    """Bỏ prefix data URL, chỉ giữ phần base64."""
    return _DATA_URL_RE.sub("", image_data, count=1)


def detect_mime_type(image_data: str) -> str:
    m = _DATA_URL_RE.match(image_data)
    return m.group(1) if m else "image/jpeg"


class VisionEnhancementClient:
    """
    Gửi ảnh + prompt tới endpoint trung gian phía server (POST /vision).
    Client này không giữ API key của vision provider.

    Mọi lỗi đều được ném ra: chính sách fallback thuộc về Orchestrator.
    """

    def __init__(
        self,
        endpoint: str,
        cache: ResponseCache,
        request_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.cache = cache
        self.request_timeout = request_timeout
        self._transport = transport

    async def analyze(self, image_data: str, prompt: str) -> str:
        if not image_data or not prompt:
            raise ValueError("Both image and prompt are required")

        cache_key = vision_cache_key(prompt, image_data)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached vision analysis", prompt=prompt[:50])
            return cached

        payload = {
            "prompt": prompt,
            "imageData": process_image_data(image_data),
            "mimeType": detect_mime_type(image_data),
        }
        logger.info(
            "Calling vision endpoint",
            endpoint=self.endpoint,
            image_size=len(image_data),
            mime_type=payload["mimeType"],
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.request_timeout, transport=self._transport
            ) as client:
                r = await client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            logger.error("Vision endpoint unreachable", error=str(e))
            raise UpstreamError(f"Vision endpoint unreachable: {e}") from e

        if r.status_code < 200 or r.status_code >= 300:
            try:
                detail = r.json().get("error") or r.reason_phrase
            except (ValueError, AttributeError):
                detail = r.reason_phrase
            logger.error("Vision endpoint error", status_code=r.status_code, error=detail)
            raise UpstreamError(f"Server error: {detail}", status_code=r.status_code)

        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(f"Malformed vision response: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamError("Malformed vision response")

        enhanced = data.get("enhancedPrompt")
        if not data.get("success") or not enhanced:
            logger.warning("Vision endpoint signalled fallback")
            raise UpstreamError("Vision unavailable - fallback to text enhancement")

        await self.cache.put(cache_key, enhanced)
        logger.info("Vision analysis completed", enhanced=enhanced[:80])
        return enhanced
