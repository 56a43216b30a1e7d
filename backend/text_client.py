# backend/text_client.py

import random
from typing import List, Optional

import httpx
import structlog

from .cache import ResponseCache, text_cache_key
from .errors import ConfigurationError, UpstreamError

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are a cinematic video prompt enhancer. Transform the user's basic description into a detailed, structured video prompt that includes:

1. STYLE: Cinematic style (e.g., cinematic, documentary, animated, etc.)
2. MOOD: Emotional tone (e.g., dramatic, peaceful, exciting, mysterious)
3. MOTION: Type of movement (e.g., slow pan, fast cuts, smooth tracking, static)
4. LIGHTING: Lighting description (e.g., golden hour, moody lighting, bright daylight, neon)
5. CAMERA: Camera work (e.g., aerial shot, close-up, wide angle, tracking shot)
6. DETAILS: Additional visual details to enhance the scene

Keep the response concise but comprehensive. Format as a single paragraph that flows naturally."""

BASIC_ENHANCEMENTS: List[str] = [
    "cinematic style",
    "professional lighting",
    "smooth camera movement",
    "high quality",
]


def basic_prompt_enhancement(prompt: str, rng: Optional[random.Random] = None) -> str:
    """
    Fallback cục bộ khi API lỗi: gắn thêm 1 cụm từ điện ảnh ngẫu nhiên.
    """
    choice = (rng or random).choice(BASIC_ENHANCEMENTS)
    return f"{prompt}, {choice}"


class TextEnhancementClient:
    """
    Gọi text-completion API (OpenAI chat completions) để biến prompt ngắn
    thành mô tả điện ảnh có cấu trúc.

    Lỗi upstream không được ném ra ngoài: client tự hạ cấp xuống
    basic_prompt_enhancement. Riêng thiếu API key thì ném ConfigurationError.
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        api_key: Optional[str],
        cache: ResponseCache,
        request_timeout: float = 30.0,
        max_tokens: int = 200,
        temperature: float = 0.7,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ):
        self.api_url = api_url
        self.model = model
        self.api_key = api_key
        self.cache = cache
        self.request_timeout = request_timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._transport = transport
        self._rng = rng or random.Random()

    async def enhance(self, prompt: str) -> str:
        cache_key = text_cache_key(prompt)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached text enhancement", prompt=prompt[:50])
            return cached

        if not self.api_key:
            raise ConfigurationError("OpenAI API key not configured")

        try:
            enhanced = await self._request_completion(prompt)
        except UpstreamError as e:
            logger.warning(
                "Text enhancement failed, using basic enhancement",
                error=str(e),
                status_code=e.status_code,
            )
            return basic_prompt_enhancement(prompt, self._rng)

        await self.cache.put(cache_key, enhanced)
        logger.info("Prompt enhanced", enhanced=enhanced[:80])
        return enhanced

    async def _request_completion(self, prompt: str) -> str:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.request_timeout, transport=self._transport
            ) as client:
                r = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise UpstreamError(f"OpenAI request failed: {e}") from e

        if r.status_code < 200 or r.status_code >= 300:
            raise UpstreamError(
                f"OpenAI API error: {_error_message(r)}", status_code=r.status_code
            )

        try:
            data = r.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"Malformed OpenAI response: {e}") from e

        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("OpenAI returned empty content")
        return content.strip()


def _error_message(r: httpx.Response) -> str:
    # Body lỗi dạng {"error": {"message": ...}}
    try:
        body = r.json()
        return body["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return r.reason_phrase or f"HTTP {r.status_code}"
