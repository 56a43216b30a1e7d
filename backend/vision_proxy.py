# backend/vision_proxy.py

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp
import structlog

from .errors import ConfigurationError, UpstreamError
from .vision_client import process_image_data

logger = structlog.get_logger(__name__)


def _error_detail(body_text: str, status: int) -> str:
    """Lấy error.message trong body lỗi của Gemini, nếu có."""
    try:
        return json.loads(body_text)["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {status}"


def build_scene_instruction(prompt: str) -> str:
    return f"""Analyze this image and the user's request. Provide a detailed cinematic scene description suitable for video generation.

USER REQUEST: "{prompt}"

RESPONSE FORMAT:
Provide a comprehensive cinematic description including:

1. SCENE ENVIRONMENT: Describe the setting, location, background elements
2. SUBJECT APPEARANCE: Detail what subjects/characters look like, their positioning, expressions
3. CAMERA ANGLE: Specify camera position (wide shot, close-up, aerial, tracking shot, etc.)
4. LIGHTING & MOOD: Describe lighting conditions, atmosphere, emotional tone
5. MOTION DESCRIPTION: Explain how elements should move in the video

Keep it cinematic and professional. Focus on visual elements that can be translated into video."""


class GeminiVisionProxy:
    """
    Phía server: gọi Gemini generateContent bằng API key của server.
    Key này không bao giờ rời khỏi backend.
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        api_key: Optional[str],
        request_timeout: float = 60.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.request_timeout = request_timeout

    def build_payload(self, prompt: str, image_data: str, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": build_scene_instruction(prompt)},
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": process_image_data(image_data),
                            }
                        },
                    ]
                }
            ]
        }

    async def describe_scene(self, prompt: str, image_data: str, mime_type: str = "image/jpeg") -> str:
        if not self.api_key:
            raise ConfigurationError("Gemini API key not configured")

        url = f"{self.api_url}/{self.model}:generateContent"
        payload = self.build_payload(prompt, image_data, mime_type)

        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url, params={"key": self.api_key}, json=payload
                ) as resp:
                    if resp.status != 200:
                        body_text = await resp.text()
                        logger.error(
                            "Gemini API error", status=resp.status, body=body_text[:300]
                        )
                        raise UpstreamError(
                            f"Gemini API error: {_error_detail(body_text, resp.status)}",
                            status_code=resp.status,
                        )
                    body = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            detail = str(e).replace(self.api_key, "***")
            raise UpstreamError(f"Gemini request failed: {detail or type(e).__name__}") from e

        return self.parse_response(body)

    @staticmethod
    def parse_response(body: Dict[str, Any]) -> str:
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"Malformed Gemini response: {e}") from e
        text = (text or "").strip()
        if not text:
            raise UpstreamError("Gemini returned empty description")
        return text
