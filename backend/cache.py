# backend/cache.py

from typing import Dict, Optional

import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "enhance_cache:"  # enhance_cache:{key}

# Số ký tự đầu của ảnh dùng làm "fingerprint".
# Hai ảnh có cùng 100 ký tự đầu sẽ trùng key (giới hạn đã biết).
IMAGE_FINGERPRINT_CHARS = 100


def text_cache_key(prompt: str) -> str:
    return prompt.strip().lower()


def vision_cache_key(prompt: str, image_data: str) -> str:
    return f"{text_cache_key(prompt)}_{(image_data or '')[:IMAGE_FINGERPRINT_CHARS]}"


class ResponseCache:
    """
    Cache key -> enhanced text trong bộ nhớ process.
    Không có TTL, không evict: sống cùng process.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class RedisResponseCache:
    """
    Cùng contract với ResponseCache nhưng lưu trong Redis,
    dùng chung giữa nhiều process backend.
    """

    def __init__(self, rds: redis.Redis, prefix: str = CACHE_KEY_PREFIX):
        self.rds = rds
        self.prefix = prefix

    async def get(self, key: str) -> Optional[str]:
        return await self.rds.get(f"{self.prefix}{key}")

    async def put(self, key: str, value: str) -> None:
        await self.rds.set(f"{self.prefix}{key}", value)
        logger.debug("Cached enhancement", key=key[:60])
