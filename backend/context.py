# backend/context.py

from dataclasses import dataclass
from typing import Optional, Union

import redis.asyncio as redis

from config.settings import Settings, settings as default_settings

from .cache import CACHE_KEY_PREFIX, RedisResponseCache, ResponseCache
from .orchestrator import Orchestrator
from .simulator import JobSimulator
from .text_client import TextEnhancementClient
from .vision_client import VisionEnhancementClient
from .vision_proxy import GeminiVisionProxy
from .worker import JobStore

Cache = Union[ResponseCache, RedisResponseCache]


@dataclass
class AppContext:
    """Các service dùng chung, được tạo 1 lần và truyền vào app."""

    settings: Settings
    orchestrator: Orchestrator
    vision_proxy: GeminiVisionProxy
    job_store: JobStore


def build_cache(cfg: Settings, namespace: str, rds: Optional[redis.Redis] = None) -> Cache:
    if cfg.CACHE_BACKEND == "redis":
        rds = rds or redis.from_url(cfg.REDIS_URL, decode_responses=True)
        return RedisResponseCache(rds, prefix=f"{CACHE_KEY_PREFIX}{namespace}:")
    return ResponseCache()


def build_orchestrator(cfg: Settings, text_cache: Cache, vision_cache: Cache) -> Orchestrator:
    text_client = TextEnhancementClient(
        api_url=cfg.OPENAI_API_URL,
        model=cfg.OPENAI_MODEL,
        api_key=cfg.OPENAI_API_KEY,
        cache=text_cache,
        request_timeout=cfg.REQUEST_TIMEOUT,
    )
    vision_client = VisionEnhancementClient(
        endpoint=cfg.VISION_ENDPOINT,
        cache=vision_cache,
        request_timeout=cfg.VISION_CLIENT_TIMEOUT,
    )
    return Orchestrator(
        text_client=text_client,
        vision_client=vision_client,
        simulator=JobSimulator(
            min_seconds=cfg.SIM_MIN_SECONDS,
            max_seconds=cfg.SIM_MAX_SECONDS,
            failure_rate=cfg.ENHANCED_FAILURE_RATE,
        ),
        basic_simulator=JobSimulator(
            min_seconds=cfg.SIM_MIN_SECONDS,
            max_seconds=cfg.SIM_MAX_SECONDS,
            failure_rate=cfg.BASIC_FAILURE_RATE,
            failure_message="AI processing failed: Network timeout",
        ),
    )


def build_context(cfg: Optional[Settings] = None) -> AppContext:
    cfg = cfg or default_settings
    rds = redis.from_url(cfg.REDIS_URL, decode_responses=True)

    return AppContext(
        settings=cfg,
        orchestrator=build_orchestrator(
            cfg,
            text_cache=build_cache(cfg, "text", rds),
            vision_cache=build_cache(cfg, "vision", rds),
        ),
        vision_proxy=GeminiVisionProxy(
            api_url=cfg.GEMINI_API_URL,
            model=cfg.GEMINI_MODEL,
            api_key=cfg.GEMINI_API_KEY,
            request_timeout=cfg.REQUEST_TIMEOUT,
        ),
        job_store=JobStore(rds),
    )
