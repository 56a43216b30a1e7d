# backend/worker.py

import json
from typing import Any, Dict, Optional

import redis.asyncio as redis
import structlog

from .errors import GenerationCancelled
from .orchestrator import Orchestrator

logger = structlog.get_logger(__name__)

JOB_KEY_PREFIX = "job:"   # job:{job_id}


class JobStore:
    """Lưu trạng thái job dạng JSON trong Redis."""

    def __init__(self, rds: redis.Redis):
        self.rds = rds

    async def save(
        self,
        job_id: str,
        status: str,
        outcome: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        await self.rds.set(
            f"{JOB_KEY_PREFIX}{job_id}",
            json.dumps(
                {
                    "status": status,
                    "outcome": outcome,
                    "error_message": error_message,
                }
            ),
        )

    async def load(self, job_id: str) -> Optional[Dict[str, Any]]:
        data = await self.rds.get(f"{JOB_KEY_PREFIX}{job_id}")
        if not data:
            return None
        return json.loads(data)

    async def is_cancelled(self, job_id: str) -> bool:
        obj = await self.load(job_id)
        return bool(obj) and obj.get("status") == "cancelled"


async def process_job(store: JobStore, orchestrator: Orchestrator, job_data: Dict[str, Any]) -> None:
    job_id = job_data["job_id"]
    prompt = job_data["prompt"]
    images = job_data.get("images") or []
    mode = job_data.get("mode", "enhanced")

    # Đăng ký handle trước lần await đầu tiên: /cancel luôn tìm thấy job
    handle = orchestrator.reserve(job_id)

    logger.info("Processing job", job_id=job_id, mode=mode, prompt=prompt[:50])

    if await store.is_cancelled(job_id):
        logger.info("Job cancelled before start", job_id=job_id)
        orchestrator.release(job_id)
        return

    # Cập nhật trạng thái job -> processing
    await store.save(job_id, "processing")

    # /cancel có thể đã chạy xen giữa lần kiểm tra và lần ghi ở trên
    if handle.cancelled:
        logger.info("Job cancelled before start", job_id=job_id)
        orchestrator.release(job_id)
        await store.save(job_id, "cancelled")
        return

    try:
        if mode == "basic":
            outcome = await orchestrator.generate_basic(prompt, images, job_id=job_id)
        else:
            outcome = await orchestrator.generate(prompt, images, job_id=job_id)
    except GenerationCancelled:
        logger.info("Job cancelled while in flight", job_id=job_id)
        await store.save(job_id, "cancelled")
        return
    except Exception as e:
        # Nếu lỗi thì lưu trạng thái error
        logger.error("Job failed", job_id=job_id, error=str(e))
        if handle.cancelled or await store.is_cancelled(job_id):
            return
        await store.save(job_id, "error", error_message=str(e))
        return

    # Job bị huỷ trong lúc đang chạy thì bỏ kết quả
    if handle.cancelled or await store.is_cancelled(job_id):
        logger.info("Dropping result of cancelled job", job_id=job_id)
        return

    await store.save(job_id, "done", outcome=outcome.model_dump(by_alias=True))
    source = outcome.prompt_data.source if outcome.prompt_data else None
    logger.info("Job completed", job_id=job_id, source=source)
