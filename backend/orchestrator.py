# backend/orchestrator.py

import asyncio
import datetime
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import structlog

from .errors import FallbackExhaustedError, GenerationCancelled
from .model import EnhancementResult, GenerationRecord, JobOutcome
from .simulator import JobSimulator
from .text_client import TextEnhancementClient
from .vision_client import VisionEnhancementClient

logger = structlog.get_logger(__name__)


@dataclass
class JobHandle:
    job_id: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class Orchestrator:
    """
    Chọn đường enhance (vision hay text), fallback đúng 1 lần
    từ vision sang text, rồi chuyển cho JobSimulator.

    Cờ is_processing chỉ phản ánh lần gọi gần nhất, không khoá
    các lần gọi song song.
    """

    def __init__(
        self,
        text_client: TextEnhancementClient,
        vision_client: VisionEnhancementClient,
        simulator: JobSimulator,
        basic_simulator: Optional[JobSimulator] = None,
    ):
        self.text_client = text_client
        self.vision_client = vision_client
        self.simulator = simulator
        self.basic_simulator = basic_simulator or JobSimulator(failure_rate=0.10)
        self.is_processing = False
        self.current_job: Optional[JobHandle] = None
        self._jobs: Dict[str, JobHandle] = {}

    async def enhance(self, prompt: str, images: Sequence[str]) -> EnhancementResult:
        if images:
            if len(images) > 1:
                logger.info("Multiple images supplied, using the first", image_count=len(images))
            try:
                text = await self.vision_client.analyze(images[0], prompt)
                return EnhancementResult(enhanced_text=text, source="image-vision")
            except Exception as vision_error:
                logger.warning(
                    "Vision enhancement failed, falling back to text", error=str(vision_error)
                )
                try:
                    text = await self.text_client.enhance(prompt)
                except Exception as text_error:
                    raise FallbackExhaustedError(vision_error, text_error) from text_error
                return EnhancementResult(enhanced_text=text, source="text-only-fallback")

        text = await self.text_client.enhance(prompt)
        return EnhancementResult(enhanced_text=text, source="text-only")

    async def generate(
        self,
        prompt: str,
        images: Optional[Sequence[str]] = None,
        job_id: Optional[str] = None,
    ) -> JobOutcome:
        images = list(images or [])
        handle = self._start(job_id)
        logger.info(
            "Starting enhanced video generation",
            job_id=handle.job_id,
            prompt=prompt[:50],
            image_count=len(images),
        )

        try:
            result = await self.enhance(prompt, images)
            record = GenerationRecord(
                original_prompt=prompt,
                enhanced_prompt=result.enhanced_text,
                images=images,
                source=result.source,
                timestamp=_now_iso(),
            )
            logger.info("Using enhanced prompt", source=result.source, job_id=handle.job_id)
            return await self.simulator.run(record, cancel_event=handle.cancel_event)
        except GenerationCancelled:
            logger.info("Generation cancelled", job_id=handle.job_id)
            raise
        except Exception as e:
            logger.error("Generation failed", job_id=handle.job_id, error=str(e))
            raise
        finally:
            self._finish(handle)

    async def generate_basic(
        self,
        prompt: str,
        images: Optional[Sequence[str]] = None,
        job_id: Optional[str] = None,
    ) -> JobOutcome:
        """Luồng cũ: không enhance, dùng simulator với tỉ lệ lỗi riêng."""
        images = list(images or [])
        handle = self._start(job_id)
        logger.info("Starting basic video generation", job_id=handle.job_id, image_count=len(images))
        try:
            record = GenerationRecord(
                original_prompt=prompt,
                enhanced_prompt=prompt,
                images=images,
                source=None,
                timestamp=_now_iso(),
            )
            return await self.basic_simulator.run(record, cancel_event=handle.cancel_event)
        finally:
            self._finish(handle)

    def cancel_job(self, job_id: Optional[str] = None) -> bool:
        """
        Huỷ job (mặc định là job gần nhất). Simulator nhận cancel_event
        nên kết quả đang chờ sẽ không được trả về.
        """
        handle = self._jobs.get(job_id) if job_id else self.current_job
        if handle is not None:
            handle.cancel()
        if handle is None or handle is self.current_job:
            self.is_processing = False
            self.current_job = None
        logger.info("Current job cancelled", job_id=handle.job_id if handle else None)
        return handle is not None

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_processing": self.is_processing,
            "current_job": self.current_job.job_id if self.current_job else None,
            "active_jobs": list(self._jobs),
        }

    def reserve(self, job_id: str) -> JobHandle:
        """
        Đăng ký handle trước khi job chạy, để cancel_job tìm thấy job
        ngay cả khi generate chưa bắt đầu.
        """
        handle = self._jobs.get(job_id)
        if handle is None:
            handle = JobHandle(job_id=job_id)
            self._jobs[job_id] = handle
        return handle

    def release(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def _start(self, job_id: Optional[str]) -> JobHandle:
        handle = self.reserve(job_id or str(uuid.uuid4()))
        self.current_job = handle
        self.is_processing = True
        return handle

    def _finish(self, handle: JobHandle) -> None:
        self._jobs.pop(handle.job_id, None)
        if self.current_job is handle:
            self.current_job = None
        self.is_processing = False
