# backend/simulator.py

import asyncio
import datetime
import random
from typing import Optional

import structlog

from .errors import GenerationCancelled, SimulatedTransientError
from .model import GenerationRecord, JobOutcome, PromptData, VideoDetails, SAMPLE_VIDEO_URL

logger = structlog.get_logger(__name__)

LEGACY_MODEL_LABEL = "video-generation-v1"


def model_label_for(source: Optional[str]) -> str:
    if source is None:
        return LEGACY_MODEL_LABEL
    return "gemini-vision-pro" if source == "image-vision" else "openai-gpt"


class JobSimulator:
    """
    Giả lập backend sinh video: chờ một khoảng ngẫu nhiên trong
    [min_seconds, max_seconds], sau đó lỗi với xác suất failure_rate
    hoặc trả về metadata video mock.
    """

    def __init__(
        self,
        min_seconds: float = 3.0,
        max_seconds: float = 6.0,
        failure_rate: float = 0.05,
        failure_message: str = "Video generation failed: Network timeout",
        rng: Optional[random.Random] = None,
    ):
        if min_seconds > max_seconds:
            raise ValueError("min_seconds must be <= max_seconds")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self.failure_rate = failure_rate
        self.failure_message = failure_message
        self._rng = rng or random.Random()

    def draw_duration(self) -> float:
        return self._rng.uniform(self.min_seconds, self.max_seconds)

    async def run(
        self,
        record: GenerationRecord,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobOutcome:
        duration = self.draw_duration()
        logger.info(
            "Simulating video generation",
            source=record.source,
            duration=round(duration, 2),
        )
        await self._wait(duration, cancel_event)
        return self.complete(record, duration)

    async def _wait(self, duration: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await asyncio.sleep(duration)
            return
        if not cancel_event.is_set():
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=duration)
            except asyncio.TimeoutError:
                pass
        if cancel_event.is_set():
            raise GenerationCancelled("Generation cancelled")

    def complete(self, record: GenerationRecord, duration: float) -> JobOutcome:
        if self._rng.random() < self.failure_rate:
            logger.warning("Injected simulated failure", source=record.source)
            raise SimulatedTransientError(self.failure_message)

        outcome = JobOutcome(
            success=True,
            video_url=SAMPLE_VIDEO_URL,
            video_details=VideoDetails(
                created_at=datetime.datetime.now(datetime.timezone.utc).isoformat()
            ),
            prompt_data=PromptData(
                original_prompt=record.original_prompt,
                enhanced_prompt=record.enhanced_prompt,
                source=record.source,
                processing_time_ms=round(duration * 1000),
                model=model_label_for(record.source),
                image_count=len(record.images),
            ),
        )
        logger.info("Video generation completed", source=record.source)
        return outcome
