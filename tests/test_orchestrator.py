# tests/test_orchestrator.py

import asyncio
import random
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from backend.errors import (
    ConfigurationError,
    FallbackExhaustedError,
    GenerationCancelled,
    SimulatedTransientError,
    UpstreamError,
)
from backend.orchestrator import Orchestrator
from backend.simulator import JobSimulator
from backend.text_client import BASIC_ENHANCEMENTS
from conftest import CountingHandler, openai_ok

IMAGE = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="


def vision_fail_handler():
    return CountingHandler(status_code=500, json={"success": False, "error": "down", "fallback": True})


@pytest.fixture
def make_orchestrator(make_text_client, make_vision_client, instant_simulator):
    def _make(text_handler, vision_handler=None, simulator=None, api_key="test-key", seed=7):
        return Orchestrator(
            text_client=make_text_client(text_handler, api_key=api_key, seed=seed),
            vision_client=make_vision_client(vision_handler or vision_fail_handler()),
            simulator=simulator or instant_simulator,
            basic_simulator=simulator or instant_simulator,
        )

    return _make


@pytest.mark.asyncio
async def test_text_only_scenario(make_orchestrator):
    vision = CountingHandler(json={"success": True, "enhancedPrompt": "never"})
    orch = make_orchestrator(CountingHandler(json=openai_ok("A golden-hour beach run")), vision)

    outcome = await orch.generate("A dog runs on a beach", [])

    assert outcome.success
    assert outcome.prompt_data.source == "text-only"
    assert outcome.prompt_data.enhanced_prompt == "A golden-hour beach run"
    assert outcome.prompt_data.model == "openai-gpt"
    assert outcome.video_details.format == "MP4"
    assert vision.calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", ["x", "A dog runs on a beach", "  Neon city at night  "])
async def test_no_images_never_uses_vision(make_orchestrator, prompt):
    vision = CountingHandler(json={"success": True, "enhancedPrompt": "never"})
    orch = make_orchestrator(CountingHandler(status_code=500, json={}), vision)

    result = await orch.enhance(prompt, [])

    assert result.source == "text-only"
    assert vision.calls == 0


@pytest.mark.asyncio
async def test_vision_success_is_tagged_image_vision(make_orchestrator):
    text = CountingHandler(json=openai_ok("unused"))
    vision = CountingHandler(json={"success": True, "enhancedPrompt": "A meadow at dawn"})
    orch = make_orchestrator(text, vision)

    outcome = await orch.generate("Enhance this", [IMAGE])

    assert outcome.prompt_data.source == "image-vision"
    assert outcome.prompt_data.enhanced_prompt == "A meadow at dawn"
    assert outcome.prompt_data.model == "gemini-vision-pro"
    assert text.calls == 0


@pytest.mark.asyncio
async def test_only_first_image_is_analyzed(make_orchestrator):
    vision = CountingHandler(json={"success": True, "enhancedPrompt": "desc"})
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), vision)

    await orch.generate("Enhance this", [IMAGE, "data:image/png;base64,SECOND"])

    assert vision.calls == 1
    assert b"SECOND" not in vision.requests[0].content


@pytest.mark.asyncio
async def test_vision_failure_falls_back_to_text(make_orchestrator):
    orch = make_orchestrator(CountingHandler(json=openai_ok("A bright studio shot")))

    outcome = await orch.generate("Enhance this", [IMAGE])

    assert outcome.prompt_data.source == "text-only-fallback"
    assert outcome.prompt_data.enhanced_prompt == "A bright studio shot"


@pytest.mark.asyncio
async def test_fallback_text_matches_independent_text_client(make_orchestrator, make_text_client):
    # Text upstream fails too: both sides degrade with the same seeded choice.
    orch = make_orchestrator(CountingHandler(status_code=401, json={"error": {"message": "bad key"}}), seed=11)
    independent = make_text_client(CountingHandler(status_code=401, json={}), seed=11)

    result = await orch.enhance("Enhance this", [IMAGE])

    assert result.source == "text-only-fallback"
    assert result.enhanced_text == await independent.enhance("Enhance this")


@pytest.mark.asyncio
async def test_http_401_degrades_but_keeps_text_only_source(make_orchestrator):
    orch = make_orchestrator(CountingHandler(status_code=401, json={"error": {"message": "bad key"}}))

    outcome = await orch.generate("A dog runs on a beach", [])

    assert outcome.prompt_data.source == "text-only"
    enhanced = outcome.prompt_data.enhanced_prompt
    assert enhanced.startswith("A dog runs on a beach")
    assert enhanced.split(", ", 1)[1] in BASIC_ENHANCEMENTS


@pytest.mark.asyncio
async def test_both_paths_failing_raises_fallback_exhausted(make_orchestrator):
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), api_key=None)

    with pytest.raises(FallbackExhaustedError) as exc_info:
        await orch.generate("Enhance this", [IMAGE])

    assert isinstance(exc_info.value.vision_error, UpstreamError)
    assert isinstance(exc_info.value.text_error, ConfigurationError)
    assert orch.is_processing is False


@pytest.mark.asyncio
async def test_configuration_error_on_text_path_propagates(make_orchestrator):
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), api_key=None)

    with pytest.raises(ConfigurationError):
        await orch.generate("A dog runs on a beach", [])


@pytest.mark.asyncio
async def test_simulated_failure_surfaces(make_orchestrator):
    failing = JobSimulator(min_seconds=0.0, max_seconds=0.0, failure_rate=1.0)
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), simulator=failing)

    with pytest.raises(SimulatedTransientError):
        await orch.generate("A dog runs on a beach", [])


@pytest.mark.asyncio
async def test_processing_flag_and_cancellation(make_orchestrator):
    slow = JobSimulator(min_seconds=5.0, max_seconds=5.0, failure_rate=0.0, rng=random.Random(0))
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), simulator=slow)

    task = asyncio.create_task(orch.generate("A dog runs on a beach", [], job_id="job-1"))
    await asyncio.sleep(0)

    assert orch.is_processing is True
    assert orch.get_status()["current_job"] == "job-1"

    assert orch.cancel_job() is True
    assert orch.is_processing is False
    assert orch.current_job is None

    with pytest.raises(GenerationCancelled):
        await asyncio.wait_for(task, timeout=1.0)
    assert orch.get_status() == {"is_processing": False, "current_job": None, "active_jobs": []}


def test_cancel_without_job_clears_flag(make_orchestrator):
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")))
    orch.is_processing = True
    assert orch.cancel_job() is False
    assert orch.is_processing is False


@pytest.mark.asyncio
async def test_generate_basic_skips_enhancement(instant_simulator):
    text_client = AsyncMock()
    vision_client = AsyncMock()
    orch = Orchestrator(text_client, vision_client, instant_simulator, basic_simulator=instant_simulator)

    outcome = await orch.generate_basic("A dog runs on a beach", [IMAGE])

    text_client.enhance.assert_not_awaited()
    vision_client.analyze.assert_not_awaited()
    assert outcome.prompt_data.model == "video-generation-v1"
    assert outcome.prompt_data.source is None
    assert outcome.prompt_data.enhanced_prompt == "A dog runs on a beach"
    assert outcome.prompt_data.image_count == 1


@pytest.mark.asyncio
async def test_cancellation_is_logged_at_info_not_as_failure(make_orchestrator):
    slow = JobSimulator(min_seconds=5.0, max_seconds=5.0, failure_rate=0.0, rng=random.Random(0))
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), simulator=slow)

    with capture_logs() as logs:
        task = asyncio.create_task(orch.generate("A dog runs on a beach", [], job_id="job-2"))
        await asyncio.sleep(0)
        orch.cancel_job("job-2")
        with pytest.raises(GenerationCancelled):
            await asyncio.wait_for(task, timeout=1.0)

    cancelled = [e for e in logs if e["event"] == "Generation cancelled"]
    assert cancelled and cancelled[0]["log_level"] == "info"
    assert not [e for e in logs if e["event"] == "Generation failed"]


def test_reserved_job_can_be_cancelled_before_generate(make_orchestrator):
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")))

    handle = orch.reserve("job-3")

    assert orch.get_status()["active_jobs"] == ["job-3"]
    assert orch.cancel_job("job-3") is True
    assert handle.cancelled
    orch.release("job-3")
    assert orch.get_status()["active_jobs"] == []


@pytest.mark.asyncio
async def test_generate_honours_cancel_on_reserved_handle(make_orchestrator, instant_simulator):
    orch = make_orchestrator(CountingHandler(json=openai_ok("x")), simulator=instant_simulator)
    orch.reserve("job-4").cancel()

    with pytest.raises(GenerationCancelled):
        await orch.generate("A dog runs on a beach", [], job_id="job-4")
    assert orch.get_status()["active_jobs"] == []
