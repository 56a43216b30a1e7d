# backend/app.py

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .context import AppContext, build_context
from .errors import EnhancementError
from .logging_setup import setup_logging
from .model import (
    EnhancementRequest,
    GenerateRequest,
    GenerateResponse,
    JobOutcome,
    JobResult,
    VisionRequest,
    VisionResponse,
)
from .utils import gen_job_id
from .worker import process_job

logger = structlog.get_logger(__name__)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if context is None:
            setup_logging()
            app.state.context = build_context()
        yield

    app = FastAPI(title="Cinematic Video Prompt Service", lifespan=lifespan)
    if context is not None:
        app.state.context = context

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(req: GenerateRequest, request: Request, background_tasks: BackgroundTasks):
        try:
            enhancement_req = EnhancementRequest(raw_prompt=req.prompt, images=req.images)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Prompt must not be empty")

        ctx = get_context(request)
        job_id = gen_job_id()

        job_data = {
            "job_id": job_id,
            "prompt": enhancement_req.raw_prompt,
            "images": enhancement_req.images,
            "mode": req.mode,
        }

        # Lưu trạng thái job ban đầu
        await ctx.job_store.save(job_id, "waiting")

        background_tasks.add_task(process_job, ctx.job_store, ctx.orchestrator, job_data)
        logger.info("Job queued", job_id=job_id, image_count=len(req.images), mode=req.mode)

        return GenerateResponse(job_id=job_id, status="waiting")

    @app.get("/result/{job_id}", response_model=JobResult)
    async def get_result(job_id: str, request: Request):
        """
        Trả về trạng thái job + outcome (nếu xong).
        """
        obj = await get_context(request).job_store.load(job_id)
        if not obj:
            raise HTTPException(status_code=404, detail="Job not found")

        outcome = obj.get("outcome")
        return JobResult(
            job_id=job_id,
            status=obj.get("status", "waiting"),
            outcome=JobOutcome.model_validate(outcome) if outcome else None,
            error_message=obj.get("error_message"),
        )

    @app.post("/cancel/{job_id}", response_model=JobResult)
    async def cancel(job_id: str, request: Request):
        ctx = get_context(request)
        obj = await ctx.job_store.load(job_id)
        if not obj:
            raise HTTPException(status_code=404, detail="Job not found")

        if obj.get("status") in ("done", "error"):
            return JobResult(job_id=job_id, status=obj["status"], error_message=obj.get("error_message"))

        await ctx.job_store.save(job_id, "cancelled")
        ctx.orchestrator.cancel_job(job_id)
        return JobResult(job_id=job_id, status="cancelled")

    @app.get("/status")
    async def status(request: Request):
        return get_context(request).orchestrator.get_status()

    @app.post("/vision", response_model=VisionResponse, response_model_exclude_none=True)
    async def vision(req: VisionRequest, request: Request):
        """
        Endpoint trung gian: gọi vision provider bằng key phía server.
        """
        if not req.prompt or not req.image_data:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Missing required fields: prompt and imageData"},
            )

        proxy = get_context(request).vision_proxy
        try:
            description = await proxy.describe_scene(req.prompt, req.image_data, req.mime_type)
        except EnhancementError as e:
            logger.error("Server-side vision error", error=str(e))
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": str(e), "fallback": True},
            )

        return VisionResponse(success=True, enhanced_prompt=description, ai_source="image-vision")

    return app


app = create_app()
