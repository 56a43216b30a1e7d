# backend/model.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Literal, List

Source = Literal["text-only", "image-vision", "text-only-fallback"]

Mode = Literal["enhanced", "basic"]

Status = Literal["waiting", "processing", "done", "error", "cancelled"]

SAMPLE_VIDEO_URL = (
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"
)


class EnhancementRequest(BaseModel):
    raw_prompt: str
    images: List[str] = Field(default_factory=list)

    @field_validator("raw_prompt")
    @classmethod
    def _strip_prompt(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Prompt không được để trống")
        return v


class EnhancementResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    enhanced_text: str
    source: Source


class GenerationRecord(BaseModel):
    original_prompt: str
    enhanced_prompt: str
    images: List[str] = Field(default_factory=list)
    source: Optional[Source] = None  # None = luồng cũ không enhance
    timestamp: str


class VideoDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    duration: str = "30 seconds"
    resolution: str = "1920x1080"
    format: str = "MP4"
    file_size: str = Field("15.2 MB", alias="fileSize")
    created_at: str = Field(alias="createdAt")


class PromptData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_prompt: str = Field(alias="originalPrompt")
    enhanced_prompt: str = Field(alias="enhancedPrompt")
    source: Optional[Source] = Field(None, alias="aiSource")
    processing_time_ms: int = Field(alias="processingTime")
    model: str
    image_count: int = Field(0, alias="imageCount")


class JobOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    video_url: Optional[str] = Field(None, alias="videoUrl")
    video_details: Optional[VideoDetails] = Field(None, alias="videoDetails")
    prompt_data: Optional[PromptData] = Field(None, alias="promptData")
    error_message: Optional[str] = Field(None, alias="errorMessage")


class GenerateRequest(BaseModel):
    prompt: str
    images: List[str] = Field(default_factory=list)  # data URL hoặc base64
    mode: Mode = "enhanced"


class GenerateResponse(BaseModel):
    job_id: str
    status: Status


class JobResult(BaseModel):
    job_id: str
    status: Status
    outcome: Optional[JobOutcome] = None
    error_message: Optional[str] = None


class VisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    image_data: Optional[str] = Field(None, alias="imageData")
    mime_type: str = Field("image/jpeg", alias="mimeType")


class VisionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    enhanced_prompt: Optional[str] = Field(None, alias="enhancedPrompt")
    ai_source: Optional[Source] = Field(None, alias="aiSource")
    error: Optional[str] = None
    fallback: Optional[bool] = None
