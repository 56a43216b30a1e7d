import base64
import os
import time
from io import BytesIO
from typing import Any, Dict, List, MutableMapping, Optional

import requests
from PIL import Image, UnidentifiedImageError

BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

RESULT_KEY = "last_generation_result"
MIN_PROMPT_LENGTH = 10

TERMINAL_STATUSES = ("done", "error", "cancelled")
POLL_INTERVAL = 1.0  # giây giữa 2 lần chạy lại script
POLL_TIMEOUT = 120.0


def validate_prompt(prompt: str) -> Optional[str]:
    """Trả về thông báo lỗi, hoặc None nếu prompt hợp lệ."""
    description = (prompt or "").strip()
    if not description:
        return "Please enter a video description."
    if len(description) < MIN_PROMPT_LENGTH:
        return f"Description should be at least {MIN_PROMPT_LENGTH} characters long."
    return None


def encode_image(raw: bytes) -> str:
    """
    Kiểm tra bytes có phải ảnh không (Pillow) rồi đổi sang data URL.
    Ném ValueError nếu không đọc được ảnh.
    """
    try:
        with Image.open(BytesIO(raw)) as img:
            img_format = (img.format or "JPEG").lower()
            img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Not a valid image: {e}") from e

    if img_format == "jpg":
        img_format = "jpeg"
    b64 = base64.b64encode(raw).decode("ascii")
    return f"data:image/{img_format};base64,{b64}"


def call_generate(prompt: str, images: List[str], mode: str = "enhanced") -> Optional[str]:
    """Gọi POST /generate -> trả về job_id"""
    payload = {"prompt": prompt, "images": images, "mode": mode}
    resp = requests.post(f"{BACKEND_URL}/generate", json=payload, timeout=30)
    resp.raise_for_status()
    data = resp.json()
    return data.get("job_id")


def fetch_result(job_id: str) -> Optional[Dict[str, Any]]:
    """GET /result/{job_id} đúng 1 lần; None nếu job không tồn tại."""
    resp = requests.get(f"{BACKEND_URL}/result/{job_id}", timeout=10)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


def is_terminal(result: Optional[Dict[str, Any]]) -> bool:
    return result is None or result.get("status") in TERMINAL_STATUSES


def poll_expired(started_at: float, timeout_sec: float = POLL_TIMEOUT, now: Optional[float] = None) -> bool:
    return (time.time() if now is None else now) - started_at > timeout_sec


def cancel_job(job_id: str) -> Dict[str, Any]:
    resp = requests.post(f"{BACKEND_URL}/cancel/{job_id}", timeout=10)
    resp.raise_for_status()
    return resp.json()


def resolve_cancel(job_id: str) -> Optional[Dict[str, Any]]:
    """
    Huỷ job rồi trả về trạng thái thật của nó. Nếu job đã xong/lỗi
    trước khi lệnh huỷ tới nơi thì backend giữ nguyên trạng thái đó:
    lấy luôn kết quả đầy đủ để không bỏ mất video.
    """
    data = cancel_job(job_id)
    if data.get("status") in ("done", "error"):
        return fetch_result(job_id)
    return data


def store_result(session: MutableMapping[str, Any], outcome: Dict[str, Any]) -> None:
    session[RESULT_KEY] = outcome


def take_result(session: MutableMapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Đọc kết quả đúng 1 lần: đọc xong thì xoá khỏi session."""
    return session.pop(RESULT_KEY, None)


def source_label(source: Optional[str]) -> str:
    return {
        "image-vision": "🖼️ Image + Text (Vision AI)",
        "text-only": "✍️ Text only (OpenAI)",
        "text-only-fallback": "↩️ Text only (fallback after vision failed)",
    }.get(source or "", "🎬 Basic generation")
