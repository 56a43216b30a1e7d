import datetime
import time

import requests
import streamlit as st

from client import (
    BACKEND_URL,
    POLL_INTERVAL,
    call_generate,
    encode_image,
    fetch_result,
    is_terminal,
    poll_expired,
    resolve_cancel,
    source_label,
    store_result,
    take_result,
    validate_prompt,
)

# ==========================
# Cấu hình
# ==========================
st.set_page_config(
    page_title="AI Video Generator",
    page_icon="🎬",
    layout="wide"
)

# ==========================
# State
# ==========================
if "page" not in st.session_state:
    st.session_state["page"] = "create"

if "job_id" not in st.session_state:
    st.session_state["job_id"] = None

if "last_error" not in st.session_state:
    st.session_state["last_error"] = None

if "job_source" not in st.session_state:
    st.session_state["job_source"] = None


def go(page: str) -> None:
    st.session_state["page"] = page
    st.rerun()


def start_generation(prompt: str, images, mode: str) -> None:
    """Gửi job rồi chạy lại script: trang xử lý sẽ poll từng bước."""
    st.session_state["last_error"] = None
    # Giữ lại request: widget của trang tạo bị xoá state khi chuyển trang
    st.session_state["last_request"] = (prompt, images, mode)
    try:
        job_id = call_generate(prompt, images, mode)
    except requests.RequestException as e:
        st.session_state["last_error"] = f"Backend error: {e}"
        return

    st.session_state["job_id"] = job_id
    st.session_state["job_started"] = time.time()
    if mode == "basic":
        st.session_state["job_source"] = None
    else:
        st.session_state["job_source"] = "image-vision" if images else "text-only"
    st.rerun()


def finish_job(result) -> None:
    """Job đã kết thúc (hoặc hết giờ): chuyển trang tương ứng."""
    st.session_state["job_id"] = None
    status = result.get("status") if result else None

    if result is None:
        st.session_state["last_error"] = "Không tìm thấy job trên server."
    elif status == "done" and result.get("outcome"):
        store_result(st.session_state, result["outcome"])
        go("result")
    elif status == "cancelled":
        st.session_state["last_error"] = "Job đã bị huỷ."
    elif status == "error":
        st.session_state["last_error"] = result.get("error_message") or "Lỗi không xác định"
    elif status == "timeout":
        st.session_state["last_error"] = "⏱️ Hết thời gian chờ. Vui lòng thử lại!"
    else:
        st.session_state["last_error"] = "⚠️ Phản hồi không hợp lệ từ server"
    st.rerun()


# ==========================
# Trang đang xử lý
# ==========================
def render_processing() -> None:
    job_id = st.session_state["job_id"]

    st.title("🎬 AI đang tạo video của bạn...")
    st.info(f"🎯 AI: **{source_label(st.session_state['job_source'])}**")

    if st.button("⏹️ Huỷ job"):
        try:
            result = resolve_cancel(job_id)
        except requests.RequestException as e:
            st.session_state["job_id"] = None
            st.session_state["last_error"] = f"Không huỷ được job: {e}"
            st.rerun()
        finish_job(result)

    # Mỗi lần chạy script chỉ hỏi backend 1 lần, để nút huỷ luôn bấm được
    try:
        result = fetch_result(job_id)
    except requests.RequestException as e:
        st.session_state["job_id"] = None
        st.session_state["last_error"] = f"Backend error: {e}"
        st.rerun()

    if is_terminal(result):
        finish_job(result)
    if poll_expired(st.session_state["job_started"]):
        finish_job({"status": "timeout"})

    st.caption(f"Trạng thái: {result.get('status')}")
    time.sleep(POLL_INTERVAL)
    st.rerun()



# ==========================
# Sidebar
# ==========================
with st.sidebar:
    st.header("⚙️ Cài đặt")

    mode_option = st.radio(
        "🎯 Chế độ",
        ["✨ Enhanced (AI tối ưu prompt)", "🎬 Basic"],
        help="Enhanced: prompt được AI viết lại trước khi tạo video\nBasic: dùng nguyên prompt"
    )
    mode = "enhanced" if mode_option.startswith("✨") else "basic"

    st.markdown("---")
    st.markdown("### 💡 Ví dụ")
    st.code("A dog runs on a beach at sunset")
    st.code("A city skyline transitioning from day to night")

    st.markdown("---")
    st.write("🔗 Backend:", BACKEND_URL)


# ==========================
# Trang kết quả
# ==========================
def render_result() -> None:
    outcome = take_result(st.session_state)
    if not outcome:
        go("create")
        return

    st.title("🎬 Video của bạn")

    details = outcome.get("videoDetails") or {}
    prompt_data = outcome.get("promptData") or {}

    col1, col2 = st.columns([2, 1])
    with col1:
        if outcome.get("videoUrl"):
            st.video(outcome["videoUrl"])
            st.markdown(f"🔗 [Tải video]({outcome['videoUrl']})")
    with col2:
        st.markdown(f"**AI:** {source_label(prompt_data.get('aiSource'))}")
        st.markdown(f"**Model:** `{prompt_data.get('model', '-')}`")
        st.markdown(f"**Thời lượng:** {details.get('duration', '-')}")
        st.markdown(f"**Độ phân giải:** {details.get('resolution', '1920x1080')}")
        st.markdown(f"**Định dạng:** {details.get('format', '-')}")
        st.markdown(f"**Dung lượng:** {details.get('fileSize', '-')}")
        st.markdown(f"**Xử lý:** {prompt_data.get('processingTime', 0) / 1000:.1f}s")
        st.caption(details.get("createdAt", datetime.datetime.now().isoformat()))

    st.markdown("---")
    st.subheader("📝 Prompt gốc")
    st.write(prompt_data.get("originalPrompt", ""))
    st.subheader("✨ Prompt đã được AI tối ưu")
    st.write(prompt_data.get("enhancedPrompt", ""))

    if st.button("🔁 Tạo video khác", use_container_width=True):
        go("create")


# ==========================
# Trang tạo video
# ==========================
def render_create() -> None:
    st.title("🎬 AI Video Generator")
    st.caption("Mô tả video, thêm ảnh tham khảo (tuỳ chọn) và để AI lo phần còn lại")

    prompt = st.text_area("💭 Mô tả video", key="prompt", height=120)
    uploads = st.file_uploader(
        "🖼️ Ảnh tham khảo",
        type=["png", "jpg", "jpeg", "webp"],
        accept_multiple_files=True,
    )

    images, previews = [], []
    for f in uploads or []:
        raw = f.getvalue()
        try:
            images.append(encode_image(raw))
            previews.append(raw)
        except ValueError as e:
            st.warning(f"Bỏ qua {f.name}: {e}")

    if images:
        st.image(previews, width=160)
        if len(images) > 1:
            st.caption("Chỉ ảnh đầu tiên được dùng để phân tích.")

    if st.session_state["last_error"]:
        st.error(f"❌ Lỗi: {st.session_state['last_error']}")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("🔁 Thử lại", use_container_width=True):
                last_prompt, last_images, last_mode = st.session_state.get(
                    "last_request", (prompt.strip(), images, mode)
                )
                start_generation(last_prompt, last_images, last_mode)
                st.rerun()
        with col2:
            if st.button("✖️ Bỏ qua", use_container_width=True):
                st.session_state["last_error"] = None
                st.rerun()

    if st.button("🚀 Tạo video", type="primary", use_container_width=True):
        error = validate_prompt(prompt)
        if error:
            st.error(error)
            return
        start_generation(prompt.strip(), images, mode)
        st.rerun()


if st.session_state["job_id"]:
    render_processing()
elif st.session_state["page"] == "result":
    render_result()
else:
    render_create()
