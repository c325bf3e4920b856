#!/usr/bin/env python
"""
Streamlit preview for the Document Image Preprocessing Pipeline.

Run with:
    streamlit run src/imageprep/app.py

Features:
- Upload one or more images (PNG, JPG, TIFF, BMP, WEBP)
- Tune Sauvola block size, k and R from the sidebar
- Per-file status while the batch runs in the background
- Side-by-side preview and PNG download of the binarized result
- Optional Tesseract text and structured rows
"""

import sys
from pathlib import Path

# Add src directory to path for imports when running as script
_src_dir = Path(__file__).parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import streamlit as st
import time
import logging

from imageprep.config import BinarizationConfig, PipelineConfig, BINARIZE_METHODS, check_tesseract_available

logger = logging.getLogger("imageprep")

STATUS_ICONS = {
    "pending": "⏳",
    "processing": "🔄",
    "success": "✅",
    "error": "❌",
    "cancelled": "⏭️",
}


# Page config must be first Streamlit command
st.set_page_config(
    page_title="Document Preprocessing",
    page_icon="🖨️",
    layout="wide",
    initial_sidebar_state="expanded"
)


def init_session_state():
    """Initialize session state variables."""
    if "batch" not in st.session_state:
        st.session_state.batch = None
    if "uploads" not in st.session_state:
        st.session_state.uploads = []


@st.cache_data(ttl=300)
def tesseract_available() -> bool:
    return check_tesseract_available()


def render_sidebar():
    """Render sidebar with settings."""
    st.sidebar.header("⚙️ Settings")

    st.sidebar.subheader("Binarization")

    block_size = st.sidebar.slider(
        "Block size",
        min_value=3,
        max_value=75,
        value=25,
        step=2,
        help="Side length of the Sauvola neighbourhood (odd)"
    )

    k = st.sidebar.slider(
        "k",
        min_value=0.05,
        max_value=1.0,
        value=0.3,
        step=0.05,
        help="Sensitivity; higher values push more pixels to black"
    )

    r = st.sidebar.number_input(
        "R",
        min_value=1.0,
        max_value=255.0,
        value=128.0,
        step=1.0,
        help="Expected dynamic range of the local standard deviation"
    )

    method = st.sidebar.selectbox(
        "Method",
        list(BINARIZE_METHODS),
        index=0,
        help="integral is O(W*H); naive scans every window and is much slower"
    )

    st.sidebar.subheader("Recognition")

    ocr_available = tesseract_available()
    run_ocr = st.sidebar.checkbox(
        "Run Tesseract",
        value=False,
        disabled=not ocr_available,
        help="Recognize text in the binarized image"
    )
    if not ocr_available:
        st.sidebar.caption("Tesseract not found, recognition disabled")

    language = st.sidebar.text_input("Language", value="eng", disabled=not run_ocr)

    config = PipelineConfig(
        binarization=BinarizationConfig(block_size=block_size, k=k, r=r),
        method=method
    )
    config.ocr.enabled = run_ocr
    config.ocr.tesseract_lang = language or "eng"
    return config


def run_batch(uploaded_files, config):
    """Process uploads on a background thread while showing per-file status."""
    from imageprep.utils.batch import BatchProcessor
    from imageprep.utils.ocr_text import TesseractEngine

    recognizer = None
    if config.ocr.enabled:
        recognizer = TesseractEngine(
            language=config.ocr.tesseract_lang,
            config=config.ocr.tesseract_config
        )

    # Uploads may share a file name; everything is keyed by position
    uploads = [(f.name, f.getvalue()) for f in uploaded_files]
    st.session_state.uploads = [data for _, data in uploads]

    names = [name for name, _ in uploads]
    statuses = {i: "pending" for i in range(len(uploads))}

    def on_status(item):
        names[item.index] = item.name
        statuses[item.index] = item.status

    processor = BatchProcessor(config, on_status=on_status, recognizer=recognizer)
    future = processor.submit(uploads)
    logger.info(f"Submitted {len(uploads)} upload(s), block_size={config.binarization.block_size}")

    placeholder = st.empty()
    progress = st.progress(0, text="Processing...")
    while not future.done():
        render_statuses(placeholder, names, statuses)
        finished = sum(1 for s in statuses.values() if s not in ("pending", "processing"))
        progress.progress(finished / max(1, len(statuses)), text=f"Processed {finished}/{len(statuses)}")
        time.sleep(0.2)

    result = future.result()
    render_statuses(placeholder, names, statuses)
    progress.empty()
    return result


def render_statuses(placeholder, names, statuses):
    lines = [f"{STATUS_ICONS.get(status, '')} **{names[i]}** - {status}" for i, status in statuses.items()]
    placeholder.markdown("  \n".join(lines))


def render_item(item, original_bytes):
    """Render one processed image."""
    from imageprep.utils.io import decode_image
    from imageprep.utils.images import get_image_stats
    from imageprep.utils.ocr_text import rows_to_table

    st.subheader(item.name)

    if item.status != "success":
        st.error(f"{item.error_type}: {item.error}")
        return

    result = item.result
    col1, col2 = st.columns(2)
    with col1:
        st.caption("Original")
        st.image(decode_image(original_bytes).as_array(), use_container_width=True)
    with col2:
        st.caption(f"Binarized ({result.width}x{result.height}, {result.elapsed:.2f}s)")
        st.image(result.image, use_container_width=True, clamp=True)

    stats = get_image_stats(result.image)
    st.caption(f"Foreground: {stats.foreground_ratio:.1%} | Stages: {' → '.join(result.transformations)}")

    st.download_button(
        "⬇️ Download PNG",
        data=result.encode(".png"),
        file_name=f"{Path(item.name).stem}_binary.png",
        mime="image/png",
        key=f"download_{item.index}"
    )

    if item.note:
        st.info(item.note)

    if item.ocr is not None:
        with st.expander(f"📝 Text (confidence: {item.ocr.confidence:.0%})", expanded=False):
            st.text(item.ocr.text or "No text found")
            table = rows_to_table(item.rows)
            if table:
                st.table([dict(zip(table[0], row)) for row in table[1:]])


def main():
    """Main application."""
    init_session_state()

    st.title("🖨️ Document Preprocessing")
    st.caption("Grayscale → blur → equalize → Sauvola → erode")

    config = render_sidebar()

    st.markdown("---")

    uploaded_files = st.file_uploader(
        "Upload document images",
        type=["png", "jpg", "jpeg", "tiff", "tif", "bmp", "webp"],
        accept_multiple_files=True,
        help="Images are processed one at a time; a failed file does not stop the others"
    )

    if uploaded_files:
        if st.button("🚀 Process", type="primary"):
            st.session_state.batch = run_batch(uploaded_files, config)
            batch = st.session_state.batch
            if batch.error_count:
                st.warning(f"{batch.success_count} succeeded, {batch.error_count} failed")
            else:
                st.success(f"✅ {batch.success_count} image(s) processed")

    batch = st.session_state.batch
    if batch:
        st.markdown("---")
        for item in batch.items:
            render_item(item, st.session_state.uploads[item.index])


if __name__ == "__main__":
    main()
