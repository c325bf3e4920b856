"""
Batch execution of the preprocessing pipeline.

Images are processed independently: each item moves
pending -> processing -> success | error, and a failed image never stops
the rest of the batch. Runs share no mutable buffers, so a batch can fan out
over worker threads, and the whole batch can run on a background thread
while the caller stays responsive.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np

from ..config import PipelineConfig
from .images import RawImage, PreprocessingResult, preprocess_image
from .io import decode_image, load_image
from .ocr_text import OCRResult, parse_text_to_rows

logger = logging.getLogger(__name__)


class ItemStatus:
    """Per-image status identifiers."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class BatchItem:
    """One image in a batch and its outcome."""
    index: int
    name: str
    source: Any = field(repr=False)
    status: str = ItemStatus.PENDING
    result: Optional[PreprocessingResult] = field(default=None, repr=False)
    ocr: Optional[OCRResult] = field(default=None, repr=False)
    rows: List[Dict[str, Any]] = field(default_factory=list, repr=False)
    error: Optional[str] = None
    error_type: Optional[str] = None
    note: Optional[str] = None  # recognition outcome worth showing, e.g. "No text found"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "status": self.status,
            "error": self.error,
            "error_type": self.error_type,
            "note": self.note,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.ocr is not None:
            data["ocr"] = self.ocr.to_dict()
            data["rows"] = self.rows
        return data


@dataclass
class BatchResult:
    """Aggregated outcome of a batch, items in submission order."""
    items: List[BatchItem] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.SUCCESS)

    @property
    def error_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.ERROR)

    @property
    def cancelled_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.CANCELLED)

    @property
    def succeeded(self) -> List[BatchItem]:
        return [item for item in self.items if item.status == ItemStatus.SUCCESS]

    @property
    def failed(self) -> List[BatchItem]:
        return [item for item in self.items if item.status == ItemStatus.ERROR]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.items),
            "success_count": self.success_count,
            "error_count": self.error_count,
            "cancelled_count": self.cancelled_count,
            "elapsed": round(self.elapsed, 4),
            "items": [item.to_dict() for item in self.items],
        }


# ============================================================================
# Single Image
# ============================================================================

def resolve_source(source: Any) -> RawImage:
    """
    Turn a batch source into a RawImage.

    Accepts a RawImage, encoded bytes, a file path, or an OpenCV-style
    (BGR) numpy array.
    """
    if isinstance(source, RawImage):
        return source
    if isinstance(source, (bytes, bytearray, memoryview)):
        return decode_image(source)
    if isinstance(source, (str, Path)):
        return load_image(source)
    if isinstance(source, np.ndarray):
        return RawImage.from_array(source, order="bgr")
    raise TypeError(f"Unsupported image source: {type(source).__name__}")


def unique_name(name: str, taken: set) -> str:
    """Return name, or 'stem (n).ext' with the first n >= 2 not in taken."""
    if name not in taken:
        return name
    path = Path(name)
    n = 2
    while f"{path.stem} ({n}){path.suffix}" in taken:
        n += 1
    return f"{path.stem} ({n}){path.suffix}"


def _recognition_note(ocr: OCRResult, rows: List[Dict[str, Any]], structured: bool) -> Optional[str]:
    if ocr.error:
        return f"Recognition failed: {ocr.error}"
    if ocr.is_empty:
        return "No text found"
    if structured and not rows:
        return "Could not parse text"
    return None


def process_image(source: Any, config: Optional[PipelineConfig] = None) -> PreprocessingResult:
    """Decode one source if needed and run the full pipeline on it."""
    config = config or PipelineConfig()
    return preprocess_image(
        resolve_source(source),
        config.binarization,
        method=config.method,
        keep_intermediates=config.keep_intermediates
    )


# ============================================================================
# Batch Processor
# ============================================================================

class BatchProcessor:
    """
    Runs the pipeline over many images with continue-on-error semantics.

    Args:
        config: Pipeline configuration shared read-only by every run
        max_workers: Worker threads; 1 processes images strictly in order
        on_status: Called with the BatchItem after every status change.
            With max_workers > 1 it is called from worker threads.
        recognizer: Optional object with recognize(buffer) -> OCRResult,
            run on each successful image
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        max_workers: Optional[int] = None,
        on_status: Optional[Callable[[BatchItem], None]] = None,
        recognizer: Any = None
    ):
        self.config = config or PipelineConfig()
        self.max_workers = max(1, max_workers or self.config.batch.max_workers)
        self.on_status = on_status
        self.recognizer = recognizer
        self._cancel = threading.Event()

    def cancel(self):
        """Skip every image that has not started yet."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def process(self, items: Iterable[Any]) -> BatchResult:
        """
        Process a batch and block until every image is done.

        Args:
            items: (name, source) pairs or bare sources

        Returns:
            BatchResult with per-image status and counts
        """
        self._cancel.clear()
        return self._process(items)

    def submit(self, items: Iterable[Any]) -> "Future[BatchResult]":
        """Process a batch on a background thread and return a Future."""
        self._cancel.clear()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="imageprep-batch")
        try:
            return executor.submit(self._process, list(items))
        finally:
            executor.shutdown(wait=False)

    def _process(self, items: Iterable[Any]) -> BatchResult:
        start = time.perf_counter()
        batch = self._build_items(items)
        for item in batch:
            self._notify(item)

        logger.info(f"Processing batch of {len(batch)} image(s) with {self.max_workers} worker(s)")

        if self.max_workers == 1:
            for item in batch:
                self._run_item(item)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers,
                                    thread_name_prefix="imageprep-worker") as pool:
                for future in [pool.submit(self._run_item, item) for item in batch]:
                    future.result()

        result = BatchResult(items=batch, elapsed=time.perf_counter() - start)
        logger.info(
            f"Batch complete: {result.success_count} succeeded, {result.error_count} failed"
            + (f", {result.cancelled_count} cancelled" if result.cancelled_count else "")
            + f" ({result.elapsed:.2f}s)"
        )
        return result

    def _build_items(self, items: Iterable[Any]) -> List[BatchItem]:
        batch = []
        seen = set()
        for index, entry in enumerate(items):
            if isinstance(entry, tuple) and len(entry) == 2 and isinstance(entry[0], str):
                name, source = entry
            else:
                source = entry
                if isinstance(source, (str, Path)):
                    name = Path(source).name
                else:
                    name = f"image_{index + 1}"
            name = unique_name(name, seen)
            seen.add(name)
            batch.append(BatchItem(index=index, name=name, source=source))
        return batch

    def _run_item(self, item: BatchItem):
        if self._cancel.is_set():
            self._set_status(item, ItemStatus.CANCELLED)
            return

        self._set_status(item, ItemStatus.PROCESSING)
        try:
            item.result = process_image(item.source, self.config)
            if self.recognizer is not None:
                item.ocr = self.recognizer.recognize(item.result.image)
                if self.config.ocr.structure_text:
                    item.rows = parse_text_to_rows(item.ocr.text)
                item.note = _recognition_note(item.ocr, item.rows, self.config.ocr.structure_text)
                if item.note:
                    logger.info(f"{item.name}: {item.note}")
        except Exception as e:
            item.error = str(e)
            item.error_type = type(e).__name__
            logger.warning(f"Failed to process {item.name}: {item.error_type}: {e}")
            self._set_status(item, ItemStatus.ERROR)
            return

        self._set_status(item, ItemStatus.SUCCESS)

    def _set_status(self, item: BatchItem, status: str):
        item.status = status
        self._notify(item)

    def _notify(self, item: BatchItem):
        if self.on_status is None:
            return
        try:
            self.on_status(item)
        except Exception:
            # A broken progress display must not stop the batch
            logger.exception(f"Status callback failed for {item.name} ({item.status})")
