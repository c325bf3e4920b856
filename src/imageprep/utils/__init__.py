"""
Utility modules for the image preprocessing pipeline.
"""

from .images import (
    RawImage, PreprocessingResult, ImagePrepError, DimensionError,
    to_grayscale, blur, equalize_histogram, binarize_sauvola, erode,
    integral_image, preprocess_image, get_image_stats, create_comparison_image,
)
from .io import (
    DecodeError, decode_image, load_image, list_image_files, encode_image,
    save_image, save_json, load_json, ensure_dir, detect_input_type,
)
from .batch import BatchProcessor, BatchResult, BatchItem, ItemStatus, process_image
from .ocr_text import TesseractEngine, OCRResult, parse_text_to_rows, rows_to_table

__all__ = [
    # Images
    "RawImage", "PreprocessingResult", "ImagePrepError", "DimensionError",
    "to_grayscale", "blur", "equalize_histogram", "binarize_sauvola", "erode",
    "integral_image", "preprocess_image", "get_image_stats", "create_comparison_image",
    # IO
    "DecodeError", "decode_image", "load_image", "list_image_files", "encode_image",
    "save_image", "save_json", "load_json", "ensure_dir", "detect_input_type",
    # Batch
    "BatchProcessor", "BatchResult", "BatchItem", "ItemStatus", "process_image",
    # OCR
    "TesseractEngine", "OCRResult", "parse_text_to_rows", "rows_to_table",
]
