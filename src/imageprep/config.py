"""
Configuration and constants for the image preprocessing pipeline.

This module provides:
- Logging defaults
- Binarization parameters (Sauvola block size, k, R)
- OCR and batch settings
- Environment variable overrides
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional
import logging

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("imageprep")


# ============================================================================
# Processing Configuration
# ============================================================================

BINARIZE_METHODS = ("integral", "naive")


@dataclass(frozen=True)
class BinarizationConfig:
    """Sauvola thresholding parameters. Immutable once built."""
    block_size: int = 25  # neighbourhood side length, must be odd
    k: float = 0.3        # sensitivity constant
    r: float = 128.0      # expected dynamic range of the local std deviation

    def __post_init__(self):
        if isinstance(self.block_size, bool) or not isinstance(self.block_size, int):
            raise ValueError(f"block_size must be an integer, got {self.block_size!r}")
        if self.block_size < 1 or self.block_size % 2 == 0:
            raise ValueError(f"block_size must be a positive odd integer, got {self.block_size}")
        if self.r <= 0:
            raise ValueError(f"r must be positive, got {self.r}")

    @property
    def radius(self) -> int:
        return self.block_size // 2


@dataclass
class OCRConfig:
    """Recognition collaborator configuration."""
    enabled: bool = False
    tesseract_lang: str = "eng"
    # PSM 3 = automatic page segmentation, OEM 1 = LSTM only
    tesseract_config: str = "--oem 1 --psm 3 -c preserve_interword_spaces=1"
    structure_text: bool = True


@dataclass
class BatchConfig:
    """Batch execution configuration."""
    max_workers: int = 1
    image_extensions: tuple = ('.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp')


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    binarization: BinarizationConfig = field(default_factory=BinarizationConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    # Global settings
    method: str = "integral"  # integral or naive
    output_format: str = ".png"
    debug_mode: bool = False
    keep_intermediates: bool = False

    def __post_init__(self):
        if self.method not in BINARIZE_METHODS:
            raise ValueError(f"Unknown binarization method: {self.method}")


# ============================================================================
# Default Configuration Instance
# ============================================================================

def _env_number(name: str, cast):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    try:
        return cast(value)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {value!r}")


def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    overrides = {}
    block_size = _env_number("IMAGEPREP_BLOCK_SIZE", int)
    if block_size is not None:
        overrides["block_size"] = block_size
    k = _env_number("IMAGEPREP_K", float)
    if k is not None:
        overrides["k"] = k
    r = _env_number("IMAGEPREP_R", float)
    if r is not None:
        overrides["r"] = r
    if overrides:
        config.binarization = replace(config.binarization, **overrides)

    method = os.environ.get("IMAGEPREP_METHOD", "").lower()
    if method:
        if method not in BINARIZE_METHODS:
            raise ValueError(f"Invalid value for IMAGEPREP_METHOD: {method!r}")
        config.method = method

    workers = _env_number("IMAGEPREP_WORKERS", int)
    if workers is not None:
        config.batch.max_workers = max(1, workers)

    if os.environ.get("IMAGEPREP_DEBUG", "").lower() == "true":
        config.debug_mode = True
        config.keep_intermediates = True

    if os.environ.get("IMAGEPREP_OCR", "").lower() == "true":
        config.ocr.enabled = True

    lang: Optional[str] = os.environ.get("IMAGEPREP_OCR_LANG")
    if lang:
        config.ocr.tesseract_lang = lang

    logger.debug(
        f"Configuration: block_size={config.binarization.block_size}, k={config.binarization.k}, "
        f"r={config.binarization.r}, method={config.method}, workers={config.batch.max_workers}, "
        f"debug={config.debug_mode}"
    )
    return config


# ============================================================================
# Utility Functions
# ============================================================================

def check_tesseract_available() -> bool:
    """Check if the tesseract binary is reachable through pytesseract."""
    try:
        import pytesseract
        pytesseract.get_tesseract_version()
        return True
    except Exception:
        return False
