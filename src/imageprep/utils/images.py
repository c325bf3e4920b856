"""
Image preprocessing pipeline for text recognition.

Turns a decoded RGBA document image into a strictly black/white raster:
1. Grayscale conversion (perceptual luminance)
2. Noise reduction (3x3 Gaussian blur)
3. Contrast normalization (histogram equalization)
4. Adaptive binarization (Sauvola)
5. Morphological cleanup (3x3 erosion)

Every stage takes a uint8 buffer of shape (H, W) and returns a new buffer of
the same shape. Inputs are never written to.
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from ..config import BinarizationConfig, BINARIZE_METHODS

logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================

class ImagePrepError(Exception):
    """Base class for failures that abort a single image's pipeline run."""


class DimensionError(ImagePrepError, ValueError):
    """Zero width/height, or a pixel buffer whose length does not match."""


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True, eq=False)
class RawImage:
    """
    Decoded input image: width, height and a flat RGBA byte buffer.

    The buffer is copied on construction and marked read-only, so the
    pipeline can never modify caller-owned memory.
    """
    width: int
    height: int
    rgba: np.ndarray = field(repr=False)

    def __post_init__(self):
        width, height = int(self.width), int(self.height)
        if width <= 0 or height <= 0:
            raise DimensionError(f"Image dimensions must be positive, got {width}x{height}")

        if isinstance(self.rgba, (bytes, bytearray, memoryview)):
            buf = np.frombuffer(self.rgba, dtype=np.uint8)
        else:
            buf = np.asarray(self.rgba)
            if buf.dtype != np.uint8:
                raise TypeError(f"RGBA buffer must be uint8, got {buf.dtype}")

        expected = width * height * 4
        if buf.size != expected:
            raise DimensionError(
                f"RGBA buffer has {buf.size} bytes, expected {expected} for {width}x{height}"
            )

        buf = np.array(buf.reshape(-1), dtype=np.uint8, copy=True)
        buf.setflags(write=False)
        object.__setattr__(self, "width", width)
        object.__setattr__(self, "height", height)
        object.__setattr__(self, "rgba", buf)

    @classmethod
    def from_array(cls, image: np.ndarray, order: str = "bgr") -> "RawImage":
        """
        Build a RawImage from an array in OpenCV layout.

        Args:
            image: (H, W), (H, W, 1), (H, W, 3) or (H, W, 4) uint8 array
            order: Channel order of colour input, 'bgr' (OpenCV) or 'rgb'

        Returns:
            RawImage with an opaque alpha channel unless the input had one
        """
        arr = np.asarray(image)
        if arr.ndim == 3 and arr.shape[2] == 1:
            arr = arr[:, :, 0]
        if arr.ndim not in (2, 3) or arr.size == 0:
            raise DimensionError(f"Unexpected image shape: {arr.shape}")
        if arr.dtype != np.uint8:
            raise TypeError(f"Image array must be uint8, got {arr.dtype}")

        h, w = arr.shape[:2]
        rgba = np.empty((h, w, 4), dtype=np.uint8)
        rgba[:, :, 3] = 255

        if arr.ndim == 2:
            rgba[:, :, 0] = arr
            rgba[:, :, 1] = arr
            rgba[:, :, 2] = arr
        elif arr.shape[2] in (3, 4):
            if order == "bgr":
                rgba[:, :, :3] = arr[:, :, 2::-1]
            elif order == "rgb":
                rgba[:, :, :3] = arr[:, :, :3]
            else:
                raise ValueError(f"Unknown channel order: {order}")
            if arr.shape[2] == 4:
                rgba[:, :, 3] = arr[:, :, 3]
        else:
            raise DimensionError(f"Unexpected image shape: {arr.shape}")

        return cls(width=w, height=h, rgba=rgba)

    def as_array(self) -> np.ndarray:
        """Read-only (H, W, 4) view of the pixel buffer."""
        return self.rgba.reshape(self.height, self.width, 4)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)


@dataclass
class PreprocessingResult:
    """Result of a full pipeline run."""
    image: np.ndarray
    width: int
    height: int
    config: BinarizationConfig
    method: str = "integral"
    transformations: List[str] = None
    stages: Dict[str, np.ndarray] = None
    elapsed: float = 0.0

    def __post_init__(self):
        if self.transformations is None:
            self.transformations = []
        if self.stages is None:
            self.stages = {}

    def encode(self, ext: str = ".png") -> bytes:
        """Encode the final binary image into a standard raster container."""
        from .io import encode_image
        return encode_image(self.image, ext)

    def to_data_url(self) -> str:
        """PNG data URL for display surfaces."""
        encoded = base64.b64encode(self.encode(".png")).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "width": self.width,
            "height": self.height,
            "method": self.method,
            "block_size": self.config.block_size,
            "k": self.config.k,
            "r": self.config.r,
            "transformations": self.transformations,
            "elapsed": round(self.elapsed, 4),
        }


@dataclass
class ImageStats:
    """Statistics about an image."""
    height: int
    width: int
    channels: int
    mean_intensity: float
    std_intensity: float
    is_binary: bool = False
    is_uniform: bool = False
    foreground_ratio: Optional[float] = None  # share of 0-valued pixels when binary


# ============================================================================
# Core Preprocessing Functions
# ============================================================================

GAUSSIAN_KERNEL = np.array([
    [1, 2, 1],
    [2, 4, 2],
    [1, 2, 1],
], dtype=np.int32)
GAUSSIAN_KERNEL_SUM = 16

LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def _check_channel(buffer: np.ndarray) -> np.ndarray:
    arr = np.asarray(buffer)
    if arr.ndim != 2 or arr.size == 0:
        raise DimensionError(f"Expected a non-empty single-channel buffer, got shape {arr.shape}")
    if arr.dtype != np.uint8:
        raise TypeError(f"Expected a uint8 buffer, got {arr.dtype}")
    return arr


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def to_grayscale(image: Union[RawImage, np.ndarray]) -> np.ndarray:
    """
    Convert an RGBA image to single-channel luminance.

    luminance = round(0.299 R + 0.587 G + 0.114 B); alpha is ignored.
    A buffer that is already single-channel is returned as a copy.

    Args:
        image: RawImage, or an (H, W) uint8 buffer

    Returns:
        (H, W) uint8 grayscale buffer
    """
    if isinstance(image, np.ndarray) and image.ndim == 2:
        return _check_channel(image).copy()
    if not isinstance(image, RawImage):
        raise TypeError(f"Expected RawImage or 2-D buffer, got {type(image).__name__}")

    pixels = image.as_array()
    wr, wg, wb = LUMA_WEIGHTS
    luminance = (
        wr * pixels[:, :, 0].astype(np.float64)
        + wg * pixels[:, :, 1].astype(np.float64)
        + wb * pixels[:, :, 2].astype(np.float64)
    )
    gray = np.clip(_round_half_up(luminance), 0, 255).astype(np.uint8)

    logger.debug(f"Converted {image.width}x{image.height} RGBA image to grayscale")
    return gray


def blur(gray: np.ndarray) -> np.ndarray:
    """
    Suppress grain with a 3x3 Gaussian kernel normalized by 16.

    Only interior pixels are filtered; the one-pixel border is copied
    through unchanged (no edge padding).

    Args:
        gray: (H, W) uint8 buffer

    Returns:
        Blurred (H, W) uint8 buffer
    """
    src = _check_channel(gray)
    out = src.copy()
    h, w = src.shape

    if h < 3 or w < 3:
        logger.debug(f"Blur skipped, {w}x{h} image has no interior pixels")
        return out

    wide = src.astype(np.int32)
    acc = np.zeros((h - 2, w - 2), dtype=np.int32)
    for dy in range(3):
        for dx in range(3):
            acc += GAUSSIAN_KERNEL[dy, dx] * wide[dy:dy + h - 2, dx:dx + w - 2]

    out[1:-1, 1:-1] = ((acc + GAUSSIAN_KERNEL_SUM // 2) // GAUSSIAN_KERNEL_SUM).astype(np.uint8)

    logger.debug("Applied 3x3 Gaussian blur")
    return out


def equalize_histogram(gray: np.ndarray) -> np.ndarray:
    """
    Stretch contrast to the full [0, 255] range by histogram equalization.

    A uniform image (every pixel the same value) has no range to stretch;
    the lookup table would divide by zero, so the input is returned as a copy.

    Args:
        gray: (H, W) uint8 buffer

    Returns:
        Equalized (H, W) uint8 buffer
    """
    src = _check_channel(gray)
    total = src.size

    hist = np.bincount(src.ravel(), minlength=256)
    cdf = np.cumsum(hist)
    cdf_min = int(cdf[np.flatnonzero(cdf)[0]])

    if total == cdf_min:
        logger.debug("Uniform image, histogram equalization skipped")
        return src.copy()

    lut = _round_half_up((cdf - cdf_min) / (total - cdf_min) * 255.0)
    lut = np.clip(lut, 0, 255).astype(np.uint8)

    logger.debug(f"Equalized histogram (cdf_min={cdf_min}, total={total})")
    return lut[src]


def integral_image(buffer: np.ndarray) -> np.ndarray:
    """
    Summed-area table with a leading row and column of zeros.

    sat[y, x] is the sum of buffer[:y, :x], so any rectangle sum costs four
    lookups. Accumulates in int64.
    """
    arr = np.asarray(buffer, dtype=np.int64)
    sat = np.zeros((arr.shape[0] + 1, arr.shape[1] + 1), dtype=np.int64)
    sat[1:, 1:] = arr.cumsum(axis=0).cumsum(axis=1)
    return sat


def _window_sums_integral(padded: np.ndarray, block_size: int, h: int, w: int):
    b = block_size
    sat = integral_image(padded)
    sat_sq = integral_image(padded * padded)

    def window(table):
        return (
            table[b:b + h, b:b + w]
            - table[0:h, b:b + w]
            - table[b:b + h, 0:w]
            + table[0:h, 0:w]
        )

    return window(sat), window(sat_sq)


def _window_sums_naive(padded: np.ndarray, block_size: int, h: int, w: int):
    sums = np.zeros((h, w), dtype=np.int64)
    sq_sums = np.zeros((h, w), dtype=np.int64)
    for dy in range(block_size):
        for dx in range(block_size):
            window = padded[dy:dy + h, dx:dx + w]
            sums += window
            sq_sums += window * window
    return sums, sq_sums


def binarize_sauvola(
    gray: np.ndarray,
    config: Optional[BinarizationConfig] = None,
    method: str = "integral"
) -> np.ndarray:
    """
    Binarize with Sauvola's local threshold.

    For each pixel the block_size x block_size neighbourhood is read with
    replicate-edge addressing, so border pixels are processed like any other.
    T = m * (1 + k * (s / R - 1)); pixels strictly above T become 255,
    everything else (including src == T) becomes 0.

    Args:
        gray: (H, W) uint8 buffer, normally the equalized image
        config: Block size, k and R (defaults: 25, 0.3, 128)
        method: 'integral' (summed-area tables, O(W*H)) or
            'naive' (direct window scan, O(W*H*block_size^2))

    Returns:
        (H, W) uint8 buffer containing only 0 and 255
    """
    src = _check_channel(gray)
    config = config or BinarizationConfig()
    if method not in BINARIZE_METHODS:
        raise ValueError(f"Unknown binarization method: {method}")

    h, w = src.shape
    b = config.block_size
    padded = np.pad(src, config.radius, mode="edge").astype(np.int64)

    if method == "integral":
        sums, sq_sums = _window_sums_integral(padded, b, h, w)
    else:
        sums, sq_sums = _window_sums_naive(padded, b, h, w)

    count = b * b
    mean = sums / count
    variance = sq_sums / count - mean * mean
    std = np.sqrt(np.maximum(variance, 0.0))
    threshold = mean * (1.0 + config.k * (std / config.r - 1.0))

    binary = np.where(src > threshold, 255, 0).astype(np.uint8)

    logger.debug(
        f"Applied Sauvola binarization ({method}, block_size={b}, k={config.k}, r={config.r})"
    )
    return binary


def erode(binary: np.ndarray) -> np.ndarray:
    """
    3x3 minimum filter over interior pixels.

    Removes bright specks not supported by their full neighbourhood. Border
    pixels are copied through unchanged, as in blur().

    Args:
        binary: (H, W) uint8 buffer of 0/255 values

    Returns:
        Eroded (H, W) uint8 buffer
    """
    src = _check_channel(binary)
    out = src.copy()
    h, w = src.shape

    if h < 3 or w < 3:
        logger.debug(f"Erosion skipped, {w}x{h} image has no interior pixels")
        return out

    acc = src[0:h - 2, 0:w - 2].copy()
    for dy in range(3):
        for dx in range(3):
            np.minimum(acc, src[dy:dy + h - 2, dx:dx + w - 2], out=acc)

    out[1:-1, 1:-1] = acc

    logger.debug("Applied 3x3 erosion")
    return out


# ============================================================================
# Main Preprocessing Pipeline
# ============================================================================

def preprocess_image(
    image: RawImage,
    config: Optional[BinarizationConfig] = None,
    method: str = "integral",
    keep_intermediates: bool = False
) -> PreprocessingResult:
    """
    Run grayscale -> blur -> equalize -> Sauvola -> erode on one image.

    Args:
        image: Decoded input image
        config: Binarization parameters (defaults used when None)
        method: Sauvola implementation, 'integral' or 'naive'
        keep_intermediates: Keep every stage buffer on the result (debugging)

    Returns:
        PreprocessingResult holding the final binary image
    """
    if not isinstance(image, RawImage):
        raise TypeError(f"Expected RawImage, got {type(image).__name__}")
    config = config or BinarizationConfig()

    start = time.perf_counter()
    transformations = []
    stages = {}

    gray = to_grayscale(image)
    transformations.append("grayscale")

    blurred = blur(gray)
    transformations.append("blur")

    equalized = equalize_histogram(blurred)
    transformations.append("equalize")

    binary = binarize_sauvola(equalized, config, method=method)
    transformations.append(f"sauvola_{method}")

    eroded = erode(binary)
    transformations.append("erode")

    if keep_intermediates:
        stages = {
            "grayscale": gray,
            "blur": blurred,
            "equalize": equalized,
            "binarize": binary,
            "erode": eroded,
        }

    elapsed = time.perf_counter() - start
    logger.info(
        f"Preprocessing complete: {' -> '.join(transformations)} "
        f"({image.width}x{image.height}, {elapsed:.3f}s)"
    )

    return PreprocessingResult(
        image=eroded,
        width=image.width,
        height=image.height,
        config=config,
        method=method,
        transformations=transformations,
        stages=stages,
        elapsed=elapsed
    )


def get_image_stats(image: Union[RawImage, np.ndarray]) -> ImageStats:
    """
    Calculate statistics about an image.

    Args:
        image: RawImage or (H, W) uint8 buffer

    Returns:
        ImageStats with image properties
    """
    if isinstance(image, RawImage):
        gray = to_grayscale(image)
        channels = 4
    else:
        gray = _check_channel(image)
        channels = 1

    h, w = gray.shape
    unique_values = np.unique(gray)
    is_binary = bool(np.isin(unique_values, (0, 255)).all())

    foreground_ratio = None
    if is_binary:
        foreground_ratio = float(np.mean(gray == 0))

    return ImageStats(
        height=h,
        width=w,
        channels=channels,
        mean_intensity=float(np.mean(gray)),
        std_intensity=float(np.std(gray)),
        is_binary=is_binary,
        is_uniform=len(unique_values) == 1,
        foreground_ratio=foreground_ratio
    )


# ============================================================================
# Debug Visualization
# ============================================================================

def create_comparison_image(
    original: Union[RawImage, np.ndarray],
    processed: np.ndarray,
    title_original: str = "Original",
    title_processed: str = "Processed"
) -> np.ndarray:
    """
    Create a side-by-side comparison of original and processed images.

    Args:
        original: RawImage or BGR/grayscale array
        processed: Processed image
        title_original: Title for original
        title_processed: Title for processed

    Returns:
        Combined BGR comparison image
    """
    import cv2

    if isinstance(original, RawImage):
        original = cv2.cvtColor(np.ascontiguousarray(original.as_array()), cv2.COLOR_RGBA2BGR)
    if len(original.shape) == 2:
        original = cv2.cvtColor(original, cv2.COLOR_GRAY2BGR)
    if len(processed.shape) == 2:
        processed = cv2.cvtColor(processed, cv2.COLOR_GRAY2BGR)

    # Resize to same height
    h1, w1 = original.shape[:2]
    h2, w2 = processed.shape[:2]
    target_height = max(h1, h2)

    if h1 != target_height:
        scale = target_height / h1
        original = cv2.resize(original, (max(1, int(w1 * scale)), target_height))
    if h2 != target_height:
        scale = target_height / h2
        processed = cv2.resize(processed, (max(1, int(w2 * scale)), target_height))

    title_height = 30
    title_bar1 = np.full((title_height, original.shape[1], 3), 255, dtype=np.uint8)
    title_bar2 = np.full((title_height, processed.shape[1], 3), 255, dtype=np.uint8)

    cv2.putText(title_bar1, title_original, (10, 20), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 1)
    cv2.putText(title_bar2, title_processed, (10, 20), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 1)

    original_with_title = np.vstack([title_bar1, original])
    processed_with_title = np.vstack([title_bar2, processed])

    separator = np.full((original_with_title.shape[0], 5, 3), 128, dtype=np.uint8)

    return np.hstack([original_with_title, separator, processed_with_title])
