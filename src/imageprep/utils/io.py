"""
I/O utilities for the image preprocessing pipeline.

Handles:
- Raster decoding into RawImage
- Raster encoding and image saving
- JSON serialization
- Directory management and input detection
"""

import json
import logging
from pathlib import Path
from typing import List, Union, Any
from dataclasses import asdict

import numpy as np

from .images import RawImage, ImagePrepError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp')


class DecodeError(ImagePrepError, ValueError):
    """Input bytes are not a decodable raster image."""


# ============================================================================
# Image Decoding
# ============================================================================

def decode_image(data: Union[bytes, bytearray, memoryview], name: str = "<bytes>") -> RawImage:
    """
    Decode a standard raster container (PNG, JPEG, TIFF, BMP, ...) to RGBA.

    Args:
        data: Encoded image bytes
        name: Label used in error messages

    Returns:
        RawImage with an RGBA buffer

    Raises:
        DecodeError: If the bytes cannot be decoded
    """
    import cv2

    buf = np.frombuffer(data, dtype=np.uint8)
    if buf.size == 0:
        raise DecodeError(f"Could not decode image: {name} is empty")

    try:
        img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise DecodeError(f"Could not decode image: {name} ({e})")

    if img is None:
        raise DecodeError(f"Could not decode image: {name}")

    # 16-bit PNG/TIFF -> 8-bit
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    elif img.dtype != np.uint8:
        raise DecodeError(f"Unsupported pixel depth {img.dtype} in {name}")

    raw = RawImage.from_array(img, order="bgr")
    logger.debug(f"Decoded image: {name}, {raw.width}x{raw.height}")
    return raw


def load_image(image_path: Union[str, Path]) -> RawImage:
    """
    Load and decode an image file.

    Args:
        image_path: Path to the image file

    Returns:
        RawImage

    Raises:
        FileNotFoundError: If image file doesn't exist
        DecodeError: If image cannot be decoded
    """
    image_path = Path(image_path)
    if not image_path.is_file():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    return decode_image(image_path.read_bytes(), name=str(image_path))


def list_image_files(
    folder_path: Union[str, Path],
    extensions: tuple = IMAGE_EXTENSIONS,
    sort: bool = True
) -> List[Path]:
    """
    List image files in a folder.

    Args:
        folder_path: Path to the folder containing images
        extensions: Tuple of valid image extensions
        sort: If True, sort files alphabetically

    Returns:
        List of image paths
    """
    folder_path = Path(folder_path)
    if not folder_path.is_dir():
        raise NotADirectoryError(f"Not a directory: {folder_path}")

    image_files = [
        f for f in folder_path.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    ]

    if sort:
        image_files = sorted(image_files)

    logger.info(f"Found {len(image_files)} images in {folder_path}")
    return image_files


# ============================================================================
# Image Encoding
# ============================================================================

def encode_image(image: np.ndarray, ext: str = ".png", quality: int = 95) -> bytes:
    """
    Encode an image buffer into a raster container.

    Args:
        image: (H, W) or (H, W, 3) uint8 array
        ext: Container extension, e.g. '.png'
        quality: JPEG quality (1-100)

    Returns:
        Encoded bytes
    """
    import cv2

    if not ext.startswith("."):
        ext = "." + ext

    params = []
    if ext.lower() in ('.jpg', '.jpeg'):
        params = [cv2.IMWRITE_JPEG_QUALITY, quality]

    ok, encoded = cv2.imencode(ext, np.ascontiguousarray(image), params)
    if not ok:
        raise ImagePrepError(f"Could not encode image as {ext}")
    return encoded.tobytes()


def save_image(
    image: np.ndarray,
    output_path: Union[str, Path],
    quality: int = 95
) -> Path:
    """Encode by the path's suffix and write, creating parent folders."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    output_path.write_bytes(encode_image(image, output_path.suffix or ".png", quality))

    logger.debug(f"Saved image: {output_path}")
    return output_path


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """Serializes numpy scalars/arrays, dataclasses and paths."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if hasattr(obj, '__dataclass_fields__'):
            return asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False
) -> Path:
    """Write data (numpy values and dataclasses included) as UTF-8 JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """Load data from a JSON file."""
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, 'r', encoding='utf-8') as f:
        return json.load(f)


# ============================================================================
# Directory Management
# ============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# ============================================================================
# File Type Detection
# ============================================================================

def detect_input_type(input_path: Union[str, Path]) -> str:
    """
    Detect the type of input file or directory.

    Args:
        input_path: Path to file or directory

    Returns:
        One of: 'image', 'image_folder', 'unknown'
    """
    input_path = Path(input_path)

    if input_path.is_dir():
        has_images = any(
            f.suffix.lower() in IMAGE_EXTENSIONS
            for f in input_path.iterdir()
        )
        return 'image_folder' if has_images else 'unknown'

    if not input_path.exists():
        return 'unknown'

    if input_path.suffix.lower() in IMAGE_EXTENSIONS:
        return 'image'

    return 'unknown'
