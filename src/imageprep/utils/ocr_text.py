"""
Text recognition collaborator and text structuring.

Provides:
- A thin Tesseract adapter that reads the binarized pipeline output
- Confidence scoring per word and line
- Structuring of recognized text into rows (delimited table,
  key/value form, or plain list)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any
import numpy as np

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class WordResult:
    """OCR result for a single word."""
    text: str
    confidence: float
    bbox: Optional[Tuple[int, int, int, int]] = None  # (x1, y1, x2, y2)


@dataclass
class LineResult:
    """OCR result for a line of text."""
    text: str
    confidence: float
    words: List[WordResult] = field(default_factory=list)


@dataclass
class OCRResult:
    """Complete OCR result for one image."""
    text: str
    confidence: float
    lines: List[LineResult] = field(default_factory=list)
    engine_used: str = ""
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "engine": self.engine_used,
            "error": self.error,
        }


# ============================================================================
# Tesseract Engine
# ============================================================================

class TesseractEngine:
    """OCR using Tesseract on an already binarized image."""

    def __init__(
        self,
        language: str = "eng",
        config: str = "--oem 1 --psm 3 -c preserve_interword_spaces=1"
    ):
        try:
            import pytesseract
            self.pytesseract = pytesseract

            # Test that tesseract is installed
            pytesseract.get_tesseract_version()

        except Exception as e:
            raise ImportError(
                f"Tesseract not available: {e}\n"
                "Install with: pip install pytesseract\n"
                "Also install Tesseract: https://github.com/tesseract-ocr/tesseract"
            )

        self.language = language
        self.config = config

    def recognize(self, image: np.ndarray) -> OCRResult:
        """Recognize text using Tesseract."""
        try:
            data = self.pytesseract.image_to_data(
                image,
                lang=self.language,
                config=self.config,
                output_type=self.pytesseract.Output.DICT
            )
        except Exception as e:
            logger.error(f"Tesseract error: {e}")
            return OCRResult(text="", confidence=0.0, engine_used="tesseract", error=str(e))

        return _lines_from_tesseract_data(data)


def _lines_from_tesseract_data(data: Dict[str, list]) -> OCRResult:
    lines = []
    current_line = []
    current_key = None
    confidences = []

    for i in range(len(data['text'])):
        text = str(data['text'][i]).strip()
        conf = float(data['conf'][i])

        if conf < 0 or not text:  # -1 means no valid confidence
            continue

        key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
        word = WordResult(
            text=text,
            confidence=conf / 100.0,
            bbox=(
                data['left'][i],
                data['top'][i],
                data['left'][i] + data['width'][i],
                data['top'][i] + data['height'][i]
            )
        )

        if key != current_key:
            if current_line:
                lines.append(_make_line(current_line))
            current_line = [word]
            current_key = key
        else:
            current_line.append(word)

        confidences.append(conf / 100.0)

    if current_line:
        lines.append(_make_line(current_line))

    return OCRResult(
        text='\n'.join(line.text for line in lines),
        confidence=float(np.mean(confidences)) if confidences else 0.0,
        lines=lines,
        engine_used="tesseract"
    )


def _make_line(words: List[WordResult]) -> LineResult:
    return LineResult(
        text=' '.join(w.text for w in words),
        confidence=float(np.mean([w.confidence for w in words])),
        words=words
    )


# ============================================================================
# Text Structuring
# ============================================================================

TABLE_DELIMITERS = ('\t', '|', ',')

# "1. item", "2) item", "- item", "* item", "• item"
LIST_PATTERN = re.compile(r'^(?:\d+[.)]|[-*•])\s*(.+)')


def classify_text(lines: List[str]) -> Tuple[str, Optional[str]]:
    """
    Decide how a block of recognized lines is laid out.

    Returns:
        ('table', delimiter), ('key_value', None) or ('list', None)
    """
    for delimiter in TABLE_DELIMITERS:
        if any(delimiter in line for line in lines):
            return 'table', delimiter

    with_colon = sum(1 for line in lines if ':' in line)
    if with_colon > len(lines) / 2:
        return 'key_value', None

    return 'list', None


def parse_text_to_rows(text: str) -> List[Dict[str, Any]]:
    """
    Turn recognized text into a list of row dictionaries.

    Tables use their first row as headers, key/value text becomes a single
    row, and anything else becomes one {'Item', 'Line'} row per line.
    """
    lines = [line.strip() for line in text.split('\n')]
    lines = [line for line in lines if line]

    if not lines:
        return []

    kind, delimiter = classify_text(lines)
    if kind == 'table':
        return _parse_table_rows(lines, delimiter)
    if kind == 'key_value':
        return _parse_key_value_rows(lines)
    return _parse_list_rows(lines)


def _parse_table_rows(lines: List[str], delimiter: str) -> List[Dict[str, Any]]:
    rows = []
    for line in lines:
        cells = [cell.strip() for cell in line.split(delimiter)]
        cells = [cell for cell in cells if cell and cell != '|']
        if cells:
            rows.append(cells)

    # A header alone is not a table
    if len(rows) < 2:
        return _parse_list_rows(lines)

    headers = rows[0]
    return [
        {header: (row[i] if i < len(row) else '') for i, header in enumerate(headers)}
        for row in rows[1:]
    ]


def _parse_key_value_rows(lines: List[str]) -> List[Dict[str, Any]]:
    record = {}
    for line in lines:
        key, sep, value = line.partition(':')
        key = key.strip()
        if sep and key:
            record[key] = value.strip()
    return [record] if record else []


def _parse_list_rows(lines: List[str]) -> List[Dict[str, Any]]:
    rows = []
    for index, line in enumerate(lines, 1):
        match = LIST_PATTERN.match(line)
        rows.append({'Item': match.group(1) if match else line, 'Line': index})
    return rows


def rows_to_table(rows: List[Dict[str, Any]]) -> List[List[Any]]:
    """Convert row dictionaries to a header row followed by value rows."""
    if not rows:
        return []
    headers = list(rows[0].keys())
    return [headers] + [[row.get(h, '') for h in headers] for row in rows]
