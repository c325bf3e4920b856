#!/usr/bin/env python
"""
Command-line interface for the Document Image Preprocessing Pipeline.

Usage:
    imageprep --input <image_or_folder> --output <output_dir> [options]

Examples:
    # Binarize a single photo
    imageprep --input receipt.jpg --output ./output

    # Process a folder with four worker threads and a smaller window
    imageprep --input ./scans --output ./output --workers 4 --block-size 15

    # Keep every stage and run Tesseract on the result
    imageprep --input page.png --output ./output --save-stages --ocr
"""

import sys
from pathlib import Path

# Add src directory to path for imports when running as script
_src_dir = Path(__file__).parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import argparse
import logging
import time
from dataclasses import replace
from typing import Dict, List, Optional

from imageprep.config import LOG_FORMAT, BINARIZE_METHODS

logger = logging.getLogger("imageprep")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Document Image Preprocessing - Turn document photos into clean black/white images for OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Binarize a single image:
    imageprep --input receipt.jpg --output ./output

  Process a folder in parallel:
    imageprep --input ./scans --output ./output --workers 4

  Save every intermediate stage and a side-by-side comparison:
    imageprep --input page.png --output ./output --save-stages --comparison

  Recognize text after preprocessing:
    imageprep --input page.png --output ./output --ocr --language eng
        """
    )

    # Required arguments
    parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input image file or folder of images"
    )

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated files"
    )

    # Binarization
    parser.add_argument(
        "--block-size",
        type=int,
        default=None,
        help="Sauvola neighbourhood size, odd (default: 25)"
    )

    parser.add_argument(
        "--k",
        type=float,
        default=None,
        help="Sauvola sensitivity constant (default: 0.3)"
    )

    parser.add_argument(
        "--r",
        type=float,
        default=None,
        help="Expected dynamic range of the local standard deviation (default: 128)"
    )

    parser.add_argument(
        "--method",
        choices=list(BINARIZE_METHODS),
        default=None,
        help="Sauvola implementation (default: integral)"
    )

    # Execution
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of images processed in parallel (default: 1)"
    )

    parser.add_argument(
        "--format", "-f",
        default=None,
        choices=["png", "tiff", "bmp"],
        help="Output raster format (default: png)"
    )

    # Outputs
    parser.add_argument(
        "--save-stages",
        action="store_true",
        help="Also save grayscale, blur, equalize and pre-erosion images"
    )

    parser.add_argument(
        "--comparison",
        action="store_true",
        help="Save a side-by-side original/processed image"
    )

    parser.add_argument(
        "--ocr",
        action="store_true",
        help="Run Tesseract on each processed image"
    )

    parser.add_argument(
        "--language",
        default=None,
        help="Tesseract language (default: eng)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (re-raise unexpected errors)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def build_config(args):
    """Merge environment configuration with command-line overrides."""
    from imageprep.config import get_config

    config = get_config()

    overrides = {}
    if args.block_size is not None:
        overrides["block_size"] = args.block_size
    if args.k is not None:
        overrides["k"] = args.k
    if args.r is not None:
        overrides["r"] = args.r
    if overrides:
        config.binarization = replace(config.binarization, **overrides)

    if args.method:
        config.method = args.method
    if args.workers is not None:
        config.batch.max_workers = max(1, args.workers)
    if args.format:
        config.output_format = "." + args.format
    if args.save_stages or args.debug:
        config.keep_intermediates = True
    if args.debug:
        config.debug_mode = True
    if args.ocr:
        config.ocr.enabled = True
    if args.language:
        config.ocr.tesseract_lang = args.language

    return config


def check_dependencies(need_ocr: bool = False) -> bool:
    """Check if required dependencies are available."""
    missing = []

    try:
        import cv2
    except ImportError:
        missing.append("opencv-python")

    try:
        import numpy
    except ImportError:
        missing.append("numpy")

    if need_ocr:
        try:
            import pytesseract
            try:
                pytesseract.get_tesseract_version()
            except Exception:
                missing.append("tesseract-ocr (system package)")
        except ImportError:
            missing.append("pytesseract")

    if missing:
        logger.error("Missing required dependencies:")
        for dep in missing:
            logger.error(f"  - {dep}")
        logger.error("\nInstall with: pip install -e .")
        return False

    return True


def collect_inputs(input_path: Path, extensions: tuple) -> Optional[List[Path]]:
    """Resolve the --input argument into a list of image paths."""
    from imageprep.utils.io import detect_input_type, list_image_files

    input_type = detect_input_type(input_path)
    logger.info(f"Input type detected: {input_type}")

    if input_type == "image":
        return [input_path]
    if input_type == "image_folder":
        return list_image_files(input_path, extensions)

    logger.error(f"Unsupported input: {input_path}")
    return None


def save_outputs(item, output_dir: Path, config, comparison: bool) -> Dict[str, str]:
    """Write the artifacts of one successful item."""
    from imageprep.utils.io import save_image, save_json
    from imageprep.utils.images import create_comparison_image
    from imageprep.utils.batch import resolve_source

    stem = Path(item.name).stem
    ext = config.output_format
    written = {}

    written["binary"] = str(save_image(item.result.image, output_dir / f"{stem}_binary{ext}"))

    for stage, buffer in item.result.stages.items():
        if stage == "erode":
            continue
        written[stage] = str(save_image(buffer, output_dir / "stages" / f"{stem}_{stage}{ext}"))

    if comparison:
        original = resolve_source(item.source)
        combined = create_comparison_image(original, item.result.image, title_processed="Binarized")
        written["comparison"] = str(save_image(combined, output_dir / f"{stem}_comparison.png"))

    if item.ocr is not None:
        text_path = output_dir / f"{stem}.txt"
        text_path.write_text(item.ocr.text, encoding="utf-8")
        written["text"] = str(text_path)
        if item.rows:
            written["rows"] = str(save_json(item.rows, output_dir / f"{stem}_rows.json"))

    return written


def log_status(item):
    """Progress callback for batch items."""
    if item.status == "processing":
        logger.info(f"[{item.index + 1}] Processing {item.name}...")
    elif item.status == "success":
        note = f" - {item.note}" if item.note else ""
        logger.info(f"[{item.index + 1}] Done: {item.name} ({item.result.elapsed:.2f}s){note}")
    elif item.status == "error":
        logger.error(f"[{item.index + 1}] Failed: {item.name}: {item.error}")
    elif item.status == "cancelled":
        logger.warning(f"[{item.index + 1}] Skipped: {item.name}")


def run_pipeline(args) -> int:
    """Run the preprocessing pipeline over the requested inputs."""
    from imageprep.utils.io import ensure_dir, save_json
    from imageprep.utils.batch import BatchProcessor
    from imageprep.utils.ocr_text import TesseractEngine

    start_time = time.time()

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    output_dir = ensure_dir(args.output)
    input_path = Path(args.input)

    paths = collect_inputs(input_path, config.batch.image_extensions)
    if not paths:
        logger.error("No images to process")
        return 1

    logger.info(f"Found {len(paths)} image(s)")

    recognizer = None
    if config.ocr.enabled:
        recognizer = TesseractEngine(
            language=config.ocr.tesseract_lang,
            config=config.ocr.tesseract_config
        )

    processor = BatchProcessor(config, on_status=log_status, recognizer=recognizer)
    future = processor.submit([(p.name, p) for p in paths])

    try:
        result = future.result()
    except KeyboardInterrupt:
        logger.info("Interrupted by user, finishing the current image...")
        processor.cancel()
        result = future.result()

    outputs = {}
    for item in result.succeeded:
        try:
            outputs[item.name] = save_outputs(item, output_dir, config, args.comparison)
        except Exception as e:
            logger.error(f"Could not save outputs for {item.name}: {e}")
            if config.debug_mode:
                raise

    summary = result.to_dict()
    summary["outputs"] = outputs
    summary["config"] = {
        "block_size": config.binarization.block_size,
        "k": config.binarization.k,
        "r": config.binarization.r,
        "method": config.method,
        "debug": config.debug_mode,
    }
    save_json(summary, output_dir / "summary.json")

    elapsed = time.time() - start_time

    if not args.quiet:
        print("\n" + "=" * 60)
        print("PREPROCESSING COMPLETE")
        print("=" * 60)
        print(f"Source: {input_path}")
        print(f"Output: {output_dir}")
        print(f"Images: {len(result.items)} "
              f"(succeeded: {result.success_count}, failed: {result.error_count}"
              + (f", skipped: {result.cancelled_count}" if result.cancelled_count else "")
              + ")")
        print(f"Processing time: {elapsed:.2f}s")
        for item in result.failed:
            print(f"  ✗ {item.name}: {item.error}")
        for item in result.succeeded:
            if item.note:
                print(f"  ! {item.name}: {item.note}")
        print("=" * 60)

    if processor.cancelled:
        return 130
    return 0 if result.error_count == 0 else 1


def main():
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    if not check_dependencies(need_ocr=args.ocr):
        sys.exit(1)

    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
