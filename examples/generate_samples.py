#!/usr/bin/env python
"""
Generate synthetic document photos and binarize them.

This script creates sample images with the problems the pipeline is meant
to fix:
- Low contrast (gray text on a gray page)
- Uneven lighting (a shadow across a receipt)
- Sensor grain (salt and pepper noise on a form)

Each sample is written to examples/sample_pages/ and its binarized result
to examples/sample_output/, along with a summary.json.

Usage:
    python examples/generate_samples.py
"""

import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def create_low_contrast_page():
    """Gray text on a light gray page, like a faded photocopy."""
    import cv2

    img = np.full((700, 600, 3), 180, dtype=np.uint8)
    text_color = (130, 130, 130)

    cv2.putText(img, "Meeting Notes", (150, 70),
                cv2.FONT_HERSHEY_SIMPLEX, 1.2, text_color, 2)

    y = 140
    lines = [
        "Date: 2024-03-14",
        "Attendees: Ada, Grace, Alan",
        "Location: Room 4",
        "Next review: Friday",
    ]
    for line in lines:
        cv2.putText(img, line, (50, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, text_color, 2)
        y += 45

    noise = np.random.default_rng(1).normal(0, 4, img.shape).astype(np.int16)
    return np.clip(img.astype(np.int16) + noise, 0, 255).astype(np.uint8)


def create_shadowed_receipt():
    """Receipt with a diagonal shadow over the lower half."""
    import cv2

    h, w = 800, 450
    img = np.full((h, w, 3), 240, dtype=np.uint8)

    cv2.putText(img, "CORNER SHOP", (110, 60), cv2.FONT_HERSHEY_DUPLEX, 1.0, (15, 15, 15), 2)

    y = 130
    items = [("Milk", "1.20"), ("Bread", "2.10"), ("Eggs", "3.45"), ("Coffee", "6.99")]
    for name, price in items:
        cv2.putText(img, name, (40, y), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (25, 25, 25), 2)
        cv2.putText(img, price, (320, y), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (25, 25, 25), 2)
        y += 50
    cv2.line(img, (40, y - 20), (410, y - 20), (40, 40, 40), 2)
    cv2.putText(img, "TOTAL", (40, y + 20), cv2.FONT_HERSHEY_SIMPLEX, 0.9, (15, 15, 15), 2)
    cv2.putText(img, "13.74", (320, y + 20), cv2.FONT_HERSHEY_SIMPLEX, 0.9, (15, 15, 15), 2)

    # Shadow darkens the page by up to 130 levels; text keeps its contrast
    yy, xx = np.mgrid[0:h, 0:w]
    shade = np.clip((yy + 0.5 * xx - 300) / 400.0, 0, 1) * 130
    return np.clip(img.astype(np.float64) - shade[:, :, None], 0, 255).astype(np.uint8)


def create_grainy_form():
    """Form fields with salt and pepper noise."""
    import cv2

    img = np.full((500, 700, 3), 225, dtype=np.uint8)

    y = 80
    for label in ("Name", "Address", "Phone", "Signature"):
        cv2.putText(img, f"{label}:", (40, y), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (30, 30, 30), 2)
        cv2.line(img, (220, y + 5), (650, y + 5), (60, 60, 60), 1)
        y += 100

    rng = np.random.default_rng(7)
    grain = rng.random(img.shape[:2])
    img[grain < 0.01] = 0
    img[grain > 0.99] = 255
    return img


def main():
    import cv2
    from imageprep.config import PipelineConfig
    from imageprep.utils.batch import BatchProcessor
    from imageprep.utils.io import ensure_dir, save_image, save_json

    samples_dir = ensure_dir(Path(__file__).parent / "sample_pages")
    output_dir = ensure_dir(Path(__file__).parent / "sample_output")

    samples = [
        ("low_contrast", create_low_contrast_page()),
        ("shadowed_receipt", create_shadowed_receipt()),
        ("grainy_form", create_grainy_form()),
    ]

    paths = []
    for name, img in samples:
        img_path = samples_dir / f"{name}.png"
        cv2.imwrite(str(img_path), img)
        paths.append(img_path)
        print(f"Created: {img_path}")

    result = BatchProcessor(PipelineConfig()).process(paths)

    for item in result.items:
        if item.result is None:
            print(f"Failed: {item.name}: {item.error}")
            continue
        out_path = save_image(item.result.image, output_dir / f"{Path(item.name).stem}_binary.png")
        print(f"Binarized: {out_path} ({item.result.elapsed:.2f}s)")

    save_json(result.to_dict(), output_dir / "summary.json")
    print(f"\n{result.success_count}/{len(result.items)} samples processed")


if __name__ == "__main__":
    main()
