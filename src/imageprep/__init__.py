"""
Document Image Preprocessing Pipeline
=====================================

Prepares photographed or scanned documents for text recognition by turning
noisy, unevenly lit raster images into clean black/white images.

Main components:
- Grayscale conversion (perceptual luminance)
- Noise reduction (3x3 Gaussian blur)
- Contrast normalization (histogram equalization)
- Adaptive binarization (Sauvola, naive or integral-image)
- Morphological cleanup (erosion)
- Batch execution with per-image status
- Tesseract adapter and text structuring
"""

__version__ = "1.0.0"
__author__ = "Document Preprocessing Team"
