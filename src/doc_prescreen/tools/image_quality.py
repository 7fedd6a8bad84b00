"""
Approximate image-quality analysis on a luminance grid.

Images are decoded with OpenCV, downscaled so the longest side is at most the
configured analysis dimension, and reduced to BT.709 luminance. Brightness and
contrast are the mean and standard deviation of that luminance. The blur proxy is
the variance of finite-difference gradient magnitudes sampled on a coarse grid;
it is a sharpness estimate only, not real blur detection.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from doc_prescreen.errors import DecodeError
from doc_prescreen.models import (
    AnalysisPolicy,
    DocumentRule,
    ImageMetrics,
    UploadedDocument,
)

LOGGER = logging.getLogger(__name__)

# BT.709 luma weights, in OpenCV's BGR channel order
_LUMA_BGR = np.array([0.0722, 0.7152, 0.2126], dtype=np.float64)

WIDTH_ISSUE = "Image width is smaller than recommended."
HEIGHT_ISSUE = "Image height is smaller than recommended."
ASPECT_ISSUE = "Image aspect ratio is outside the accepted range."
BLUR_ISSUE = "Image may be blurry. Ensure the subject is in sharp focus."
DARK_ISSUE = "Image appears quite dark. Consider using better lighting."
BRIGHT_ISSUE = "Image appears very bright. Avoid overexposed backgrounds."
CONTRAST_ISSUE = "Image contrast is low. Features may not be clearly visible."
DECODE_ISSUE = "Image could not be read (corrupted or unsupported format); quality checks skipped."


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes to a BGR uint8 array."""
    if not data:
        raise DecodeError("Empty image content")
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img is None or img.size == 0:
        raise DecodeError("Unable to decode image (possibly corrupted or unsupported).")
    return img


def downscale_for_analysis(img_bgr: np.ndarray, max_dimension: int) -> np.ndarray:
    """Shrink so neither side exceeds max_dimension, keeping the aspect ratio."""
    height, width = img_bgr.shape[:2]
    if width <= max_dimension and height <= max_dimension:
        return img_bgr
    scale = min(max_dimension / width, max_dimension / height)
    new_w = max(1, int(round(width * scale)))
    new_h = max(1, int(round(height * scale)))
    return cv2.resize(img_bgr, (new_w, new_h), interpolation=cv2.INTER_AREA)


def luminance(img_bgr: np.ndarray) -> np.ndarray:
    """Per-pixel BT.709 luminance as a float64 grid."""
    return img_bgr[..., :3].astype(np.float64) @ _LUMA_BGR


def blur_score(lum: np.ndarray, min_step: int = 4) -> float:
    """
    Variance of gradient magnitudes on a coarse grid.

    The stride grows with image size so the number of samples stays bounded.
    At each sample point the right and down neighbours (one stride away) give
    the finite differences.
    """
    height, width = lum.shape
    step = max(min_step, min(width, height) // 100)
    ys = np.arange(0, height - step, step)
    xs = np.arange(0, width - step, step)
    if ys.size == 0 or xs.size == 0:
        return 0.0

    here = lum[np.ix_(ys, xs)]
    dx = lum[np.ix_(ys, xs + step)] - here
    dy = lum[np.ix_(ys + step, xs)] - here
    magnitudes = np.sqrt(dx * dx + dy * dy)
    return float(magnitudes.var())


def compute_metrics(img_bgr: np.ndarray, policy: AnalysisPolicy) -> ImageMetrics:
    """Metrics for a decoded image. Width/height are the original dimensions."""
    height, width = img_bgr.shape[:2]
    lum = luminance(downscale_for_analysis(img_bgr, policy.max_dimension))
    return ImageMetrics(
        width=int(width),
        height=int(height),
        brightness=float(lum.mean()),
        contrast=float(lum.std()),
        blur_score=blur_score(lum, policy.min_grid_step),
    )


def evaluate_metrics(metrics: ImageMetrics, rule: DocumentRule) -> List[str]:
    """One issue per violated threshold; violations are independent."""
    issues: List[str] = []

    image = rule.image
    if image is not None:
        if image.min_width and metrics.width < image.min_width:
            issues.append(WIDTH_ISSUE)
        if image.min_height and metrics.height < image.min_height:
            issues.append(HEIGHT_ISSUE)
        if metrics.height:
            ratio = metrics.width / metrics.height
            too_narrow = image.min_aspect_ratio is not None and ratio < image.min_aspect_ratio
            too_wide = image.max_aspect_ratio is not None and ratio > image.max_aspect_ratio
            if too_narrow or too_wide:
                issues.append(ASPECT_ISSUE)

    quality = rule.quality
    if quality is not None:
        if quality.min_blur_score is not None and metrics.blur_score < quality.min_blur_score:
            issues.append(BLUR_ISSUE)
        if quality.min_brightness is not None and metrics.brightness < quality.min_brightness:
            issues.append(DARK_ISSUE)
        elif quality.max_brightness is not None and metrics.brightness > quality.max_brightness:
            issues.append(BRIGHT_ISSUE)
        if quality.min_contrast is not None and metrics.contrast < quality.min_contrast:
            issues.append(CONTRAST_ISSUE)

    return issues


def analyze_image(
    document: UploadedDocument,
    rule: DocumentRule,
    policy: AnalysisPolicy,
) -> Tuple[Optional[ImageMetrics], List[str]]:
    """
    Decode and analyse one image document. Decode failures come back as a single
    quality issue with no metrics; they never raise.
    """
    try:
        img = decode_image(document.read())
    except DecodeError as exc:
        LOGGER.warning("Decode failed for %s: %s", document.filename, exc)
        return None, [DECODE_ISSUE]

    metrics = compute_metrics(img, policy)
    LOGGER.debug(
        "Metrics for %s: %dx%d brightness=%.1f contrast=%.1f blur=%.1f",
        document.filename, metrics.width, metrics.height,
        metrics.brightness, metrics.contrast, metrics.blur_score,
    )
    return metrics, evaluate_metrics(metrics, rule)


def detect_face_presence() -> Dict[str, str]:
    """Face detection is not implemented; report that instead of guessing."""
    return {
        "status": "unknown",
        "message": (
            "Face detection is not implemented. Please confirm visually that your "
            "full face is visible and unobstructed."
        ),
    }
