"""Selfie validation: upload checks, pixel statistics and face detection."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from selfiematch.config import ValidationThresholds
from selfiematch.detectors.provider import ProviderHandle, detect_with_fallback
from selfiematch.io_utils import ImageDecodeError, decode_image
from selfiematch.recognition.pose import classify_pose
from selfiematch.types import FRONTAL, FaceBox, ValidationResult

LOGGER = logging.getLogger("selfiematch.quality.selfie")

ISSUE_NO_FACE = "No face detected in the image. Try a clearer photo with better lighting."
ISSUE_MULTIPLE_FACES = (
    "Multiple faces detected. Please upload a photo with only one person for best results."
)
ISSUE_LOW_RESOLUTION = "Image resolution is low. Higher resolution works better."
ISSUE_TOO_DARK = "Image is quite dark. Brighter photos work better."
ISSUE_OVEREXPOSED = "Image is very bright. Avoid overexposure."
ISSUE_LOW_CONTRAST = "Low contrast image. Face features may not be clear."
ISSUE_FACE_TOO_SMALL = "Face is quite small in the image. Closer photos work better."
ISSUE_FACE_TOO_CLOSE = "Face is very close/cropped. Some background helps."


class SelfieRejectedError(ValueError):
    """Raised when an uploaded file cannot be used as a selfie at all."""


def check_selfie_upload(
    filename: str,
    size_bytes: int,
    thresholds: ValidationThresholds = ValidationThresholds(),
    content_type: Optional[str] = None,
) -> None:
    """Reject non-image uploads and oversized files before decoding."""
    mime = content_type or mimetypes.guess_type(filename)[0] or ""
    if not mime.startswith("image/"):
        raise SelfieRejectedError("Please upload an image file (JPEG, PNG, etc.)")
    if size_bytes > thresholds.max_upload_bytes:
        limit_mb = thresholds.max_upload_bytes / (1024 * 1024)
        raise SelfieRejectedError(f"Image size should be less than {limit_mb:g}MB")


def image_statistics(image: np.ndarray) -> Tuple[float, float]:
    """Return mean brightness and contrast (std of per-pixel brightness), 0-255 scale."""
    pixels = np.asarray(image, dtype=np.float64)
    if pixels.ndim == 2:
        per_pixel = pixels
    else:
        per_pixel = pixels[..., :3].mean(axis=-1)
    if per_pixel.size == 0:
        return 0.0, 0.0
    return float(per_pixel.mean()), float(per_pixel.std())


def _to_percent(value: float) -> int:
    return int(round(value / 255.0 * 100.0))


def quality_issues(
    face_count: int,
    width: int,
    height: int,
    brightness: float,
    contrast: float,
    face_box: Optional[FaceBox],
    thresholds: ValidationThresholds,
) -> List[str]:
    issues: List[str] = []
    if face_count == 0:
        issues.append(ISSUE_NO_FACE)
    elif face_count > 1:
        issues.append(ISSUE_MULTIPLE_FACES)

    if width < thresholds.min_width or height < thresholds.min_height:
        issues.append(ISSUE_LOW_RESOLUTION)

    if brightness < thresholds.dark_brightness:
        issues.append(ISSUE_TOO_DARK)
    elif brightness > thresholds.bright_brightness:
        issues.append(ISSUE_OVEREXPOSED)

    if contrast < thresholds.min_contrast:
        issues.append(ISSUE_LOW_CONTRAST)

    if face_count > 0 and face_box is not None and face_box.width and face_box.height:
        image_area = float(width * height)
        face_pct = (face_box.area / image_area) * 100.0 if image_area else 0.0
        if face_pct < thresholds.min_face_area_pct:
            issues.append(ISSUE_FACE_TOO_SMALL)
        elif face_pct > thresholds.max_face_area_pct:
            issues.append(ISSUE_FACE_TOO_CLOSE)
    return issues


async def validate_selfie(
    handle: ProviderHandle,
    image: np.ndarray,
    thresholds: ValidationThresholds = ValidationThresholds(),
    detect_timeout_s: Optional[float] = None,
) -> ValidationResult:
    """Validate a decoded selfie (BGR array).

    Raises :class:`ModelsNotLoadedError` when the provider is not ready. Detector
    failures are absorbed and reported as "no face detected".
    """
    handle.require_ready()
    height, width = image.shape[:2]
    brightness, contrast = image_statistics(image)

    detections = await detect_with_fallback(
        handle, image, method="both", timeout_s=detect_timeout_s, label="Selfie: "
    )

    face_angle = FRONTAL
    face_box: Optional[FaceBox] = None
    embedding: Optional[np.ndarray] = None
    if detections:
        primary = detections[0]
        face_angle = classify_pose(primary.landmarks)
        face_box = primary.box
        embedding = np.array(primary.embedding, dtype=np.float32).reshape(-1)
        if len(detections) > 1:
            LOGGER.info("Selfie has %d faces; using the most prominent one", len(detections))

    issues = quality_issues(len(detections), width, height, brightness, contrast, face_box, thresholds)
    result = ValidationResult(
        is_valid=len(detections) > 0,
        issues=tuple(issues),
        face_count=len(detections),
        resolution=f"{width}x{height}",
        brightness=_to_percent(brightness),
        contrast=_to_percent(contrast),
        face_angle=face_angle,
        face_box=face_box,
        embedding=embedding,
    )
    LOGGER.info(
        "Selfie validation: valid=%s faces=%d angle=%s issues=%d",
        result.is_valid,
        result.face_count,
        result.face_angle,
        len(result.issues),
    )
    return result


async def validate_selfie_file(
    handle: ProviderHandle,
    path: Path,
    thresholds: ValidationThresholds = ValidationThresholds(),
    detect_timeout_s: Optional[float] = None,
) -> ValidationResult:
    """Upload checks, decode and validate a selfie stored on disk."""
    path = Path(path)
    handle.require_ready()
    check_selfie_upload(path.name, path.stat().st_size, thresholds)
    try:
        image = decode_image(path.read_bytes())
    except ImageDecodeError as exc:
        raise SelfieRejectedError(f"Could not read image {path.name}: {exc}") from exc
    return await validate_selfie(handle, image, thresholds, detect_timeout_s=detect_timeout_s)
