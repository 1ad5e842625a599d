"""Overlay rendering of matched faces on event photos."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from selfiematch.types import ImageMatchResult, MatchCandidate

LOGGER = logging.getLogger("selfiematch.viz.overlay")

MATCH_COLOR: Tuple[int, int, int] = (0, 200, 0)
OTHER_COLOR: Tuple[int, int, int] = (0, 200, 255)
BEST_COLOR: Tuple[int, int, int] = (255, 128, 0)


def _box_color(candidate: MatchCandidate, best: MatchCandidate, threshold: float) -> Tuple[int, int, int]:
    if candidate is best:
        return BEST_COLOR
    if candidate.confidence >= threshold:
        return MATCH_COLOR
    return OTHER_COLOR


def draw_match_overlay(
    image: np.ndarray,
    result: ImageMatchResult,
    threshold: float,
    matched_only: bool = False,
) -> np.ndarray:
    """Draw each face box with a confidence badge; returns an annotated copy."""
    canvas = image.copy()
    height, width = canvas.shape[:2]
    for candidate in result.matches:
        if matched_only and candidate.confidence < threshold:
            continue
        x1, y1, x2, y2 = (int(round(v)) for v in candidate.position.as_xyxy())
        x1, x2 = max(0, x1), min(width - 1, x2)
        y1, y2 = max(0, y1), min(height - 1, y2)
        color = _box_color(candidate, result.best_match, threshold)
        thickness = 3 if candidate is result.best_match else 2
        cv2.rectangle(canvas, (x1, y1), (x2, y2), color, thickness)

        badge = f"{candidate.confidence:.0f}%"
        (text_w, text_h), baseline = cv2.getTextSize(badge, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
        badge_y = max(text_h + baseline, y1)
        cv2.rectangle(
            canvas,
            (x1, badge_y - text_h - baseline),
            (x1 + text_w + 4, badge_y),
            color,
            cv2.FILLED,
        )
        cv2.putText(canvas, badge, (x1 + 2, badge_y - baseline), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 0), 1)
    return canvas


def write_overlay(
    image: np.ndarray,
    result: ImageMatchResult,
    threshold: float,
    output_dir: Path,
    name: Optional[str] = None,
) -> Path:
    annotated = draw_match_overlay(image, result, threshold)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{name or result.source.id}.jpg"
    if not cv2.imwrite(str(output_path), annotated):
        raise RuntimeError(f"Unable to write overlay {output_path}")
    LOGGER.debug("Overlay written to %s", output_path)
    return output_path
