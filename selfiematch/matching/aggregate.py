"""Aggregation of per-image match results into session stats and tables."""

from __future__ import annotations

from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from selfiematch.types import ImageMatchResult, MatchSessionStats

RESULT_COLUMNS = [
    "media_id",
    "url",
    "original_name",
    "best_confidence",
    "best_distance",
    "best_angle",
    "face_count",
    "matched_face_count",
    "processing_time_s",
]


def summarize_session(
    results: Iterable[ImageMatchResult],
    images_processed: Optional[int] = None,
) -> MatchSessionStats:
    """Fold kept image results into final session stats.

    ``images_processed`` defaults to the number of kept results.
    """
    kept = list(results)
    total_faces = int(sum(r.face_count for r in kept))
    if kept:
        average = float(np.mean([r.best_match.confidence for r in kept]))
    else:
        average = 0.0
    return MatchSessionStats(
        images_processed=len(kept) if images_processed is None else int(images_processed),
        images_with_matches=len(kept),
        total_faces_detected=total_faces,
        average_confidence=average,
    )


def results_to_frame(results: Iterable[ImageMatchResult]) -> pd.DataFrame:
    """One row per kept image, in result order."""
    return results_from_json([result.to_dict() for result in results])


def results_from_json(payload) -> pd.DataFrame:
    """Build the results table from a serialized matches document."""
    entries = payload.get("results", []) if isinstance(payload, dict) else payload
    rows: List[dict] = []
    for entry in entries:
        source = entry.get("source", {})
        best = entry.get("best_match", {})
        rows.append(
            {
                "media_id": source.get("id"),
                "url": source.get("url"),
                "original_name": source.get("original_name"),
                "best_confidence": best.get("confidence"),
                "best_distance": best.get("distance"),
                "best_angle": best.get("angle"),
                "face_count": entry.get("face_count"),
                "matched_face_count": entry.get("matched_face_count"),
                "processing_time_s": entry.get("processing_time_s"),
            }
        )
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)
