"""Batched matching of an event's photos against a validated selfie."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

import numpy as np

from selfiematch.config import MatchSettings
from selfiematch.detectors.provider import ProviderHandle, detect_with_fallback
from selfiematch.matching.aggregate import summarize_session
from selfiematch.matching.media import ImageLoader, filter_images
from selfiematch.recognition.matcher import ReferenceMatcher
from selfiematch.types import (
    FRONTAL,
    ImageMatchResult,
    MatchSessionStats,
    MediaItem,
    ValidationResult,
    iter_batches,
)

LOGGER = logging.getLogger("selfiematch.matching.engine")

ERROR_NO_REFERENCE = "no reference embedding"

ProgressCallback = Callable[[MatchSessionStats], None]
T = TypeVar("T")


@dataclass(frozen=True)
class MatchSessionConfig:
    """Immutable snapshot of everything a matching run reads."""

    reference_embedding: Optional[np.ndarray]
    reference_angle: str = FRONTAL
    settings: MatchSettings = field(default_factory=MatchSettings)

    def __post_init__(self) -> None:
        if self.reference_embedding is not None:
            frozen = np.array(self.reference_embedding, dtype=np.float32).reshape(-1)
            frozen.setflags(write=False)
            object.__setattr__(self, "reference_embedding", frozen)
        object.__setattr__(self, "reference_angle", self.reference_angle or FRONTAL)

    @classmethod
    def from_validation(cls, validation: ValidationResult, settings: MatchSettings) -> "MatchSessionConfig":
        return cls(
            reference_embedding=validation.embedding,
            reference_angle=validation.face_angle,
            settings=settings,
        )


@dataclass
class MatchOutcome:
    results: List[ImageMatchResult]
    stats: MatchSessionStats
    elapsed_s: float = 0.0
    error: Optional[str] = None

    def to_dict(self):
        return {
            "results": [r.to_dict() for r in self.results],
            "stats": self.stats.to_dict(),
            "elapsed_s": self.elapsed_s,
            "error": self.error,
        }


class BatchMatchingEngine:
    """Runs detection over fixed-size batches of images and keeps matching ones.

    Images within a batch are processed concurrently; the next batch starts only
    after the current one has fully resolved.
    """

    def __init__(self, handle: ProviderHandle, loader: ImageLoader) -> None:
        self.handle = handle
        self.loader = loader

    async def run(
        self,
        config: MatchSessionConfig,
        media: Sequence[MediaItem],
        on_progress: Optional[ProgressCallback] = None,
    ) -> MatchOutcome:
        self.handle.require_ready()
        started = time.perf_counter()
        if config.reference_embedding is None or config.reference_embedding.size == 0:
            LOGGER.error("Cannot match photos: %s", ERROR_NO_REFERENCE)
            return MatchOutcome(results=[], stats=MatchSessionStats(), error=ERROR_NO_REFERENCE)

        settings = config.settings
        matcher = ReferenceMatcher(
            config.reference_embedding,
            reference_angle=config.reference_angle,
            match_threshold=settings.match_threshold,
            enable_angle_matching=settings.enable_angle_matching,
        )
        images = filter_images(media)
        LOGGER.info("Processing %d images for face matching...", len(images))

        kept: List[ImageMatchResult] = []
        processed = 0
        for batch_idx, batch in enumerate(iter_batches(images, settings.batch_size)):
            batch_results = await asyncio.gather(
                *(self._match_item(item, matcher, settings) for item in batch)
            )
            # Timed-out detector calls keep their worker threads busy until they return
            await self.handle.drain()
            kept.extend(result for result in batch_results if result is not None)
            processed += len(batch)
            LOGGER.debug(
                "Batch %d done: processed=%d/%d kept=%d",
                batch_idx,
                processed,
                len(images),
                len(kept),
            )
            if on_progress is not None:
                on_progress(MatchSessionStats(images_processed=processed, images_with_matches=len(kept)))
            if processed < len(images) and settings.batch_delay_s > 0:
                await asyncio.sleep(settings.batch_delay_s)

        # list.sort is stable, so equal confidences keep discovery order
        kept.sort(key=lambda r: r.best_match.confidence, reverse=True)
        stats = summarize_session(kept, images_processed=processed)
        elapsed = time.perf_counter() - started
        LOGGER.info(
            "Matching finished in %.2fs: %d/%d images matched, avg confidence %.1f",
            elapsed,
            stats.images_with_matches,
            stats.images_processed,
            stats.average_confidence,
        )
        return MatchOutcome(results=kept, stats=stats, elapsed_s=elapsed)

    async def _match_item(
        self,
        item: MediaItem,
        matcher: ReferenceMatcher,
        settings: MatchSettings,
    ) -> Optional[ImageMatchResult]:
        started = time.perf_counter()
        try:
            image = await self.loader.load(item)
            detections = await detect_with_fallback(
                self.handle,
                image,
                method=settings.detection_method,
                timeout_s=settings.detect_timeout_s,
                label=f"{item.id}: ",
            )
            return matcher.match_image(item, detections, processing_time_s=time.perf_counter() - started)
        except Exception as exc:
            LOGGER.warning("Failed to process %s: %s", item.url, exc)
            return None


class RunTracker:
    """Issues run ids so completions of superseded runs can be discarded."""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def start(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, run_id: int) -> bool:
        return run_id == self._current

    def guard_progress(self, run_id: int, callback: Optional[ProgressCallback]) -> Optional[ProgressCallback]:
        if callback is None:
            return None

        def _guarded(stats: MatchSessionStats) -> None:
            if self.is_current(run_id):
                callback(stats)

        return _guarded

    async def run(self, work: Callable[[int], Awaitable[T]]) -> Optional[T]:
        """Await ``work(run_id)``; return ``None`` if a newer run started meanwhile."""
        run_id = self.start()
        result = await work(run_id)
        if not self.is_current(run_id):
            LOGGER.info("Discarding result of superseded run %d (current=%d)", run_id, self._current)
            return None
        return result


def describe_outcome(outcome: MatchOutcome, settings: MatchSettings) -> str:
    """User-facing summary of a matching run."""
    if outcome.error:
        return "Could not complete matching. Please try again."
    count = len(outcome.results)
    if count == 0:
        return (
            "No matches found. Try lowering the match threshold "
            f"(currently {settings.match_threshold:g})."
        )
    noun = "photo" if count == 1 else "photos"
    return f"Found {count} matching {noun}."
