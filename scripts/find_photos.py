#!/usr/bin/env python3
"""CLI for finding an attendee's photos in an event gallery from a selfie."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from tqdm import tqdm

from selfiematch.config import AppConfig, MatchSettings, load_config
from selfiematch.detectors.face_insight import build_fallback_provider, build_provider
from selfiematch.detectors.provider import ProviderHandle, initialize_provider
from selfiematch.io_utils import dump_json, ensure_dir, load_json, setup_logging
from selfiematch.matching.engine import BatchMatchingEngine, MatchOutcome, MatchSessionConfig, describe_outcome
from selfiematch.matching.media import HttpImageLoader, filter_images, media_summary, parse_media_items
from selfiematch.quality.selfie import SelfieRejectedError, validate_selfie_file
from selfiematch.viz.overlay import write_overlay


LOGGER = logging.getLogger("scripts.find_photos")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find photos of the selfie's owner in an event gallery")
    parser.add_argument("selfie", type=Path, help="Path to the selfie image")
    parser.add_argument(
        "media",
        type=Path,
        help="Event JSON (with a mediaFiles list) or a JSON list of media entries",
    )
    parser.add_argument("--config", type=Path, default=None, help="Optional YAML config (see configs/matching.yaml)")
    parser.add_argument("--output-dir", type=Path, default=Path("matches"), help="Where results are written")
    parser.add_argument("--threshold", type=float, default=None, help="Minimum match confidence (0-100)")
    parser.add_argument(
        "--method",
        choices=["tiny", "ssd", "accurate", "both"],
        default=None,
        help="Detector preference: accurate first with fast fallback (both), or one only",
    )
    parser.add_argument(
        "--no-angle-matching",
        action="store_true",
        help="Disable pose-aware confidence adjustment",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Images processed concurrently per batch")
    parser.add_argument("--timeout", type=float, default=None, help="Per-call detector timeout in seconds")
    parser.add_argument("--overlays", action="store_true", help="Write annotated copies of matched photos")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="Execution providers for ONNXRuntime (e.g. CUDAExecutionProvider)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace, config: AppConfig) -> MatchSettings:
    """Apply CLI overrides on top of the configured match settings."""
    overrides = {}
    if getattr(args, "threshold", None) is not None:
        overrides["match_threshold"] = float(args.threshold)
    if getattr(args, "method", None) is not None:
        overrides["detection_method"] = args.method
    if getattr(args, "no_angle_matching", False):
        overrides["enable_angle_matching"] = False
    if getattr(args, "batch_size", None) is not None:
        overrides["batch_size"] = int(args.batch_size)
    if getattr(args, "timeout", None) is not None:
        overrides["detect_timeout_s"] = float(args.timeout)
    return replace(config.matching, **overrides)


async def load_handle(args: argparse.Namespace, config: AppConfig) -> ProviderHandle:
    provider_cfg = config.provider
    if args.providers:
        provider_cfg = replace(provider_cfg, onnx_providers=tuple(args.providers))
    fallback = None
    if provider_cfg.fallback_model_name:
        fallback = lambda: build_fallback_provider(provider_cfg)  # noqa: E731
    return await initialize_provider(
        lambda: build_provider(provider_cfg),
        fallback_factory=fallback,
        detector_options=config.detector_options(),
    )


async def run(args: argparse.Namespace, config: AppConfig) -> int:
    settings = resolve_settings(args, config)
    handle = await load_handle(args, config)
    if not handle.ready:
        LOGGER.error("Face recognition system not ready (status=%s)", handle.status.status)
        return 2

    try:
        validation = await validate_selfie_file(
            handle, args.selfie, config.validation, detect_timeout_s=settings.detect_timeout_s
        )
    except SelfieRejectedError as exc:
        LOGGER.error("Selfie rejected: %s", exc)
        return 1
    for issue in validation.issues:
        LOGGER.warning("Selfie: %s", issue)
    if not validation.is_valid:
        LOGGER.error("Selfie is not usable for matching")
        return 1

    media = parse_media_items(load_json(args.media))
    LOGGER.info("Media collection: %s", media_summary(media))
    images = filter_images(media)

    output_dir = ensure_dir(args.output_dir)
    session = MatchSessionConfig.from_validation(validation, settings)
    async with HttpImageLoader(base_dir=args.media.parent) as loader:
        engine = BatchMatchingEngine(handle, loader)
        with tqdm(total=len(images), desc="Scanning photos", unit="img") as bar:
            def on_progress(stats) -> None:
                bar.update(stats.images_processed - bar.n)
                bar.set_postfix(matches=stats.images_with_matches)

            outcome: MatchOutcome = await engine.run(session, media, on_progress=on_progress)

        if args.overlays and settings.show_face_boxes:
            overlay_dir = ensure_dir(output_dir / "overlays")
            for result in outcome.results:
                try:
                    image = await loader.load(result.source)
                except Exception as exc:
                    LOGGER.warning("Skipping overlay for %s: %s", result.source.id, exc)
                    continue
                write_overlay(image, result, settings.match_threshold, overlay_dir)

    dump_json(
        output_dir / "matches.json",
        {
            "validation": validation.to_dict(),
            "settings": settings,
            **outcome.to_dict(),
        },
    )
    LOGGER.info(describe_outcome(outcome, settings))
    LOGGER.info("Results written to %s", output_dir / "matches.json")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = load_config(args.config)
    sys.exit(asyncio.run(run(args, config)))


if __name__ == "__main__":
    main()
