#!/usr/bin/env python3
"""CLI for checking whether a selfie is usable for photo matching."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from selfiematch.config import load_config
from selfiematch.io_utils import setup_logging
from selfiematch.quality.selfie import SelfieRejectedError, validate_selfie_file
from scripts.find_photos import load_handle


LOGGER = logging.getLogger("scripts.validate_selfie")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate a selfie and print the verdict as JSON")
    parser.add_argument("selfie", type=Path, help="Path to the selfie image")
    parser.add_argument("--config", type=Path, default=None, help="Optional YAML config")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="Execution providers for ONNXRuntime (e.g. CUDAExecutionProvider)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    handle = await load_handle(args, config)
    if not handle.ready:
        LOGGER.error("Face recognition system not ready (status=%s)", handle.status.status)
        return 2
    try:
        result = await validate_selfie_file(
            handle, args.selfie, config.validation, detect_timeout_s=config.matching.detect_timeout_s
        )
    except SelfieRejectedError as exc:
        LOGGER.error("Selfie rejected: %s", exc)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.is_valid else 1


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
