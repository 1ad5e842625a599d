#!/usr/bin/env python3
"""CLI for exporting matches JSON into CSV."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from selfiematch.io_utils import load_json, setup_logging
from selfiematch.matching.aggregate import results_from_json


LOGGER = logging.getLogger("scripts.export_matches")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Convert matches JSON to CSV")
    parser.add_argument("matches_json", type=Path, help="Path to matches.json")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Optional output CSV path (defaults to same stem .csv)",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Only export images whose best match reaches this confidence",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging()

    df = results_from_json(load_json(args.matches_json))
    if args.min_confidence is not None:
        df = df[df["best_confidence"] >= args.min_confidence]
    output_path = args.output or args.matches_json.with_suffix(".csv")
    df.to_csv(output_path, index=False)
    LOGGER.info("Exported %d matches to %s", len(df), output_path)


if __name__ == "__main__":
    main()
