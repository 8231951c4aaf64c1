#!/usr/bin/env python3
"""
Bar Window - Replay CLI

Feeds a CSV of OHLCV bars through a BarBuffer, prints the newest slot
and optionally persists the buffer state for a later run to resume.

Usage:
  python main.py data/btc.csv --capacity 30 --extended --state-out state/btc.json
  python main.py data/btc_next.csv --state-in state/btc.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from barwindow.core.codec import load_state, save_state
from barwindow.core.config import ConfigManager
from barwindow.core.errors import BarWindowError
from barwindow.core.logger import get_logger, log_performance, setup_logging
from barwindow.core.models import BarData
from barwindow.core.structures import BarBuffer

REQUIRED_COLUMNS = {"open", "high", "low", "close", "volume"}


def load_bars(csv_path: str) -> List[BarData]:
    """Read bars from CSV; a datetime column is parsed as UTC, time/timestamp as epoch seconds."""
    df = pd.read_csv(csv_path)
    df.columns = [c.strip().lower() for c in df.columns]
    if not REQUIRED_COLUMNS.issubset(set(df.columns)):
        raise SystemExit(f"CSV missing required columns: {sorted(REQUIRED_COLUMNS)}")

    if "datetime" in df.columns:
        df["datetime"] = pd.to_datetime(df["datetime"], utc=True)

    return [BarData.from_dict(row) for row in df.to_dict("records")]


def replay(buffer: BarBuffer, bars: List[BarData]) -> BarBuffer:
    """Push every bar through the buffer in order."""
    for bar in bars:
        buffer.update_bar(bar)
    return buffer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay OHLCV bars through a rolling bar window")
    parser.add_argument("csv", help="CSV path with open/high/low/close/volume columns")
    parser.add_argument("--config", default="config/config.yaml")
    parser.add_argument("--capacity", type=int, default=None, help="Override buffer.capacity")
    parser.add_argument("--extended", action="store_true", help="Track timestamp/OI/volatility/amplitude")
    parser.add_argument("--periods-per-year", type=float, default=None)
    parser.add_argument("--state-in", default="", help="Resume from a saved JSON state")
    parser.add_argument("--state-out", default="", help="Write the final JSON state here")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.state_in and (args.capacity is not None or args.extended or args.periods_per_year is not None):
        parser.error("--state-in restores capacity and mode from the state; "
                     "--capacity/--extended/--periods-per-year cannot be combined with it")

    config = ConfigManager().load(args.config)
    setup_logging(
        log_level=config.app.log_level,
        log_dir=config.app.log_dir,
        json_output=config.app.json_logs,
    )
    logger = get_logger("main")

    overrides = {}
    if args.capacity is not None:
        overrides["capacity"] = args.capacity
    if args.extended:
        overrides["extended_mode"] = True
    if args.periods_per_year is not None:
        overrides["periods_per_year"] = args.periods_per_year
    buffer_config = config.buffer.model_copy(update=overrides)

    try:
        if args.state_in:
            buffer = load_state(args.state_in)
        else:
            buffer = BarBuffer.from_config(buffer_config)

        bars = load_bars(args.csv)
        with log_performance(logger, "Replay", bars=len(bars)):
            replay(buffer, bars)
    except BarWindowError as e:
        logger.error("Replay aborted", error=str(e), csv=args.csv)
        return 1

    logger.info(
        "Replay complete",
        capacity=buffer.capacity,
        count=buffer.count,
        warmed_up=buffer.warmed_up,
        extended_mode=buffer.extended_mode,
    )
    print(buffer.to_dataframe().tail(1).to_string(index=False))

    if args.state_out:
        save_state(buffer, Path(args.state_out))
        print(f"\nSaved state to {args.state_out}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
