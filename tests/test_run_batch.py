"""
Tests for scripts/run_batch.py: the one-off batch runner's argument parsing.
"""

from __future__ import annotations

import importlib.util
from datetime import date
from pathlib import Path

import pytest

_SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "run_batch.py"
_module_def = importlib.util.spec_from_file_location("run_batch", _SCRIPT)
run_batch = importlib.util.module_from_spec(_module_def)
_module_def.loader.exec_module(run_batch)


def test_aggregate_args() -> None:
    args = run_batch.parse_args(["aggregate", "--category", "pokemon", "--force", "--run-date", "2026-03-01"])
    assert args.job == "aggregate"
    assert args.category == "pokemon"
    assert args.force is True
    assert args.run_date == date(2026, 3, 1)


def test_ingest_defaults() -> None:
    args = run_batch.parse_args(["ingest"])
    assert args.source == "ebay_sold"
    assert args.limit is None
    assert args.market_item_ids is None


def test_repeatable_item_filter() -> None:
    args = run_batch.parse_args(["ingest", "--source", "cardmarket", "--item", "a", "--item", "b"])
    assert args.market_item_ids == ["a", "b"]


def test_unknown_source_rejected() -> None:
    with pytest.raises(SystemExit):
        run_batch.parse_args(["ingest", "--source", "tcgplayer"])
