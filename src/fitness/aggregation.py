"""Per-day presentation rows built from a merged mapping.

One row per calendar day in the requested range, gaps included.  Distance is
summed; pace, heart rate and cadence are distance-weighted over the runs
that actually report the metric.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable

from src.fitness.base import ActivityRecord, MergedDayEntry, iter_date_keys
from src.fitness.config_loader import MergeConfig, get_merge_config
from src.fitness.merge_engine import MergedMapping


@dataclass
class DailyRow:
    date: str
    distance: float = 0.0
    sleep: str | None = None
    light: str | None = None
    rem: str | None = None
    deep: str | None = None
    sleep_score: int | None = None
    readiness_score: int | None = None
    pace: float | None = None
    average_heartrate: int | None = None
    max_heartrate: float | None = None
    cadence: int | None = None


def round_half_up(value: float, ndigits: int = 0) -> float:
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_int(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_duration(seconds: int | None) -> str | None:
    """Format seconds as ``"{h}h {m}m"``.

    Minutes are rounded half-up and carried into hours, so 3599 s is
    ``"1h 0m"``.  Returns None for missing or non-positive input.
    """
    if not seconds or seconds <= 0:
        return None
    total_minutes = round_int(seconds / 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def weighted_average(
    runs: Iterable[ActivityRecord],
    metric: Callable[[ActivityRecord], float | None],
) -> float | None:
    """Distance-weighted mean of a metric over runs reporting a positive value.

    Returns None when no run qualifies or the qualifying runs have no
    distance.
    """
    weighted = 0.0
    total_distance = 0.0
    for run in runs:
        value = metric(run)
        if value is None or value <= 0:
            continue
        weighted += value * run.distance_m
        total_distance += run.distance_m
    if total_distance <= 0:
        return None
    return weighted / total_distance


def build_row(date_key: str, entry: MergedDayEntry | None, config: MergeConfig) -> DailyRow:
    row = DailyRow(date=date_key)
    if entry is None:
        return row

    runs = entry.runs
    total_meters = sum(run.distance_m for run in runs)
    row.distance = round_half_up(total_meters / config.units.meters_per_distance_unit, 2)

    pace = weighted_average(runs, lambda r: r.pace)
    row.pace = round_half_up(pace, 2) if pace is not None else None

    heartrate = weighted_average(runs, lambda r: r.average_heartrate)
    row.average_heartrate = round_int(heartrate) if heartrate is not None else None

    cadence = weighted_average(runs, lambda r: r.cadence)
    row.cadence = round_int(cadence) if cadence is not None else None

    max_rates = [r.max_heartrate for r in runs if r.max_heartrate is not None and r.max_heartrate > 0]
    row.max_heartrate = max(max_rates) if max_rates else None

    if entry.sleep is not None:
        row.sleep = format_duration(entry.sleep.total)
        row.light = format_duration(entry.sleep.light)
        row.rem = format_duration(entry.sleep.rem)
        row.deep = format_duration(entry.sleep.deep)
        row.sleep_score = entry.sleep.score
    if entry.readiness is not None:
        row.readiness_score = entry.readiness.score
    return row


def build_rows(
    mapping: MergedMapping,
    start: str,
    end: str,
    config: MergeConfig | None = None,
) -> list[DailyRow]:
    """Build one row per day in [start, end], ascending, zero-filled."""
    cfg = config or get_merge_config()
    return [build_row(date_key, mapping.get(date_key), cfg) for date_key in iter_date_keys(start, end)]
