"""Tests for the daily row builder."""

from __future__ import annotations

import pytest

from src.fitness.aggregation import DailyRow, build_rows, format_duration, weighted_average
from src.fitness.base import ActivityRecord, ReadinessDay, SleepDay
from src.fitness.merge_engine import MergedMapping

MILE = 1609.34


def _run(distance_m: float, **fields) -> ActivityRecord:
    return ActivityRecord(date="2025-12-02", distance_m=distance_m, **fields)


class TestFormatDuration:
    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (25200, "7h 0m"),
            (27000, "7h 30m"),
            (5430, "1h 31m"),   # 90.5 minutes rounds up
            (5400, "1h 30m"),
            (3599, "1h 0m"),    # carries instead of "0h 60m"
            (29, "0h 0m"),
        ],
    )
    def test_formats(self, seconds: int, expected: str) -> None:
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize("seconds", [None, 0, -30])
    def test_empty(self, seconds) -> None:
        assert format_duration(seconds) is None


class TestWeightedAverage:
    def test_pace_weighted_by_distance(self) -> None:
        """Distances 2 and 4, paces 8.0 and 9.0 → 8.666..."""
        runs = [_run(2 * MILE, pace=8.0), _run(4 * MILE, pace=9.0)]
        assert weighted_average(runs, lambda r: r.pace) == pytest.approx(52 / 6)

    def test_runs_without_metric_excluded(self) -> None:
        runs = [_run(2 * MILE, average_heartrate=150.0), _run(4 * MILE, average_heartrate=None)]
        assert weighted_average(runs, lambda r: r.average_heartrate) == pytest.approx(150.0)

    def test_no_qualifying_runs(self) -> None:
        assert weighted_average([_run(MILE, pace=None)], lambda r: r.pace) is None
        assert weighted_average([], lambda r: r.pace) is None


class TestBuildRows:
    def test_one_row_per_day_with_gaps(self, merge_config) -> None:
        """Only day 3 of 5 has data; every other day is zero/null."""
        mapping = MergedMapping()
        entry = mapping.get_or_create("2025-12-03")
        entry.runs.append(ActivityRecord(date="2025-12-03", distance_m=MILE, pace=9.0))
        entry.readiness = ReadinessDay("2025-12-03", 74)

        rows = build_rows(mapping, "2025-12-01", "2025-12-05", merge_config)

        assert [r.date for r in rows] == [
            "2025-12-01", "2025-12-02", "2025-12-03", "2025-12-04", "2025-12-05",
        ]
        for row in rows[:2] + rows[3:]:
            assert row == DailyRow(date=row.date)
        assert rows[2].distance == 1.0
        assert rows[2].pace == 9.0
        assert rows[2].readiness_score == 74

    def test_weighted_row_metrics(self, merge_config) -> None:
        mapping = MergedMapping()
        mapping.get_or_create("2025-12-02").runs.extend(
            [
                _run(2 * MILE, pace=8.0, average_heartrate=140.0, max_heartrate=160.0, cadence=170.0),
                _run(4 * MILE, pace=9.0, average_heartrate=151.0, max_heartrate=175.0, cadence=160.0),
            ]
        )
        (row,) = build_rows(mapping, "2025-12-02", "2025-12-02", merge_config)

        assert row.distance == 6.0
        assert row.pace == 8.67
        assert row.average_heartrate == 147       # (280 + 604) / 6 = 147.33
        assert row.cadence == 163                 # (340 + 640) / 6 = 163.33
        assert row.max_heartrate == 175.0

    def test_heart_rate_rounds_half_up(self, merge_config) -> None:
        mapping = MergedMapping()
        mapping.get_or_create("2025-12-02").runs.extend(
            [_run(1000.0, average_heartrate=150.0), _run(1000.0, average_heartrate=151.0)]
        )
        (row,) = build_rows(mapping, "2025-12-02", "2025-12-02", merge_config)
        assert row.average_heartrate == 151

    def test_sleep_columns(self, merge_config) -> None:
        mapping = MergedMapping()
        mapping.get_or_create("2025-12-01").sleep = SleepDay(
            "2025-12-01", total=25200, rem=5400, deep=4500, light=15300, score=85
        )
        (row,) = build_rows(mapping, "2025-12-01", "2025-12-01", merge_config)
        assert (row.sleep, row.rem, row.deep, row.light) == ("7h 0m", "1h 30m", "1h 15m", "4h 15m")
        assert row.sleep_score == 85
        assert row.distance == 0.0
        assert row.pace is None

    def test_score_without_durations(self, merge_config) -> None:
        mapping = MergedMapping()
        mapping.get_or_create("2025-12-01").sleep = SleepDay("2025-12-01", score=77)
        (row,) = build_rows(mapping, "2025-12-01", "2025-12-01", merge_config)
        assert row.sleep is None
        assert row.sleep_score == 77

    def test_deterministic(self, merge_config) -> None:
        mapping = MergedMapping()
        mapping.get_or_create("2025-12-02").runs.append(_run(5000.0, pace=8.05))
        assert build_rows(mapping, "2025-12-01", "2025-12-03", merge_config) == build_rows(
            mapping, "2025-12-01", "2025-12-03", merge_config
        )
