"""Core merge engine: Strava runs + Oura sleep/readiness → one per-date mapping.

Overlay order, applied to a single MergedMapping:

1. Seed sleep entries from daily_sleep scores, pulling durations from the
   aggregated sleep sessions when they exist.
2. Overlay aggregated sleep sessions.  Durations fill only an empty total
   (first non-zero wins); a session score always replaces the current score
   (last write wins).
3. Overlay readiness scores.
4. Append runs in fetch order.

The score/duration asymmetry in step 2 is intentional.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from src.fitness.base import (
    ActivityRecord,
    MergedDayEntry,
    ReadinessDay,
    ScoreRecord,
    SleepDay,
    SleepSession,
)

logger = logging.getLogger("stridesleep.fitness.merge")

SOURCE_DAILY_SLEEP = "daily_sleep"
SOURCE_SLEEP = "sleep"
SOURCE_READINESS = "daily_readiness"
SOURCE_STRAVA = "strava"


# ---------------------------------------------------------------------------
# Mapping type
# ---------------------------------------------------------------------------


class MergedMapping:
    """DateKey → MergedDayEntry with a single creation path.

    ``get_or_create`` is the only way entries come into existence, which keeps
    every DateKey unique.  ``provenance`` records which upstream series last
    wrote each field of each date.
    """

    def __init__(self) -> None:
        self._entries: dict[str, MergedDayEntry] = {}
        self.provenance: dict[str, dict[str, str]] = defaultdict(dict)

    def get_or_create(self, date_key: str) -> MergedDayEntry:
        entry = self._entries.get(date_key)
        if entry is None:
            entry = MergedDayEntry(date=date_key)
            self._entries[date_key] = entry
        return entry

    def get(self, date_key: str) -> MergedDayEntry | None:
        return self._entries.get(date_key)

    def record(self, date_key: str, source: str, *fields: str) -> None:
        for name in fields:
            self.provenance[date_key][name] = source

    def __contains__(self, date_key: object) -> bool:
        return date_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def entries(self) -> Iterator[MergedDayEntry]:
        """Yield entries in ascending DateKey order."""
        for key in sorted(self._entries):
            yield self._entries[key]

    def items(self) -> Iterator[tuple[str, MergedDayEntry]]:
        for key in sorted(self._entries):
            yield key, self._entries[key]

    def filter_range(self, start: str, end: str) -> "MergedMapping":
        """Return a new mapping holding only dates within [start, end]."""
        subset = MergedMapping()
        for key, entry in self.items():
            if start <= key <= end:
                subset._entries[key] = entry
                if key in self.provenance:
                    subset.provenance[key] = dict(self.provenance[key])
        return subset

    def trace(self, date_keys: Iterable[str]) -> None:
        """Log per-field provenance for the given dates."""
        for key in date_keys:
            entry = self._entries.get(key)
            if entry is None:
                logger.info("Trace %s: no merged entry", key)
                continue
            logger.info(
                "Trace %s: sleep=%s readiness=%s runs=%d sources=%s",
                key,
                entry.sleep,
                entry.readiness.score if entry.readiness else None,
                len(entry.runs),
                dict(self.provenance.get(key, {})),
            )


# ---------------------------------------------------------------------------
# Session aggregation
# ---------------------------------------------------------------------------


def aggregate_sleep_by_day(sessions: Iterable[SleepSession]) -> dict[str, SleepSession]:
    """Reconcile raw sleep periods into one total per DateKey.

    Durations are summed across every session sharing a date (naps included).
    The score is the last non-null session score seen.
    """
    by_date: dict[str, SleepSession] = {}
    for session in sessions:
        day = by_date.get(session.date)
        if day is None:
            day = SleepSession(date=session.date)
            by_date[session.date] = day
        day.total += session.total
        day.rem += session.rem
        day.deep += session.deep
        day.light += session.light
        if session.score is not None:
            day.score = session.score
    return by_date


# ---------------------------------------------------------------------------
# Overlay steps
# ---------------------------------------------------------------------------


def seed_sleep_scores(
    mapping: MergedMapping,
    scores: Iterable[ScoreRecord],
    sleep_by_date: dict[str, SleepSession],
) -> None:
    """Step 1: one sleep entry per daily_sleep score."""
    for record in scores:
        aggregate = sleep_by_date.get(record.date)
        entry = mapping.get_or_create(record.date)
        entry.sleep = SleepDay(
            date=record.date,
            total=aggregate.total if aggregate else None,
            rem=aggregate.rem if aggregate else None,
            deep=aggregate.deep if aggregate else None,
            light=aggregate.light if aggregate else None,
            score=record.score,
        )
        mapping.record(record.date, SOURCE_DAILY_SLEEP, "sleep.score")
        if aggregate:
            mapping.record(record.date, SOURCE_SLEEP, "sleep.durations")


def overlay_sleep_session(mapping: MergedMapping, aggregate: SleepSession) -> None:
    """Step 2 for one date: fill empty durations, let the session score win."""
    entry = mapping.get_or_create(aggregate.date)

    if entry.sleep is None:
        entry.sleep = SleepDay(
            date=aggregate.date,
            total=aggregate.total,
            rem=aggregate.rem,
            deep=aggregate.deep,
            light=aggregate.light,
            score=aggregate.score,
        )
        mapping.record(aggregate.date, SOURCE_SLEEP, "sleep.durations")
        if aggregate.score is not None:
            mapping.record(aggregate.date, SOURCE_SLEEP, "sleep.score")
        return

    sleep = entry.sleep
    if not sleep.has_total and aggregate.total > 0:
        sleep.total = aggregate.total
        sleep.rem = aggregate.rem
        sleep.deep = aggregate.deep
        sleep.light = aggregate.light
        mapping.record(aggregate.date, SOURCE_SLEEP, "sleep.durations")
        logger.debug("Filled sleep durations for %s: %ss", aggregate.date, aggregate.total)

    if aggregate.score is not None:
        sleep.score = aggregate.score
        mapping.record(aggregate.date, SOURCE_SLEEP, "sleep.score")


def overlay_readiness(mapping: MergedMapping, scores: Iterable[ScoreRecord]) -> None:
    """Step 3."""
    for record in scores:
        entry = mapping.get_or_create(record.date)
        entry.readiness = ReadinessDay(date=record.date, score=record.score)
        mapping.record(record.date, SOURCE_READINESS, "readiness.score")


def append_runs(mapping: MergedMapping, runs: Iterable[ActivityRecord]) -> None:
    """Step 4: runs keep source fetch order within a day."""
    for run in runs:
        mapping.get_or_create(run.date).runs.append(run)
        mapping.record(run.date, SOURCE_STRAVA, "runs")


def merge_sources(
    runs: Iterable[ActivityRecord],
    sleep_scores: Iterable[ScoreRecord],
    sleep_sessions: Iterable[SleepSession],
    readiness: Iterable[ScoreRecord],
) -> MergedMapping:
    """Merge all four upstream series into one mapping.

    This is a pure, synchronous computation; all fetching happens before it.
    """
    sleep_by_date = aggregate_sleep_by_day(sleep_sessions)

    mapping = MergedMapping()
    seed_sleep_scores(mapping, sleep_scores, sleep_by_date)
    for aggregate in sleep_by_date.values():
        overlay_sleep_session(mapping, aggregate)
    overlay_readiness(mapping, readiness)
    append_runs(mapping, runs)
    return mapping


# ---------------------------------------------------------------------------
# Top-level engine
# ---------------------------------------------------------------------------


@dataclass
class MergeInputs:
    """Everything the engine needs, already fetched."""

    runs: list[ActivityRecord] = field(default_factory=list)
    sleep_scores: list[ScoreRecord] = field(default_factory=list)
    sleep_sessions: list[SleepSession] = field(default_factory=list)
    readiness: list[ScoreRecord] = field(default_factory=list)


class MergeEngine:
    """Runs the merge and emits parameterized diagnostics.

    Usage::

        engine = MergeEngine(trace_dates=["2025-12-30"])
        mapping = engine.run(inputs)
    """

    def __init__(self, trace_dates: Iterable[str] | None = None) -> None:
        self._trace_dates = list(trace_dates or [])

    def run(self, inputs: MergeInputs) -> MergedMapping:
        mapping = merge_sources(
            inputs.runs,
            inputs.sleep_scores,
            inputs.sleep_sessions,
            inputs.readiness,
        )
        dates_with_runs = sum(1 for entry in mapping.entries() if entry.runs)
        logger.info(
            "Merged %d dates (%d runs, %d sleep scores, %d sleep sessions, %d readiness); %d dates with runs",
            len(mapping),
            len(inputs.runs),
            len(inputs.sleep_scores),
            len(inputs.sleep_sessions),
            len(inputs.readiness),
            dates_with_runs,
        )
        if self._trace_dates:
            mapping.trace(self._trace_dates)
        return mapping
