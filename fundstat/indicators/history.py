#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Access to earlier fund snapshots for year-ago prices, trailing dividends and
monthly return series.

Snapshots are stored one per JSON file:
    {"taken_at": "2025-01-31T00:00:00+00:00", "data": {...FundStructureData...}}
"""
from __future__ import annotations

from bisect import bisect_left
import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union
import json
import logging

from ..shared.errors import FundStatError
from ..shared.models import FundStructureData

log = logging.getLogger(__name__)


class HistoricalIndicatorAccessor(Protocol):
    def nearest_before(self, when: datetime) -> Optional[FundStructureData]:
        """Latest snapshot taken at or before `when`, None if there is none."""
        ...


@dataclass(frozen=True)
class Snapshot:
    taken_at: datetime
    data: FundStructureData


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SnapshotHistory:
    """In-memory snapshot list kept sorted by time."""

    def __init__(self, snapshots: Sequence[Snapshot] = ()) -> None:
        self._snapshots: List[Snapshot] = sorted(
            (Snapshot(_as_utc(s.taken_at), s.data) for s in snapshots), key=lambda s: s.taken_at
        )

    def __len__(self) -> int:
        return len(self._snapshots)

    def add(self, taken_at: datetime, data: FundStructureData) -> None:
        snap = Snapshot(_as_utc(taken_at), data)
        keys = [s.taken_at for s in self._snapshots]
        self._snapshots.insert(bisect_left(keys, snap.taken_at), snap)

    def nearest_before(self, when: datetime) -> Optional[FundStructureData]:
        when = _as_utc(when)
        best: Optional[Snapshot] = None
        for snap in self._snapshots:
            if snap.taken_at > when:
                break
            best = snap
        return best.data if best is not None else None


def months_before(when: datetime, months: int) -> datetime:
    """Same day `months` calendar months earlier, clamped to the month's end."""
    total = when.year * 12 + (when.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(when.day, calendar.monthrange(year, month)[1])
    return when.replace(year=year, month=month, day=day)


def lookup_snapshot(history: Optional[HistoricalIndicatorAccessor], when: datetime) -> Optional[FundStructureData]:
    """nearest_before() that logs accessor failures and degrades to None."""
    if history is None:
        return None
    try:
        return history.nearest_before(when)
    except (OSError, ValueError, FundStatError) as e:
        log.warning(f"Historical snapshot lookup failed date={when.date()} error={e}")
        return None


def load_history_dir(path: Union[str, Path]) -> SnapshotHistory:
    """
    Load every *.json snapshot under `path`.

    Unreadable files are skipped with a warning; a missing directory yields an
    empty history.
    """
    directory = Path(path)
    if not directory.is_dir():
        log.warning(f"History directory not found: {directory}")
        return SnapshotHistory()

    snapshots: List[Snapshot] = []
    for file in sorted(directory.glob("*.json")):
        try:
            with open(file, "r", encoding="utf-8") as f:
                raw = json.load(f)
            taken_at = datetime.fromisoformat(str(raw["taken_at"]))
            data = FundStructureData.from_dict(raw["data"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning(f"Skipping unreadable snapshot {file.name}: {e}")
            continue
        snapshots.append(Snapshot(taken_at, data))

    log.info(f"Loaded {len(snapshots)} historical snapshots from {directory}")
    return SnapshotHistory(snapshots)


def save_snapshot(path: Union[str, Path], taken_at: datetime, data: FundStructureData) -> Path:
    """Write a snapshot file named after its UTC timestamp."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    taken_at = _as_utc(taken_at)
    file = directory / f"snapshot_{taken_at.strftime('%Y%m%dT%H%M%SZ')}.json"
    with open(file, "w", encoding="utf-8") as f:
        json.dump({"taken_at": taken_at.isoformat(), "data": data.to_dict()}, f, indent=2)
    return file
