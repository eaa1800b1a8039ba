from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from roster import DayOverride, DayResult, Member, RosterSnapshot, TrackState

MONDAY = date(2024, 1, 1)
SATURDAY = date(2024, 1, 6)


def make_members(count: int, inactive: Iterable[int] = ()) -> List[Member]:
    off = set(inactive)
    return [Member(id=i, name="ABCDEFGHIJKLMNOP"[i - 1], active=i not in off) for i in range(1, count + 1)]


def make_snapshot(
    count: int = 4,
    start: date = MONDAY,
    inactive: Iterable[int] = (),
    tracks: Optional[TrackState] = None,
) -> RosterSnapshot:
    return RosterSnapshot(
        members=make_members(count, inactive),
        tracks=tracks or TrackState(),
        start_date=start,
    )


def set_day(snapshot: RosterSnapshot, day: date, **kwargs) -> DayOverride:
    ov = DayOverride(**kwargs)
    snapshot.day_settings[day.isoformat()] = ov
    return ov


def holders(days: List[DayResult], role_id: str) -> List[Optional[int]]:
    return [d.assignments.get(role_id) for d in days]
