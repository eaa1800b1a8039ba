"""
Day-by-day duty assignment.

Rules in force:
- Each track keeps a rotation pointer into the full roster (roster order).
- A member who is due but skipped (absent, or already holding a role of the
  same class today) is owed a turn on that track; owed turns are redeemed
  before the pointer is consulted, largest debt first, then lowest id.
- Inactive members are stepped over without being owed anything.
- The cleaning pair shares one track and slides by exactly one position per
  working day, so today's second cleaner is tomorrow's first.
- Weekends are holidays unless a day override says otherwise; holidays assign
  nobody and leave the track state untouched.

Nothing here mutates the caller's snapshot. run() works on a TrackState.copy()
and hands the result back; writing it anywhere is the caller's decision.
"""

import calendar
import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import List, Set, Tuple, Dict, Optional, Sequence

from roster import (
    ROLES_BY_ID, ROLES_BY_TRACK, TRACKS,
    DayResult, Member, RoleClass, RosterSnapshot, TrackState,
    SimulationRangeError, StaleScheduleError,
    daterange, is_holiday,
)

logger = logging.getLogger(__name__)

# ========= Conflict checker =========

def may_assign(member_id: int, role_id: str, assignments: Dict[str, Optional[int]]) -> bool:
    """
    A member may not hold two different roles of the same role-class on one day
    (speech + comment, clean_a + clean_b). Anything across classes is fine.
    """
    role_class = ROLES_BY_ID[role_id].role_class
    for held_id, holder in assignments.items():
        if holder != member_id or held_id == role_id:
            continue
        if ROLES_BY_ID[held_id].role_class is role_class:
            return False
    return True

# ========= Candidate resolver =========

def resolve(
    track: str,
    role_id: str,
    members: List[Member],
    available: Set[int],
    assignments: Dict[str, Optional[int]],
    state: TrackState,
) -> Optional[int]:
    """
    Pick who fills `role_id` today, mutating `state`.

    1) Debt pass: available members owing turns on `track`, by (debt desc, id).
       The first one without a same-day conflict takes the slot and pays one
       turn back; the pointer stays where it is.
    2) Rotation pass: walk at most one lap from the pointer.
       - inactive        -> step over, no debt
       - absent today    -> +1 debt, step over
       - conflicting     -> +1 debt, step over
       - otherwise       -> chosen; pointer moves past them
    Returns None when nobody qualifies within the lap.
    """
    owing = [m for m in members if m.active and m.id in available and state.debt(m.id, track) > 0]
    owing.sort(key=lambda m: (-state.debt(m.id, track), m.id))
    for m in owing:
        if may_assign(m.id, role_id, assignments):
            state.redeem_debt(m.id, track)
            logger.debug("%s: %s from debt on %s", role_id, m.name, track)
            return m.id

    total = len(members)
    for _ in range(total):
        candidate = members[state.pointer(track) % total]
        if not candidate.active:
            state.advance(track, total)
            continue
        if candidate.id not in available or not may_assign(candidate.id, role_id, assignments):
            state.add_debt(candidate.id, track)
            state.advance(track, total)
            logger.debug("%s: skipped %s, now owed on %s", role_id, candidate.name, track)
            continue
        state.advance(track, total)
        return candidate.id
    return None

# ========= Paired-role scheduler =========

def resolve_pair(
    track: str,
    role_ids: Sequence[str],
    members: List[Member],
    available: Set[int],
    assignments: Dict[str, Optional[int]],
    state: TrackState,
) -> Dict[str, Optional[int]]:
    """
    Fill several slots from one shared track, one after another.

    Each pick is written into `assignments` before the next slot is resolved,
    so the conflict checker keeps the same member out of a second slot.

    Post-condition (sliding window): the track pointer ends at start + 1, where
    start is its value before this call, however far the search walked. Debts
    recorded during the search stay. With nobody absent this gives overlapping
    pairs day to day: (1, 2) -> (2, 3) -> (3, 4).
    """
    picks: Dict[str, Optional[int]] = {}
    if not members:
        return {rid: None for rid in role_ids}
    start = state.pointer(track)
    for rid in role_ids:
        picks[rid] = resolve(track, rid, members, available, assignments, state)
        assignments[rid] = picks[rid]
    state.set_pointer(track, start + 1, len(members))
    return picks

# ========= Day simulator =========

def _suppressed(track: str, no_cleaning: bool) -> bool:
    return no_cleaning and any(r.role_class is RoleClass.CLEANING for r in ROLES_BY_TRACK[track])

def assign_day(snapshot: RosterSnapshot, day: date, state: TrackState) -> DayResult:
    ov = snapshot.override_for(day)
    result = DayResult(
        date=day,
        is_holiday=is_holiday(snapshot, day),
        no_cleaning=ov.no_cleaning,
        absentees=tuple(sorted(ov.absentees)),
    )
    if result.is_holiday:
        return result

    members = snapshot.members
    available = {m.id for m in members if m.active and m.id not in ov.absentees}
    assignments = result.assignments
    for track in TRACKS:
        if _suppressed(track, result.no_cleaning):
            continue
        roles = ROLES_BY_TRACK[track]
        if len(roles) == 1:
            assignments[roles[0].id] = resolve(track, roles[0].id, members, available, assignments, state)
        else:
            resolve_pair(track, [r.id for r in roles], members, available, assignments, state)

    for rid, mid in assignments.items():
        if mid is None:
            logger.info("%s: nobody available for %s", result.key, rid)
    return result

def run(snapshot: RosterSnapshot, day_count: int) -> Tuple[List[DayResult], TrackState]:
    """
    Simulate `day_count` days from the snapshot's start date.

    Returns the day results and the track state they leave behind. The
    snapshot's own TrackState is copied first and never modified.
    """
    state = snapshot.tracks.copy()
    if day_count < 0:
        logger.warning("Negative day count %d; nothing to simulate", day_count)
        return [], state
    days = [assign_day(snapshot, d, state) for d in daterange(snapshot.start_date, day_count)]
    return days, state

def simulate(snapshot: RosterSnapshot, day_count: int) -> List[DayResult]:
    return run(snapshot, day_count)[0]

def simulate_window(snapshot: RosterSnapshot, first: date, last: date) -> List[DayResult]:
    """
    Days in [first, last] as the rotation would produce them when started at
    snapshot.start_date. Days before the start date are simply not there.
    """
    if last < first:
        raise SimulationRangeError(f"Window end {last} is before its start {first}.")
    if last < snapshot.start_date:
        raise SimulationRangeError(
            f"Window ending {last} is before the roster start date {snapshot.start_date}."
        )
    days = simulate(snapshot, (last - snapshot.start_date).days + 1)
    return [d for d in days if d.date >= first]

def simulate_month(snapshot: RosterSnapshot, year: int, month: int) -> List[DayResult]:
    last_day = calendar.monthrange(year, month)[1]
    return simulate_window(snapshot, date(year, month, 1), date(year, month, last_day))

# ========= Commit =========

def commit(snapshot: RosterSnapshot, days: List[DayResult]) -> TrackState:
    """
    Track state after the given simulated days, for the caller to store.

    The days are replayed from the snapshot; if the replay differs the schedule
    was produced from some other roster state and nothing is returned.
    """
    replay, state = run(snapshot, len(days))
    if replay != list(days):
        raise StaleScheduleError("Schedule does not match the current roster; simulate again.")
    logger.info(
        "Committing %d day(s) from %s: pointers %s",
        len(days), snapshot.start_date.isoformat(), state.pointers,
    )
    return state

def advance(snapshot: RosterSnapshot, days: List[DayResult]) -> RosterSnapshot:
    """
    New snapshot starting the day after the last committed day, carrying the
    committed track state. Overrides for days already behind it are dropped.
    """
    state = commit(snapshot, days)
    new_start = days[-1].date + timedelta(days=1) if days else snapshot.start_date
    return RosterSnapshot(
        members=[replace(m) for m in snapshot.members],
        tracks=state,
        start_date=new_start,
        day_settings={
            k: replace(v, absentees=set(v.absentees))
            for k, v in snapshot.day_settings.items()
            if k >= new_start.isoformat()
        },
    )

