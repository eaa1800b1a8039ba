"""
Roster data for the duty rotation planner.

Everything the rotation engine reads or writes lives here:
- Members (stable integer id, display name, active flag).
- The static role table: which role belongs to which role-class and which
  rotation track.
- TrackState: per-track rotation pointers plus the per-member debt table.
- Day overrides (holiday / no-cleaning / absentees) keyed by ISO date.
- Plain-data load/dump, including the old browser export format where debts
  and absentees were keyed by member *name*.
- Small editing helpers used by the web shell.

All derived state is keyed by member id. Names are labels only.
"""

import logging
from datetime import date, timedelta
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Set, Tuple, Dict, Optional, Any

logger = logging.getLogger(__name__)

# ========= Errors =========

@dataclass(eq=False)
class RosterError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message

class RosterDataError(RosterError):
    """Plain roster data that cannot be turned into a snapshot."""

class UnknownMemberError(RosterError):
    pass

class SimulationRangeError(RosterError):
    pass

class StaleScheduleError(RosterError):
    """Days handed to commit() do not match a replay of the snapshot."""

# ========= Roles & tracks =========

class RoleClass(Enum):
    DUTY = "duty"          # nichoku
    TALK = "talk"          # speech / comment
    CLEANING = "cleaning"  # clean_a / clean_b

@dataclass(frozen=True)
class Role:
    id: str
    label: str
    role_class: RoleClass
    track: str

# Order matters: the simulator fills tracks in the order they first appear.
ROLES: Tuple[Role, ...] = (
    Role("nichoku", "Day duty", RoleClass.DUTY, "nichoku"),
    Role("speech", "Speech", RoleClass.TALK, "speech"),
    Role("comment", "Comment", RoleClass.TALK, "comment"),
    Role("clean_a", "Cleaning A", RoleClass.CLEANING, "clean"),
    Role("clean_b", "Cleaning B", RoleClass.CLEANING, "clean"),
)

ROLES_BY_ID: Dict[str, Role] = {r.id: r for r in ROLES}

TRACKS: Tuple[str, ...] = tuple(dict.fromkeys(r.track for r in ROLES))

ROLES_BY_TRACK: Dict[str, Tuple[Role, ...]] = {
    t: tuple(r for r in ROLES if r.track == t) for t in TRACKS
}

# ========= Data classes =========

@dataclass
class Member:
    id: int
    name: str
    active: bool = True

@dataclass(frozen=True)
class DebtEvent:
    member_id: int
    track: str
    delta: int  # +1 skipped while due, -1 redeemed

@dataclass
class TrackState:
    """
    Rotation pointers and owed turns.

    pointers[track] is an index into the full member list (roster order).
    debts[member_id][track] counts turns owed; missing entries are 0.
    `events` is an in-memory log of debt changes made against this object; it
    is not part of the persisted data and a copy() starts with an empty log.
    """
    pointers: Dict[str, int] = field(default_factory=lambda: {t: 0 for t in TRACKS})
    debts: Dict[int, Dict[str, int]] = field(default_factory=dict)
    events: List[DebtEvent] = field(default_factory=list, compare=False, repr=False)

    def pointer(self, track: str) -> int:
        return self.pointers.get(track, 0)

    def advance(self, track: str, total: int) -> None:
        self.pointers[track] = (self.pointer(track) + 1) % total

    def set_pointer(self, track: str, value: int, total: int) -> None:
        self.pointers[track] = value % total

    def debt(self, member_id: int, track: str) -> int:
        return self.debts.get(member_id, {}).get(track, 0)

    def add_debt(self, member_id: int, track: str) -> None:
        owed = self.debts.setdefault(member_id, {})
        owed[track] = owed.get(track, 0) + 1
        self.events.append(DebtEvent(member_id, track, +1))

    def redeem_debt(self, member_id: int, track: str) -> None:
        owed = self.debts.get(member_id, {})
        if owed.get(track, 0) <= 0:
            raise ValueError(f"member {member_id} owes nothing on {track}")
        owed[track] -= 1
        self.events.append(DebtEvent(member_id, track, -1))

    def copy(self) -> "TrackState":
        return TrackState(
            pointers=dict(self.pointers),
            debts={mid: dict(owed) for mid, owed in self.debts.items()},
        )

@dataclass
class DayOverride:
    is_holiday: Optional[bool] = None  # None: weekend default
    no_cleaning: bool = False
    absentees: Set[int] = field(default_factory=set)

    def is_empty(self) -> bool:
        return self.is_holiday is None and not self.no_cleaning and not self.absentees

@dataclass
class RosterSnapshot:
    members: List[Member]
    tracks: TrackState = field(default_factory=TrackState)
    start_date: date = field(default_factory=date.today)
    day_settings: Dict[str, DayOverride] = field(default_factory=dict)

    def member(self, member_id: int) -> Member:
        for m in self.members:
            if m.id == member_id:
                return m
        raise UnknownMemberError(f"No member with id {member_id}.")

    def override_for(self, day: date) -> DayOverride:
        return self.day_settings.get(day.isoformat()) or DayOverride()

@dataclass
class DayResult:
    date: date
    is_holiday: bool
    no_cleaning: bool
    absentees: Tuple[int, ...] = ()
    assignments: Dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.date.isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.key,
            "isHoliday": self.is_holiday,
            "noCleaning": self.no_cleaning,
            "absentees": list(self.absentees),
            "assignments": dict(self.assignments),
        }

# ========= Core helpers =========

def parse_yyyy_mm_dd(s: str) -> date:
    y, m, d = map(int, s.strip().split("-"))
    return date(y, m, d)

def is_weekend(d: date) -> bool:
    return d.weekday() in (5, 6)  # Sat, Sun

def daterange(start: date, count: int):
    for i in range(count):
        yield start + timedelta(days=i)

def _to_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise RosterDataError(f"{what} must be an integer, got {value!r}.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RosterDataError(f"{what} must be an integer, got {value!r}.")

def _parse_start(raw: Any) -> date:
    # Old exports stored a full ISO datetime ("2024-01-01T00:00:00.000Z").
    if not raw:
        return date.today()
    try:
        return parse_yyyy_mm_dd(str(raw)[:10])
    except ValueError:
        raise RosterDataError(f"Start date must be YYYY-MM-DD, got {raw!r}.")

# ========= Plain data load / dump =========

def _load_members(raw: Any) -> List[Member]:
    if not isinstance(raw, list) or not raw:
        raise RosterDataError("Roster data needs a non-empty 'members' list.")
    members: List[Member] = []
    seen: Set[int] = set()
    for entry in raw:
        if not isinstance(entry, dict):
            raise RosterDataError(f"Member entries must be objects, got {entry!r}.")
        raw_id = entry.get("id", entry.get("studentNumber"))
        mid = _to_int(raw_id, "Member id")
        if mid in seen:
            raise RosterDataError(f"Duplicate member id {mid}.")
        seen.add(mid)
        name = str(entry.get("name") or f"Student {mid}")
        members.append(Member(id=mid, name=name, active=bool(entry.get("active", True))))
    members.sort(key=lambda m: m.id)
    return members

def _member_ref(ref: Any, members: List[Member]) -> Optional[int]:
    """
    Resolve a member reference to an id. Accepts ints, digit strings and, for
    old exports, member names. Returns None when nothing matches.
    """
    ids = {m.id for m in members}
    if isinstance(ref, int) and not isinstance(ref, bool):
        return ref if ref in ids else None
    s = str(ref).strip()
    if s.isdigit() and int(s) in ids:
        return int(s)
    for m in members:
        if m.name == s:
            return m.id
    return None

def _mapping(raw: Any, what: str) -> Dict[Any, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise RosterDataError(f"'{what}' must be an object.")
    return raw

def _load_tracks(data: Dict[str, Any], members: List[Member]) -> TrackState:
    total = len(members)
    state = TrackState()
    for track, raw in _mapping(data.get("pointers"), "pointers").items():
        if track not in TRACKS:
            logger.warning("Ignoring pointer for unknown track %r", track)
            continue
        value = _to_int(raw, f"Pointer '{track}'")
        if value < 0:
            raise RosterDataError(f"Pointer '{track}' must not be negative.")
        state.pointers[track] = value % total

    for ref, owed in _mapping(data.get("debts"), "debts").items():
        mid = _member_ref(ref, members)
        if mid is None:
            logger.warning("Dropping debts for unknown member %r", ref)
            continue
        for track, raw in _mapping(owed, f"debts of {ref}").items():
            if track not in TRACKS:
                continue
            count = _to_int(raw, f"Debt '{track}' of member {mid}")
            if count < 0:
                logger.warning("Clamping negative debt %d of member %d on %s", count, mid, track)
                count = 0
            if count:
                state.debts.setdefault(mid, {})[track] = count
    return state

def _load_day_settings(raw: Dict[str, Any], members: List[Member]) -> Dict[str, DayOverride]:
    out: Dict[str, DayOverride] = {}
    for key, entry in _mapping(raw, "daySettings").items():
        try:
            day = parse_yyyy_mm_dd(key)
        except ValueError:
            raise RosterDataError(f"Day settings key must be YYYY-MM-DD, got {key!r}.")
        entry = _mapping(entry, f"daySettings {key}")
        absentees: Set[int] = set()
        for ref in entry.get("absentees") or []:
            mid = _member_ref(ref, members)
            if mid is None:
                logger.warning("Dropping unknown absentee %r on %s", ref, key)
                continue
            absentees.add(mid)
        holiday = entry.get("isHoliday")
        ov = DayOverride(
            is_holiday=None if holiday is None else bool(holiday),
            no_cleaning=bool(entry.get("noCleaning", False)),
            absentees=absentees,
        )
        if not ov.is_empty():
            out[day.isoformat()] = ov
    return out

def load_roster(data: Any) -> RosterSnapshot:
    """
    Build a snapshot from plain data.

    Two shapes are accepted:
      • current: {members, pointers, debts, startDate, daySettings}
      • old browser export: {members[studentNumber], pointers, debts keyed by
        name, settings: {startDate, daySettings (absentees by name)}}
    Name references are mapped to ids here, once; nothing downstream sees names.
    """
    if not isinstance(data, dict):
        raise RosterDataError("Roster data must be a JSON object.")
    members = _load_members(data.get("members"))
    settings = data.get("settings") if isinstance(data.get("settings"), dict) else data
    return RosterSnapshot(
        members=members,
        tracks=_load_tracks(data, members),
        start_date=_parse_start(settings.get("startDate")),
        day_settings=_load_day_settings(settings.get("daySettings"), members),
    )

def dump_roster(snapshot: RosterSnapshot) -> Dict[str, Any]:
    day_settings: Dict[str, Any] = {}
    for key in sorted(snapshot.day_settings):
        ov = snapshot.day_settings[key]
        entry: Dict[str, Any] = {"noCleaning": ov.no_cleaning, "absentees": sorted(ov.absentees)}
        if ov.is_holiday is not None:
            entry["isHoliday"] = ov.is_holiday
        day_settings[key] = entry
    return {
        "members": [{"id": m.id, "name": m.name, "active": m.active} for m in snapshot.members],
        "pointers": {t: snapshot.tracks.pointer(t) for t in TRACKS},
        "debts": {
            str(mid): {t: n for t, n in owed.items() if n}
            for mid, owed in sorted(snapshot.tracks.debts.items())
            if any(owed.values())
        },
        "startDate": snapshot.start_date.isoformat(),
        "daySettings": day_settings,
    }

# ========= Editing =========

def setup_roster(count: int, start_date: Optional[date] = None) -> RosterSnapshot:
    if count < 1:
        raise RosterDataError("Roster size must be at least 1.")
    members = [Member(id=i, name=f"Student {i}") for i in range(1, count + 1)]
    return RosterSnapshot(members=members, start_date=start_date or date.today())

def resize_roster(snapshot: RosterSnapshot, count: int) -> None:
    """
    Make the first `count` roster positions the active roster: positions
    below `count` are (re)activated, fresh members are appended when the list
    is too short, and everyone from position `count` on is deactivated.
    Members are never removed, so pointers and debts stay valid.
    """
    if count < 1:
        raise RosterDataError("Roster size must be at least 1.")
    next_id = max(m.id for m in snapshot.members) + 1
    while len(snapshot.members) < count:
        snapshot.members.append(Member(id=next_id, name=f"Student {next_id}"))
        next_id += 1
    for i, m in enumerate(snapshot.members):
        m.active = i < count

def rename_member(snapshot: RosterSnapshot, member_id: int, name: str) -> None:
    name = (name or "").strip()
    if not name:
        raise RosterDataError("Member name must not be blank.")
    snapshot.member(member_id).name = name

def toggle_member_active(snapshot: RosterSnapshot, member_id: int) -> bool:
    m = snapshot.member(member_id)
    m.active = not m.active
    return m.active

def _edit_override(snapshot: RosterSnapshot, day: date) -> DayOverride:
    return snapshot.day_settings.setdefault(day.isoformat(), DayOverride())

def _prune(snapshot: RosterSnapshot, day: date) -> None:
    ov = snapshot.day_settings.get(day.isoformat())
    if ov is not None and ov.is_empty():
        del snapshot.day_settings[day.isoformat()]

def is_holiday(snapshot: RosterSnapshot, day: date) -> bool:
    ov = snapshot.override_for(day)
    return is_weekend(day) if ov.is_holiday is None else ov.is_holiday

def toggle_holiday(snapshot: RosterSnapshot, day: date) -> bool:
    """Flip the effective holiday status; returns the new status."""
    flipped = not is_holiday(snapshot, day)
    ov = _edit_override(snapshot, day)
    # Back to the weekday/weekend default means no explicit flag is needed.
    ov.is_holiday = None if flipped == is_weekend(day) else flipped
    _prune(snapshot, day)
    return flipped

def toggle_no_cleaning(snapshot: RosterSnapshot, day: date) -> bool:
    ov = _edit_override(snapshot, day)
    ov.no_cleaning = not ov.no_cleaning
    _prune(snapshot, day)
    return ov.no_cleaning

def toggle_absent(snapshot: RosterSnapshot, day: date, member_id: int) -> bool:
    snapshot.member(member_id)
    ov = _edit_override(snapshot, day)
    if member_id in ov.absentees:
        ov.absentees.discard(member_id)
        absent = False
    else:
        ov.absentees.add(member_id)
        absent = True
    _prune(snapshot, day)
    return absent
