from __future__ import annotations

from roster import TrackState
from rotation import resolve_pair

from tests.utils import make_members

PAIR = ["clean_a", "clean_b"]


def test_pair_takes_pointer_and_next_then_slides_by_one() -> None:
    state = TrackState()
    today: dict = {}

    picks = resolve_pair("clean", PAIR, make_members(4), {1, 2, 3, 4}, today, state)

    assert picks == {"clean_a": 1, "clean_b": 2}
    assert today == picks
    assert state.pointer("clean") == 1


def test_pair_wraps_around_the_roster() -> None:
    state = TrackState(pointers={"clean": 3})

    picks = resolve_pair("clean", PAIR, make_members(4), {1, 2, 3, 4}, {}, state)

    assert picks == {"clean_a": 4, "clean_b": 1}
    assert state.pointer("clean") == 0


def test_skips_record_debt_but_pointer_still_slides_by_one() -> None:
    state = TrackState()

    picks = resolve_pair("clean", PAIR, make_members(5), {2, 3, 4, 5}, {}, state)

    assert picks == {"clean_a": 2, "clean_b": 3}
    assert state.debt(1, "clean") == 1
    assert state.pointer("clean") == 1


def test_same_member_never_fills_both_slots() -> None:
    state = TrackState()

    picks = resolve_pair("clean", PAIR, make_members(2), {1}, {}, state)

    assert picks == {"clean_a": 1, "clean_b": None}
    # member 2 was absent, member 1 came round again already holding clean_a
    assert state.debts == {1: {"clean": 1}, 2: {"clean": 1}}
    assert state.pointer("clean") == 1


def test_debt_redemption_fills_both_slots_without_moving_pointer_extra() -> None:
    state = TrackState(pointers={"clean": 2}, debts={1: {"clean": 1}, 4: {"clean": 1}})

    picks = resolve_pair("clean", PAIR, make_members(5), {1, 2, 3, 4, 5}, {}, state)

    assert picks == {"clean_a": 1, "clean_b": 4}
    assert state.debts == {1: {"clean": 0}, 4: {"clean": 0}}
    assert state.pointer("clean") == 3


def test_empty_roster_leaves_both_slots_open() -> None:
    assert resolve_pair("clean", PAIR, [], set(), {}, TrackState()) == {"clean_a": None, "clean_b": None}
