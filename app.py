#!/usr/bin/env python3
"""
Flask web app for the duty rotation planner.

The app is the caller that owns the roster: it keeps the plain roster data in
the session, rebuilds a snapshot for every request and hands it to the
rotation engine. Responses are JSON; rendering a calendar is left to the
client.

- Schedules are read-only: GET /api/schedule never changes pointers or debts.
- Pointers/debts only move on POST /api/schedule/commit, which also moves the
  roster start date past the committed days.
- Members are addressed by id everywhere (renaming needs no migration).
"""

import calendar
import os
from datetime import date
from typing import Dict, Any

from flask import Flask, jsonify, request, session

from roster import (
    ROLES,
    RosterError, RosterDataError, RosterSnapshot, UnknownMemberError,
    SimulationRangeError, StaleScheduleError,
    dump_roster, load_roster, parse_yyyy_mm_dd,
    setup_roster, resize_roster, rename_member, toggle_member_active,
    toggle_holiday, toggle_no_cleaning, toggle_absent,
)
from rotation import run, simulate_month, advance

class RosterNotSetUp(RosterError):
    pass

# ========= Request helpers =========

def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

def _int_arg(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise RosterDataError(f"{what} must be a whole number.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RosterDataError(f"{what} must be a whole number.")

def _day(key: str) -> date:
    try:
        return parse_yyyy_mm_dd(key)
    except ValueError:
        raise RosterDataError(f"Dates must be YYYY-MM-DD, got {key!r}.")

def _day_count(value: Any) -> int:
    days = _int_arg(value, "days")
    limit = app.config["ROSTER_MAX_DAYS"]
    if days > limit:
        raise RosterDataError(f"days must not exceed {limit}.")
    return days

def load_session_roster() -> RosterSnapshot:
    data = session.get("roster")
    if not data:
        raise RosterNotSetUp("No roster yet. Set one up or import a saved state first.")
    return load_roster(data)

def save_session_roster(snapshot: RosterSnapshot) -> Dict[str, Any]:
    # The session is a ~4 KB cookie; overrides behind the start date are never read again.
    start = snapshot.start_date.isoformat()
    for key in [k for k in snapshot.day_settings if k < start]:
        del snapshot.day_settings[key]
    data = dump_roster(snapshot)
    session["roster"] = data
    return data

def schedule_payload(snapshot: RosterSnapshot, days) -> Dict[str, Any]:
    return {
        "startDate": snapshot.start_date.isoformat(),
        "members": {str(m.id): m.name for m in snapshot.members},
        "roles": [
            {"id": r.id, "label": r.label, "class": r.role_class.value, "track": r.track}
            for r in ROLES
        ],
        "days": [d.to_dict() for d in days],
    }

# ========= Flask app + routes =========

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET", "dev_secret_key_change_me")
app.config["ROSTER_DEFAULT_DAYS"] = int(os.environ.get("ROSTER_DEFAULT_DAYS", "60"))
app.config["ROSTER_MAX_DAYS"] = int(os.environ.get("ROSTER_MAX_DAYS", "732"))

_STATUS = {
    RosterNotSetUp: 409,
    StaleScheduleError: 409,
    UnknownMemberError: 404,
}

@app.errorhandler(RosterError)
def roster_error(e: RosterError):
    status = _STATUS.get(type(e), 400)
    app.logger.info("Rejected %s %s: %s", request.method, request.path, e.message)
    return jsonify(error=e.message), status

def reset_session():
    session.pop("roster", None)

@app.route("/api/roster", methods=["GET"])
def get_roster():
    return jsonify(dump_roster(load_session_roster()))

@app.route("/api/roster", methods=["PUT"])
def import_roster():
    snapshot = load_roster(request.get_json(silent=True))
    app.logger.info("Imported roster with %d members", len(snapshot.members))
    return jsonify(save_session_roster(snapshot))

@app.route("/api/roster/export", methods=["GET"])
def export_roster():
    resp = jsonify(dump_roster(load_session_roster()))
    resp.headers["Content-Disposition"] = (
        f"attachment; filename=roster_state_{date.today().isoformat()}.json"
    )
    return resp

@app.route("/api/roster/setup", methods=["POST"])
def setup():
    body = _body()
    count = _int_arg(body.get("count"), "count")
    start = _day(str(body["startDate"])) if body.get("startDate") else None
    snapshot = setup_roster(count, start)
    app.logger.info("New roster: %d members from %s", count, snapshot.start_date.isoformat())
    return jsonify(save_session_roster(snapshot)), 201

@app.route("/api/roster/reset", methods=["POST"])
def reset():
    reset_session()
    return jsonify(ok=True)

@app.route("/api/members/resize", methods=["POST"])
def resize():
    snapshot = load_session_roster()
    resize_roster(snapshot, _int_arg(_body().get("count"), "count"))
    return jsonify(save_session_roster(snapshot))

@app.route("/api/members/<int:member_id>/name", methods=["POST"])
def rename(member_id: int):
    snapshot = load_session_roster()
    rename_member(snapshot, member_id, str(_body().get("name") or ""))
    return jsonify(save_session_roster(snapshot))

@app.route("/api/members/<int:member_id>/active", methods=["POST"])
def toggle_active(member_id: int):
    snapshot = load_session_roster()
    toggle_member_active(snapshot, member_id)
    return jsonify(save_session_roster(snapshot))

@app.route("/api/days/<key>/holiday", methods=["POST"])
def day_holiday(key: str):
    snapshot = load_session_roster()
    toggle_holiday(snapshot, _day(key))
    return jsonify(save_session_roster(snapshot))

@app.route("/api/days/<key>/no-cleaning", methods=["POST"])
def day_no_cleaning(key: str):
    snapshot = load_session_roster()
    toggle_no_cleaning(snapshot, _day(key))
    return jsonify(save_session_roster(snapshot))

@app.route("/api/days/<key>/absent/<int:member_id>", methods=["POST"])
def day_absent(key: str, member_id: int):
    snapshot = load_session_roster()
    toggle_absent(snapshot, _day(key), member_id)
    return jsonify(save_session_roster(snapshot))

@app.route("/api/schedule", methods=["GET"])
def schedule():
    """
    ?month=YYYY-MM  -> that calendar month (from the start date on)
    ?days=N         -> N days from the start date
    Neither         -> ROSTER_DEFAULT_DAYS days
    """
    snapshot = load_session_roster()
    month = request.args.get("month")
    if month:
        try:
            year, mon = map(int, month.split("-"))
            date(year, mon, 1)
        except ValueError:
            raise RosterDataError(f"month must be YYYY-MM, got {month!r}.")
        month_end = date(year, mon, calendar.monthrange(year, mon)[1])
        # the month is simulated from the start date on, so the cap covers the lead-in too
        _day_count((month_end - snapshot.start_date).days + 1)
        days = simulate_month(snapshot, year, mon)
    else:
        count = _day_count(request.args.get("days", app.config["ROSTER_DEFAULT_DAYS"]))
        days, _ = run(snapshot, count)
    return jsonify(schedule_payload(snapshot, days))

@app.route("/api/schedule/commit", methods=["POST"])
def commit_schedule():
    snapshot = load_session_roster()
    count = _day_count(_body().get("days"))
    if count < 0:
        raise SimulationRangeError("days must not be negative.")
    days, _ = run(snapshot, count)
    moved = advance(snapshot, days)
    app.logger.info(
        "Committed %d day(s); roster now starts %s", len(days), moved.start_date.isoformat()
    )
    payload = schedule_payload(snapshot, days)
    payload["roster"] = save_session_roster(moved)
    return jsonify(payload)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8000, debug=True)
