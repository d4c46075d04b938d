"""
Dashboard aggregation - turns a raw TeamGantt snapshot into derived views.

Everything here is a pure function of the snapshot (plus "today"), so views
can be recomputed on every request. DashboardModel memoizes them for one
snapshot and is discarded wholesale when a refresh lands.
"""

import threading
from collections import OrderedDict, defaultdict
from datetime import date, datetime, timedelta
from typing import Optional

from members import MemberDirectory, entry_user_id, resource_id

UPCOMING_WINDOW_DAYS = 14
LEADERBOARD_SIZE = 15
PERFORMERS_SIZE = 10
OVERDUE_SPOTLIGHT_SIZE = 20
WEEK_MEMO_SIZE = 16

# week offsets beyond this are rejected rather than overflowing date math
MAX_WEEK_OFFSET = 5200

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

STATUS_LABELS = {
    "overdue": "Overdue",
    "upcoming": "Due Soon",
    "complete": "Complete",
    "active": "Active",
}


# ============================================================================
# Field helpers
# ============================================================================

def parse_day(value) -> Optional[date]:
    """YYYY-MM-DD (or anything starting with it) -> date, else None."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def _parse_timestamp(value) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def format_day(d: date) -> str:
    return f"{MONTHS[d.month - 1]} {d.day}"


def entry_hours(entry: dict) -> float:
    """Explicit hours, else end_time - start_time in hours, else 0."""
    if entry.get("hours") is not None:
        try:
            return float(entry["hours"])
        except (TypeError, ValueError):
            return 0.0
    if entry.get("start_time") and entry.get("end_time"):
        start = _parse_timestamp(entry["start_time"])
        end = _parse_timestamp(entry["end_time"])
        if start and end:
            return (end - start).total_seconds() / 3600
    return 0.0


def entry_date(entry: dict) -> Optional[str]:
    """The day an entry counts towards, as YYYY-MM-DD."""
    for key in ("date", "start_time", "start_date", "end_date"):
        if entry.get(key):
            return str(entry[key])[:10]
    return None


def iso_week(date_str) -> str:
    """ISO-8601 week id, e.g. 2024-01-01 -> 2024-W01."""
    d = parse_day(date_str)
    year, week, _ = d.isocalendar()
    return f"{year}-W{week:02d}"


def week_monday(week_id: str) -> date:
    year, week = week_id.split("-W")
    return date.fromisocalendar(int(year), int(week), 1)


def week_label(week_id: str) -> str:
    """Column header for a week: the Monday, e.g. "Jan 1"."""
    return format_day(week_monday(week_id))


def week_bounds(offset: int = 0, today: date = None):
    """Monday and Sunday of the week `offset` weeks from the current one."""
    today = today or date.today()
    monday = today - timedelta(days=today.weekday()) + timedelta(weeks=offset)
    return monday, monday + timedelta(days=6)


# ============================================================================
# Task classification
# ============================================================================

def classify_task(task: dict, today: date = None) -> str:
    """One of complete / overdue / upcoming / active.

    Precedence is the same for milestones and tasks; an undated
    incomplete item is active.
    """
    today = today or date.today()
    if (task.get("percent_complete") or 0) == 100:
        return "complete"

    end = parse_day(task.get("end_date"))
    if end is None:
        return "active"
    if end < today:
        return "overdue"
    if end <= today + timedelta(days=UPCOMING_WINDOW_DAYS):
        return "upcoming"
    return "active"


def due_badge(end_date, monday: date) -> Optional[dict]:
    """Due-status badge for a task relative to a week's Monday."""
    due = parse_day(end_date)
    if due is None:
        return None
    diff = (due - monday).days
    if diff < 0:
        return {"status": "overdue", "label": f"{abs(diff)}d overdue", "days": diff}
    if diff == 0:
        return {"status": "overdue", "label": "Due this week", "days": diff}
    if diff <= UPCOMING_WINDOW_DAYS:
        return {"status": "upcoming", "label": f"{diff}d left", "days": diff}
    return {"status": "active", "label": f"{diff}d left", "days": diff}


# ============================================================================
# Shared iteration
# ============================================================================

def _index(items) -> dict:
    return {str(item.get("id")): item for item in items or []}


def _counted_entries(snapshot: dict, members: MemberDirectory):
    """(entry, user_id, hours) for every entry not from an excluded team."""
    for entry in snapshot.get("timeEntries") or []:
        rid = entry_user_id(entry)
        if members.is_excluded(rid):
            continue
        yield entry, rid, entry_hours(entry)


def _task_name(task_map: dict, task_id) -> str:
    task = task_map.get(str(task_id))
    return (task or {}).get("name") or f"Task {task_id}"


def _sorted_desc(mapping: dict) -> list:
    return sorted(mapping.items(), key=lambda kv: kv[1], reverse=True)


def _by_end_date(task: dict) -> str:
    return task.get("end_date") or ""


# ============================================================================
# Summary
# ============================================================================

def team_hours(snapshot: dict, members: MemberDirectory) -> dict:
    totals = defaultdict(float)
    for _, rid, hours in _counted_entries(snapshot, members):
        totals[members.team_of(rid)] += hours
    return dict(totals)


def member_hours(snapshot: dict, members: MemberDirectory) -> dict:
    totals = defaultdict(float)
    for _, rid, hours in _counted_entries(snapshot, members):
        totals[str(rid)] += hours
    return dict(totals)


def total_hours(snapshot: dict, members: MemberDirectory) -> float:
    return sum(hours for _, _, hours in _counted_entries(snapshot, members))


def build_summary(snapshot: dict, members: MemberDirectory, today: date = None) -> dict:
    """Headline counts, team chart, member leaderboard and overdue spotlight."""
    today = today or date.today()
    tasks = snapshot.get("tasks") or []
    group_map = _index(snapshot.get("groups"))

    counts = {"total": len(tasks), "complete": 0, "overdue": 0, "upcoming": 0, "active": 0}
    overdue_tasks = []
    for task in tasks:
        status = classify_task(task, today)
        counts[status] += 1
        if status == "overdue":
            overdue_tasks.append(task)

    teams = [{"team": team, "hours": hours} for team, hours in _sorted_desc(team_hours(snapshot, members))]

    leaderboard = []
    for rank, (rid, hours) in enumerate(_sorted_desc(member_hours(snapshot, members))[:LEADERBOARD_SIZE], 1):
        member = members.get(rid)
        leaderboard.append({
            "rank": rank,
            "id": rid,
            "name": member["fullName"] if member else f"User {rid}",
            "team": member["team"] if member else "?",
            "hours": hours,
        })

    overdue_tasks.sort(key=_by_end_date)
    spotlight = []
    for task in overdue_tasks[:OVERDUE_SPOTLIGHT_SIZE]:
        group = group_map.get(str(task.get("parent_group_id")))
        spotlight.append({
            "id": task.get("id"),
            "name": task.get("name"),
            "end_date": task.get("end_date"),
            "group": group.get("name") if group else "",
            "days_overdue": (today - parse_day(task["end_date"])).days,
        })

    project = snapshot.get("project") or {}
    return {
        "project": {"id": project.get("id"), "name": project.get("name")},
        "fetchedAt": snapshot.get("fetchedAt"),
        "tasks": counts,
        "total_hours": total_hours(snapshot, members),
        "team_hours": teams,
        "leaderboard": leaderboard,
        "overdue_spotlight": spotlight,
    }


# ============================================================================
# Task lists
# ============================================================================

def _describe_task(task: dict, status: str, members: MemberDirectory, group_map: dict) -> dict:
    names = []
    teams = []
    for res in task.get("resources") or []:
        member = members.get(resource_id(res))
        names.append(member["fullName"] if member else res.get("name"))
        teams.append(member["team"] if member else "")

    group = group_map.get(str(task.get("parent_group_id")))
    return {
        "id": task.get("id"),
        "name": task.get("name"),
        "type": task.get("type"),
        "start_date": task.get("start_date"),
        "end_date": task.get("end_date"),
        "percent_complete": task.get("percent_complete") or 0,
        "group": group.get("name") if group else "",
        "resources": names,
        "teams": teams,
        "status": status,
        "status_label": STATUS_LABELS[status],
    }


def build_task_lists(snapshot: dict, members: MemberDirectory, today: date = None,
                     search: str = None, team: str = None) -> dict:
    """Overdue, upcoming and all tasks sorted by end date.

    `search` matches task names case-insensitively, `team` keeps tasks with
    at least one resource on that team.
    """
    today = today or date.today()
    group_map = _index(snapshot.get("groups"))
    search = (search or "").strip().lower()
    team = (team or "").strip().upper()

    described = []
    for task in sorted(snapshot.get("tasks") or [], key=_by_end_date):
        row = _describe_task(task, classify_task(task, today), members, group_map)
        if search and search not in (row["name"] or "").lower():
            continue
        if team and team not in [t.upper() for t in row["teams"]]:
            continue
        described.append(row)

    return {
        "overdue": [t for t in described if t["status"] == "overdue"],
        "upcoming": [t for t in described if t["status"] == "upcoming"],
        "all": described,
        "team_filter": members.teams(),
    }


# ============================================================================
# Weekly view
# ============================================================================

def _window_label(offset: int, monday: date, sunday: date) -> str:
    span = f"{format_day(monday)} - {format_day(sunday)}"
    if offset == 0:
        return f"This Week  ({span})"
    if offset == -1:
        return f"Last Week  ({span})"
    return span


def build_week_view(snapshot: dict, members: MemberDirectory, offset: int = 0, today: date = None) -> dict:
    """Hours for one Monday-Sunday window, `offset` weeks from this week."""
    monday, sunday = week_bounds(offset, today)
    mon_str, sun_str = monday.isoformat(), sunday.isoformat()
    task_map = _index(snapshot.get("tasks"))

    by_member = {}
    by_team = defaultdict(float)
    by_task = {}
    total = 0.0

    for entry, rid, hours in _counted_entries(snapshot, members):
        day = entry_date(entry)
        if not day or day < mon_str or day > sun_str:
            continue
        if hours == 0:
            continue
        total += hours

        name = members.display_name(rid)
        team = members.team_of(rid)
        key = str(rid)
        if key not in by_member:
            by_member[key] = {"id": key, "name": name, "team": team, "hours": 0.0}
        by_member[key]["hours"] += hours
        by_team[team] += hours

        task_id = entry.get("task_id")
        task_key = str(task_id)
        if task_key not in by_task:
            task = task_map.get(task_key)
            by_task[task_key] = {
                "id": task_id,
                "name": _task_name(task_map, task_id),
                "end_date": task.get("end_date") if task else None,
                "hours": 0.0,
                "members": [],
                "breakdown": defaultdict(float),
            }
        agg = by_task[task_key]
        agg["hours"] += hours
        if name not in agg["members"]:
            agg["members"].append(name)
        agg["breakdown"][name] += hours

    ranked = sorted(by_member.values(), key=lambda m: m["hours"], reverse=True)

    # undated tasks sort last
    tasks = sorted(by_task.values(), key=lambda t: (t["end_date"] is None, t["end_date"] or ""))
    for agg in tasks:
        agg["breakdown"] = dict(_sorted_desc(agg["breakdown"]))
        agg["due"] = due_badge(agg["end_date"], monday)

    return {
        "offset": offset,
        "start": mon_str,
        "end": sun_str,
        "label": _window_label(offset, monday, sunday),
        "total_hours": total,
        "active_members": len(by_member),
        "tasks_worked": len(by_task),
        "team_hours": [{"team": team, "hours": hours} for team, hours in _sorted_desc(by_team)],
        "top_performers": ranked[:PERFORMERS_SIZE],
        # tail of the same ranking, so it overlaps the top list under 20 members
        "bottom_performers": ranked[-PERFORMERS_SIZE:][::-1],
        "tasks": tasks,
    }


# ============================================================================
# Pivot tables
# ============================================================================

def _pivot_row(key: str, weekly: dict, weeks: list) -> dict:
    cells = [weekly.get(w, 0) for w in weeks]
    return {
        "key": key,
        "cells": cells,
        "zero": [v == 0 for v in cells],
        "total": sum(cells),
    }


def _column_totals(weekly_rows: list, weeks: list) -> list:
    return [sum(row.get(w, 0) for row in weekly_rows) for w in weeks]


def _simple_pivot(data: dict, weeks: list) -> dict:
    keys = sorted(data)
    column_totals = _column_totals([data[k] for k in keys], weeks)
    return {
        "weeks": weeks,
        "labels": [week_label(w) for w in weeks],
        "rows": [_pivot_row(k, data[k], weeks) for k in keys],
        "column_totals": column_totals,
        "grand_total": sum(column_totals),
    }


def _member_pivot(data: dict, weeks: list) -> dict:
    by_team = defaultdict(list)
    for team, name in data:
        by_team[team].append(name)

    teams = []
    for team in sorted(by_team):
        names = sorted(by_team[team], key=lambda n: (n.lower(), n))
        weekly_rows = [data[(team, n)] for n in names]
        subtotal = _pivot_row(team, {
            w: total for w, total in zip(weeks, _column_totals(weekly_rows, weeks))
        }, weeks)
        teams.append({
            "team": team,
            "subtotal": subtotal,
            "members": [_pivot_row(n, data[(team, n)], weeks) for n in names],
        })

    column_totals = _column_totals(list(data.values()), weeks)
    return {
        "weeks": weeks,
        "labels": [week_label(w) for w in weeks],
        "teams": teams,
        "column_totals": column_totals,
        "grand_total": sum(column_totals),
    }


def build_pivots(snapshot: dict, members: MemberDirectory) -> dict:
    """Member, team and task hours per ISO week.

    Only weeks with some logged time become columns.
    """
    task_map = _index(snapshot.get("tasks"))
    member_weekly = defaultdict(lambda: defaultdict(float))
    team_weekly = defaultdict(lambda: defaultdict(float))
    task_weekly = defaultdict(lambda: defaultdict(float))
    all_weeks = set()

    for entry, rid, hours in _counted_entries(snapshot, members):
        if hours == 0:
            continue
        day = entry_date(entry)
        if not day or parse_day(day) is None:
            continue
        week = iso_week(day)
        all_weeks.add(week)

        team = members.team_of(rid)
        member_weekly[(team, members.display_name(rid))][week] += hours
        team_weekly[team][week] += hours
        task_weekly[_task_name(task_map, entry.get("task_id"))][week] += hours

    weeks = sorted(all_weeks)
    return {
        "weeks": weeks,
        "member": _member_pivot(member_weekly, weeks),
        "team": _simple_pivot(team_weekly, weeks),
        "task": _simple_pivot(task_weekly, weeks),
    }


# ============================================================================
# Per-snapshot memo
# ============================================================================

class DashboardModel:
    """Views for one immutable snapshot, computed lazily and memoized.

    Day-relative views are dropped when the date rolls over, and only the
    WEEK_MEMO_SIZE most recently used week windows are kept.
    """

    def __init__(self, snapshot: dict):
        self.snapshot = snapshot
        self.fetched_at = snapshot.get("fetchedAt")
        self.members = MemberDirectory.from_snapshot(snapshot)
        self._lock = threading.Lock()
        self._day = None
        self._daily = {}
        self._weeks = OrderedDict()
        self._pivots = None

    def _roll_day(self, today: date):
        if today != self._day:
            self._day = today
            self._daily.clear()
            self._weeks.clear()

    def summary(self, today: date = None) -> dict:
        today = today or date.today()
        with self._lock:
            self._roll_day(today)
            if "summary" not in self._daily:
                self._daily["summary"] = build_summary(self.snapshot, self.members, today)
            return self._daily["summary"]

    def task_lists(self, today: date = None, search: str = None, team: str = None) -> dict:
        today = today or date.today()
        if search or team:
            return build_task_lists(self.snapshot, self.members, today, search, team)
        with self._lock:
            self._roll_day(today)
            if "tasks" not in self._daily:
                self._daily["tasks"] = build_task_lists(self.snapshot, self.members, today)
            return self._daily["tasks"]

    def week_view(self, offset: int = 0, today: date = None) -> dict:
        today = today or date.today()
        with self._lock:
            self._roll_day(today)
            if offset in self._weeks:
                self._weeks.move_to_end(offset)
                return self._weeks[offset]
            view = build_week_view(self.snapshot, self.members, offset, today)
            self._weeks[offset] = view
            while len(self._weeks) > WEEK_MEMO_SIZE:
                self._weeks.popitem(last=False)
            return view

    def pivots(self) -> dict:
        with self._lock:
            if self._pivots is None:
                self._pivots = build_pivots(self.snapshot, self.members)
            return self._pivots

    def member_list(self) -> list:
        return sorted(self.members, key=lambda m: (m["team"], m["fullName"]))
