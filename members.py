"""
Member directory built from TeamGantt resource names.

TeamGantt display names encode team and role as "TEAM - Full Name - CLASS".
Leadership accounts are prefixed with "!" and carry at most a class.
"""

import re
from typing import Dict, Optional

SEPARATOR = " - "

LEADERSHIP_TEAM = "LEADERSHIP"
SPECIAL_CLASS = "SPECIAL"
UNKNOWN = "UNKNOWN"

TEAM_ALIASES = {"PLAN": "PLANNING"}

# LEAAD is a typo that exists in the upstream data
CLASS_ALIASES = {"MEMBER": "MEM", "LEAAD": "LEAD"}

# Hours from these teams never appear in charts, leaderboards or pivots
EXCLUDED_TEAMS = frozenset({"DLA", "RESEARCH"})

_EN_EM_DASH = re.compile("[\u2013\u2014]")
_DASH_LEFT = re.compile(r"\s+-\s*")
_DASH_RIGHT = re.compile(r"\s*-\s+")


def normalize_dashes(name: str) -> str:
    """Turn en/em dashes into " - " and tidy whitespace around dashes."""
    normalized = _EN_EM_DASH.sub(SEPARATOR, name)
    normalized = _DASH_LEFT.sub(SEPARATOR, normalized)
    return _DASH_RIGHT.sub(SEPARATOR, normalized)


def parse_member_name(raw: Optional[str]) -> Optional[dict]:
    """Parse a resource display name into fullName, team and memberClass.

    Returns None for empty names and for "!" names with more than two
    segments. Plain names without exactly three segments fall back to
    UNKNOWN team and class.
    """
    if not raw:
        return None
    name = raw.strip()
    normalized = normalize_dashes(name)

    if normalized.startswith("!"):
        inner = normalized[1:].strip()
        parts = [p.strip() for p in inner.split(SEPARATOR)]
        if len(parts) == 1:
            return {"fullName": inner, "team": LEADERSHIP_TEAM, "memberClass": SPECIAL_CLASS}
        if len(parts) == 2:
            return {"fullName": parts[0], "team": LEADERSHIP_TEAM, "memberClass": parts[1].upper()}
        return None

    parts = [p.strip() for p in normalized.split(SEPARATOR)]
    if len(parts) != 3:
        return {"fullName": name, "team": UNKNOWN, "memberClass": UNKNOWN}

    team = parts[0].upper()
    team = TEAM_ALIASES.get(team, team)
    member_class = parts[2].upper()
    member_class = CLASS_ALIASES.get(member_class, member_class)

    return {"fullName": parts[1], "team": team, "memberClass": member_class}


def raw_name_from_source(rid, source: Optional[dict]) -> str:
    """Display name from a task resource or a time entry's user object.

    Resources carry `name`; entry users split it over first_name
    ("TEAM") and last_name ("- Name - CLASS").
    """
    if source:
        if source.get("name"):
            return source["name"]
        if "first_name" in source or "last_name" in source:
            joined = f"{source.get('first_name') or ''} {source.get('last_name') or ''}".strip()
            if joined:
                return joined
    return f"User {rid}"


def resource_id(resource: dict):
    return resource.get("type_id") or resource.get("id")


def entry_user_id(entry: dict):
    return entry.get("user_id") or entry.get("resource_id")


class MemberDirectory:
    """Members keyed by resource id; the first source seen for an id wins."""

    def __init__(self):
        self._members: Dict[str, dict] = {}

    def __contains__(self, rid) -> bool:
        return rid is not None and str(rid) in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self):
        return iter(self._members.values())

    def get(self, rid) -> Optional[dict]:
        if rid is None:
            return None
        return self._members.get(str(rid))

    def resolve_member(self, rid, source: Optional[dict] = None) -> Optional[dict]:
        """Return the member for `rid`, creating it from `source` on first sight."""
        if rid is None or rid == "":
            return None
        key = str(rid)
        member = self._members.get(key)
        if member is not None:
            return member

        raw = raw_name_from_source(rid, source)
        parsed = parse_member_name(raw)
        member = {
            "id": key,
            "name": raw,
            "fullName": parsed["fullName"] if parsed else raw,
            "team": parsed["team"] if parsed else UNKNOWN,
            "memberClass": parsed["memberClass"] if parsed else UNKNOWN,
        }
        self._members[key] = member
        return member

    def display_name(self, rid) -> str:
        member = self.get(rid)
        return member["fullName"] if member else f"User {rid}"

    def team_of(self, rid) -> str:
        member = self.get(rid)
        return member["team"] if member else UNKNOWN

    def is_excluded(self, rid) -> bool:
        member = self.get(rid)
        return bool(member) and member["team"] in EXCLUDED_TEAMS

    def teams(self, include_excluded: bool = False) -> list:
        return sorted({
            m["team"] for m in self._members.values()
            if include_excluded or m["team"] not in EXCLUDED_TEAMS
        })

    @classmethod
    def from_snapshot(cls, snapshot: dict) -> "MemberDirectory":
        """Task assignments first, then time-entry users."""
        directory = cls()
        for task in snapshot.get("tasks") or []:
            for res in task.get("resources") or []:
                directory.resolve_member(resource_id(res), res)
        for entry in snapshot.get("timeEntries") or []:
            directory.resolve_member(entry_user_id(entry), entry.get("user"))
        return directory
