"""
Snapshot fetcher - pulls project, tasks and time entries from TeamGantt.

Time entries can only be queried one day at a time (the bulk endpoints
404), so the project range is enumerated day-by-day and fetched in
batches of BATCH_SIZE concurrent requests. Each request covers every
assigned user at once via the user_ids filter.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

logger = logging.getLogger(__name__)

BATCH_SIZE = 15

TASK_TYPES = ("task", "milestone")
GROUP_TYPE = "group"


def _report(progress, message: str):
    if progress:
        progress(message)
    else:
        logger.info(message)


def partition_items(items):
    """Split /tasks items into (tasks, groups); other types are dropped."""
    tasks = []
    groups = []
    if not isinstance(items, list):
        return tasks, groups

    for item in items:
        item_type = item.get("type")
        if item_type in TASK_TYPES:
            tasks.append(item)
        elif item_type == GROUP_TYPE:
            groups.append(item)
    return tasks, groups


def collect_resource_ids(tasks) -> list:
    """Distinct resource ids assigned to any task, in first-seen order.

    A resource's type_id (the user id) wins over its assignment id.
    """
    seen = set()
    resource_ids = []
    for task in tasks:
        for res in task.get("resources") or []:
            rid = res.get("type_id") or res.get("id")
            if not rid:
                continue
            rid = str(rid)
            if rid not in seen:
                seen.add(rid)
                resource_ids.append(rid)
    return resource_ids


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def backfill_dates(start_date, end_date, today: date = None) -> list:
    """All YYYY-MM-DD strings in [start_date, min(end_date, today)].

    Empty when there is no start date or the clamped end precedes it.
    """
    if not start_date:
        return []
    today = today or date.today()

    start = _parse_date(start_date)
    end = _parse_date(end_date) if end_date else today
    if end > today:
        end = today

    dates = []
    current = start
    while current <= end:
        dates.append(current.isoformat())
        current += timedelta(days=1)
    return dates


def _fetch_day(client, day: str, user_ids: str, project_id: str) -> list:
    """One /times request for a single day, filtered to our project.

    Failures are logged and count as an empty day so a long backfill
    survives isolated bad dates.
    """
    try:
        resp = client.request("/times", {"date": day, "user_ids": user_ids})
        entries = resp if isinstance(resp, list) else []
        return [e for e in entries if str(e.get("project_id")) == str(project_id)]
    except Exception as e:
        logger.warning(f"Failed /times?date={day}: {e}")
        return []


def fetch_time_entries_by_date(client, dates, user_ids: str, project_id: str, progress=None) -> list:
    """Fetch and de-duplicate time entries for every date in `dates`.

    Batches run strictly one after another; a batch is fully settled
    before the next one starts.
    """
    entries = []
    seen = set()
    if not dates:
        return entries

    with ThreadPoolExecutor(max_workers=BATCH_SIZE) as pool:
        for i in range(0, len(dates), BATCH_SIZE):
            batch = dates[i:i + BATCH_SIZE]
            futures = [
                pool.submit(_fetch_day, client, day, user_ids, project_id)
                for day in batch
            ]
            for future in futures:
                for entry in future.result():
                    entry_id = entry.get("id")
                    if entry_id in seen:
                        continue
                    seen.add(entry_id)
                    entries.append(entry)

            done = min(i + BATCH_SIZE, len(dates))
            _report(progress, f"Fetching time entries… {done}/{len(dates)} days")

    logger.info(f"Found {len(entries)} unique time entries")
    return entries


def fetch_snapshot(client, project_id: str, today: date = None, progress=None) -> dict:
    """Fetch a complete snapshot of the project.

    Raises UpstreamError if the project or task listing fails; individual
    day failures only drop that day's entries.
    """
    project_id = str(project_id)

    _report(progress, "Fetching project info…")
    project = client.request(f"/projects/{project_id}")

    _report(progress, "Fetching tasks…")
    items = client.request("/tasks", {"project_ids": project_id})
    tasks, groups = partition_items(items)

    resource_ids = collect_resource_ids(tasks)
    _report(progress, f"Fetching time entries for {len(resource_ids)} users…")

    dates = backfill_dates(project.get("start_date"), project.get("end_date"), today)
    time_entries = fetch_time_entries_by_date(
        client, dates, ",".join(resource_ids), project_id, progress
    )

    return {
        "project": project,
        "tasks": tasks,
        "groups": groups,
        "timeEntries": time_entries,
        "fetchedAt": datetime.now(timezone.utc).isoformat(),
    }
