"""Staffing status: compare assigned worker counts against a task's per-role headcount."""
from datetime import date
from typing import Dict, Iterable, Optional

from crew_command.models import WORKER_ROLES

STAFFING_FULL = "full"
STAFFING_PARTIAL = "partial"
STAFFING_EMPTY = "empty"

# Gantt bar colors
STAFFING_COLORS = {
    STAFFING_FULL: "#10b981",
    STAFFING_PARTIAL: "#f59e0b",
    STAFFING_EMPTY: "#ef4444",
}


def required_by_role(task) -> Dict[str, int]:
    """{"operator": n, "laborer": n, "carpenter": n, "mason": n} from the task's required_<role>s columns."""
    return {role: int(getattr(task, f"required_{role}s", 0) or 0) for role in WORKER_ROLES}


def count_assigned_by_role(assignments: Iterable, on_date: Optional[date] = None) -> Dict[str, int]:
    """
    Distinct workers per role in the assignment set. Rows need worker_id, assigned_date, status
    and a loaded worker. Reassigned rows do not count; on_date narrows the set to one day.
    """
    seen: Dict[str, set] = {role: set() for role in WORKER_ROLES}
    for a in assignments:
        if a.status == "reassigned":
            continue
        if on_date is not None and a.assigned_date != on_date:
            continue
        worker = a.worker
        if worker is None or worker.role not in seen:
            continue
        seen[worker.role].add(a.worker_id)
    return {role: len(ids) for role, ids in seen.items()}


def staffing_status(required: Dict[str, int], assigned: Dict[str, int]) -> str:
    """
    full: every role meets or exceeds its requirement (so a task that needs nobody is full).
    empty: otherwise, some role with a requirement has nobody assigned.
    partial: everything else.
    """
    if all(assigned.get(role, 0) >= need for role, need in required.items()):
        return STAFFING_FULL
    if any(need > 0 and assigned.get(role, 0) == 0 for role, need in required.items()):
        return STAFFING_EMPTY
    return STAFFING_PARTIAL


def task_staffing(task, assignments: Iterable, on_date: Optional[date] = None) -> Dict:
    """Status plus the numbers behind it, for API responses."""
    required = required_by_role(task)
    assigned = count_assigned_by_role(assignments, on_date=on_date)
    status = staffing_status(required, assigned)
    return {
        "status": status,
        "color": STAFFING_COLORS[status],
        "required": required,
        "assigned": assigned,
        "required_total": sum(required.values()),
        "assigned_total": sum(assigned.values()),
    }
