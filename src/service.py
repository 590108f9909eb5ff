"""
service.py

Service layer for the Internship Management dashboard core.

Responsibilities
----------------
Each service class encapsulates the pure join / filter / metric logic for
its concern.  Services receive and return domain model instances (from
model.py).  No I/O is performed here: callers fetch the collections through
the gateways declared in application.py and hand them in.

Services
--------
- Membership codec        – parse / format / test the comma-joined
                            Project.stagiaire_id field
- ScopeService            – role-scoped joins between interns, projects, tasks
- MetricsService          – dashboard counters, rates and countdowns
- KanbanService           – column partitioning and status transitions
- ReportService           – flat statistic tables for report documents
- InternDirectoryService  – free-text search and status filtering of interns

Design notes
------------
- Nothing here mutates the collections it receives.
- Percentages are derived on the fly and never stored.
- Business rule violations raise a ValueError with a descriptive message.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional, Union

from model import (
    KANBAN_COLUMNS,
    DashboardMetrics,
    Intern,
    InternStatus,
    Project,
    ProjectStatus,
    Role,
    ScopedData,
    Task,
    TaskPriority,
    TaskStatus,
)

_SECONDS_PER_DAY = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (12.5 → 13)."""
    return int(math.floor(value + 0.5))


def _percentage(part: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return part * 100.0 / total


# ---------------------------------------------------------------------------
# Membership codec
# ---------------------------------------------------------------------------

def parse_member_ids(raw: Optional[str]) -> List[str]:
    """
    Split a comma-joined membership string into its ID tokens.

    Tokens are whitespace-trimmed and kept in their string form.  Tokens that
    are not plain decimal integers (empty, "7x", "-3", ...) are dropped
    instead of failing the whole string.  Duplicates keep their first
    position.
    """
    if not raw:
        return []
    ids: List[str] = []
    for token in str(raw).split(","):
        token = token.strip()
        if not token or not (token.isascii() and token.isdigit()):
            continue
        if token not in ids:
            ids.append(token)
    return ids


def format_member_ids(ids: Iterable[Union[int, str]]) -> str:
    """Join member IDs back into the backend's comma-separated form."""
    return ",".join(str(i).strip() for i in ids)


def is_member(raw: Optional[str], candidate: Union[int, str, None]) -> bool:
    """
    True if `candidate` appears in the membership string.

    Comparison is string equality on the candidate's string form, so
    "07" does not match a "7" token.
    """
    if candidate is None:
        return False
    return str(candidate) in parse_member_ids(raw)


# ---------------------------------------------------------------------------
# ScopeService
# ---------------------------------------------------------------------------

class ScopeService:
    """
    Joins applied by the aggregator after the entity fetches resolve.
    """

    def find_intern_by_user(
        self, interns: List[Intern], user_id: Optional[int]
    ) -> Optional[Intern]:
        if user_id is None:
            return None
        return next((i for i in interns if i.user_id == user_id), None)

    def projects_for_member(
        self, projects: List[Project], user_id: Union[int, str]
    ) -> List[Project]:
        """Projects whose membership string lists the given intern user ID."""
        return [p for p in projects if is_member(p.stagiaire_id, user_id)]

    def tasks_for_projects(
        self, tasks: List[Task], projects: List[Project]
    ) -> List[Task]:
        """
        Tasks belonging to any of the given projects.

        The project list must be the fully loaded one: with no projects the
        result is always empty.
        """
        project_ids = {p.id for p in projects}
        return [t for t in tasks if t.project_id in project_ids]

    def tasks_for_project(self, tasks: List[Task], project_id: int) -> List[Task]:
        return [t for t in tasks if t.project_id == project_id]

    def tasks_assigned_to(self, tasks: List[Task], user_id: int) -> List[Task]:
        return [t for t in tasks if t.assigned_to == user_id]


# ---------------------------------------------------------------------------
# MetricsService
# ---------------------------------------------------------------------------

class MetricsService:
    """
    Dashboard counters computed uniformly across roles from the
    role-scoped collections.
    """

    def active_projects(self, projects: List[Project]) -> int:
        # Counted on PLANNING, which is what the "active projects" card
        # has always displayed.
        return sum(1 for p in projects if p.status == ProjectStatus.PLANNING)

    def completed_projects(self, projects: List[Project]) -> int:
        return sum(1 for p in projects if p.status == ProjectStatus.COMPLETED)

    def completed_tasks(self, tasks: List[Task]) -> int:
        return sum(1 for t in tasks if t.status == TaskStatus.DONE)

    def success_rate(self, projects: List[Project]) -> float:
        """Completed projects over total projects, as a percentage; 0 with no projects."""
        return _percentage(self.completed_projects(projects), len(projects))

    def days_remaining(self, end_date: Optional[date], now: datetime) -> int:
        """
        Whole days left until `end_date` (taken at midnight), rounded up.
        Never negative; 0 when there is no end date.
        """
        if end_date is None:
            return 0
        end = datetime.combine(end_date, time.min, tzinfo=now.tzinfo)
        seconds = (end - now).total_seconds()
        return max(0, math.ceil(seconds / _SECONDS_PER_DAY))

    def average_progress(self, projects: List[Project]) -> float:
        if not projects:
            return 0.0
        return sum(p.progress for p in projects) / len(projects)

    def compute_dashboard(self, data: ScopedData, now: datetime) -> DashboardMetrics:
        metrics = DashboardMetrics(
            total_interns=len(data.interns),
            total_projects=len(data.projects),
            active_projects=self.active_projects(data.projects),
            completed_projects=self.completed_projects(data.projects),
            completed_tasks=self.completed_tasks(data.tasks),
            success_rate=self.success_rate(data.projects),
        )
        if data.role == Role.STAGIAIRE:
            end_date = data.current_intern.end_date if data.current_intern else None
            metrics.days_remaining = self.days_remaining(end_date, now)
            metrics.avg_progress = self.average_progress(data.projects)
        return metrics


# ---------------------------------------------------------------------------
# KanbanService
# ---------------------------------------------------------------------------

_PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}


class KanbanService:
    """
    Projects a project's tasks onto the three kanban columns.

    Transitions between the columns are unconstrained: any column may be
    moved to any other one.
    """

    def partition(self, tasks: List[Task]) -> Dict[TaskStatus, List[Task]]:
        """
        Bucket tasks by column, each bucket sorted by priority (HIGH first)
        then due date.  Tasks outside the kanban columns (BUG) are left out.
        """
        columns: Dict[TaskStatus, List[Task]] = {status: [] for status in KANBAN_COLUMNS}
        for task in tasks:
            if task.status in columns:
                columns[task.status].append(task)
        for status in columns:
            columns[status].sort(
                key=lambda t: (_PRIORITY_RANK.get(t.priority, 3), t.due_date or date.max)
            )
        return columns

    def validate_column(self, status: Union[TaskStatus, str]) -> TaskStatus:
        try:
            column = TaskStatus(status)
        except ValueError:
            column = None
        if column not in KANBAN_COLUMNS:
            raise ValueError(
                f"Tasks can only be moved to one of: {[c.value for c in KANBAN_COLUMNS]}."
            )
        return column

    def requires_update(
        self, current: Union[TaskStatus, str], new_status: Union[TaskStatus, str]
    ) -> bool:
        """Dropping a card on its own column is a no-op."""
        return TaskStatus(current) != TaskStatus(new_status)


# ---------------------------------------------------------------------------
# ReportService
# ---------------------------------------------------------------------------

class ReportService:
    """
    Read-only projection of the role-scoped collections into flat tables
    suitable for serialisation and document generation.
    """

    def __init__(self) -> None:
        self._metrics = MetricsService()
        self._scope = ScopeService()

    def summary(
        self, interns: List[Intern], projects: List[Project], tasks: List[Task]
    ) -> Dict:
        completed_tasks = self._metrics.completed_tasks(tasks)
        return {
            "total_interns": len(interns),
            "total_projects": len(projects),
            "active_projects": self._metrics.active_projects(projects),
            "completed_projects": self._metrics.completed_projects(projects),
            "total_tasks": len(tasks),
            "completed_tasks": completed_tasks,
            "success_rate": round_half_up(self._metrics.success_rate(projects)),
            "task_completion_rate": round_half_up(_percentage(completed_tasks, len(tasks))),
        }

    def tasks_by_status(self, tasks: List[Task]) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status.value] += 1
        return counts

    def tasks_by_priority(self, tasks: List[Task]) -> Dict[str, int]:
        counts = {priority.value: 0 for priority in TaskPriority}
        for task in tasks:
            counts[task.priority.value] += 1
        return counts

    def intern_rows(
        self, interns: List[Intern], projects: List[Project], tasks: List[Task]
    ) -> List[Dict]:
        """Per-intern project count and task completion percentage."""
        rows = []
        for intern in interns:
            own_tasks = self._scope.tasks_assigned_to(tasks, intern.user_id)
            done = self._metrics.completed_tasks(own_tasks)
            rows.append(
                {
                    "intern_id": intern.id,
                    "user_id": intern.user_id,
                    "name": intern.full_name,
                    "school": intern.school,
                    "department": intern.department,
                    "status": intern.status.value,
                    "projects": len(self._scope.projects_for_member(projects, intern.user_id)),
                    "tasks": len(own_tasks),
                    "completed_tasks": done,
                    "completion_pct": round_half_up(_percentage(done, len(own_tasks))),
                }
            )
        return rows

    def project_rows(self, projects: List[Project], tasks: List[Task]) -> List[Dict]:
        """Per-project task completion."""
        rows = []
        for project in projects:
            project_tasks = self._scope.tasks_for_project(tasks, project.id)
            done = self._metrics.completed_tasks(project_tasks)
            rows.append(
                {
                    "project_id": project.id,
                    "title": project.title,
                    "status": project.status.value,
                    "progress": project.progress,
                    "department": project.department,
                    "members": format_member_ids(parse_member_ids(project.stagiaire_id)),
                    "tasks": len(project_tasks),
                    "completed_tasks": done,
                    "completion_pct": round_half_up(_percentage(done, len(project_tasks))),
                }
            )
        return rows


# ---------------------------------------------------------------------------
# InternDirectoryService
# ---------------------------------------------------------------------------

class InternDirectoryService:

    def search(
        self,
        interns: List[Intern],
        query: str = "",
        status: Optional[str] = None,
    ) -> List[Intern]:
        """
        Case-insensitive match of `query` against first name, last name,
        email and school, optionally restricted to one status.
        A status of None or "all" keeps every status.
        """
        results = list(interns)
        needle = (query or "").strip().lower()
        if needle:
            results = [
                i for i in results
                if needle in i.first_name.lower()
                or needle in i.last_name.lower()
                or needle in i.email.lower()
                or needle in i.school.lower()
            ]
        if status and status != "all":
            try:
                wanted = InternStatus(status)
            except ValueError:
                raise ValueError(
                    f"status must be 'all' or one of: {[s.value for s in InternStatus]}."
                ) from None
            results = [i for i in results if i.status == wanted]
        return results
