from datetime import date, datetime

import pytest

from model import (
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
from service import (
    InternDirectoryService,
    KanbanService,
    MetricsService,
    ReportService,
    ScopeService,
    format_member_ids,
    is_member,
    parse_member_ids,
    round_half_up,
)

NOW = datetime(2026, 5, 10, 9, 30)


def _project(id: int, status=ProjectStatus.PLANNING, progress: int = 0, members=None) -> Project:
    return Project(id=id, title=f"P{id}", status=status, progress=progress, stagiaire_id=members)


def _task(id: int, status=TaskStatus.TODO, priority=TaskPriority.MEDIUM, due=None,
          project_id: int = 1, assigned_to=None) -> Task:
    return Task(id=id, title=f"T{id}", status=status, priority=priority, due_date=due,
                project_id=project_id, assigned_to=assigned_to)


# --- Membership codec -------------------------------------------------------

def test_parse_member_ids_trims_tokens():
    assert parse_member_ids("12, 7,19") == ["12", "7", "19"]


def test_parse_member_ids_drops_malformed_tokens_and_duplicates():
    assert parse_member_ids("7x, ,3,-4,3") == ["3"]
    assert parse_member_ids(None) == []
    assert parse_member_ids("") == []


def test_is_member_compares_string_forms():
    assert is_member("12, 7,19", 7) is True
    assert is_member("12, 7,19", "07") is False
    assert is_member("7x,3", 7) is False
    assert is_member("12", None) is False


def test_format_member_ids_joins_without_spaces():
    assert format_member_ids([12, "7", 19]) == "12,7,19"
    assert format_member_ids(parse_member_ids(" 4 ,x, 5")) == "4,5"


# --- Metrics ----------------------------------------------------------------

def test_round_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(12.49) == 12
    assert round_half_up(0.0) == 0


def test_success_rate_is_zero_without_projects():
    assert MetricsService().success_rate([]) == 0.0


def test_success_rate_counts_completed_projects():
    projects = [
        _project(1, ProjectStatus.COMPLETED),
        _project(2, ProjectStatus.PLANNING),
        _project(3, ProjectStatus.IN_PROGRESS),
        _project(4, ProjectStatus.COMPLETED),
    ]
    assert MetricsService().success_rate(projects) == 50.0


def test_active_projects_counts_planning():
    projects = [_project(1, ProjectStatus.PLANNING), _project(2, ProjectStatus.IN_PROGRESS)]
    assert MetricsService().active_projects(projects) == 1


def test_days_remaining():
    metrics = MetricsService()
    assert metrics.days_remaining(date(2026, 5, 10), NOW) == 0
    assert metrics.days_remaining(date(2026, 5, 11), NOW) == 1
    assert metrics.days_remaining(date(2026, 5, 20), NOW) == 10
    assert metrics.days_remaining(date(2026, 1, 1), NOW) == 0
    assert metrics.days_remaining(None, NOW) == 0


def test_average_progress():
    metrics = MetricsService()
    assert metrics.average_progress([]) == 0.0
    assert metrics.average_progress([_project(1, progress=20), _project(2, progress=50)]) == 35.0


def test_compute_dashboard_adds_countdown_for_stagiaire_only():
    intern = Intern(id=1, user_id=201, end_date=date(2026, 5, 12))
    data = ScopedData(
        role=Role.STAGIAIRE,
        interns=[intern],
        projects=[_project(1, progress=40)],
        tasks=[_task(1, TaskStatus.DONE), _task(2)],
        current_intern=intern,
    )
    metrics = MetricsService().compute_dashboard(data, NOW)
    assert metrics.days_remaining == 2
    assert metrics.avg_progress == 40.0
    assert metrics.completed_tasks == 1

    admin = MetricsService().compute_dashboard(ScopedData(role=Role.ADMIN), NOW)
    assert admin == DashboardMetrics()


# --- Scope ------------------------------------------------------------------

def test_tasks_for_projects_is_empty_without_projects():
    tasks = [_task(1, project_id=1), _task(2, project_id=2)]
    scope = ScopeService()
    assert scope.tasks_for_projects(tasks, []) == []
    assert [t.id for t in scope.tasks_for_projects(tasks, [_project(2)])] == [2]


def test_projects_for_member():
    projects = [_project(1, members="12, 7,19"), _project(2, members="70"), _project(3)]
    assert [p.id for p in ScopeService().projects_for_member(projects, 7)] == [1]


# --- Kanban -----------------------------------------------------------------

def test_partition_sorts_by_priority_then_due_date_and_skips_bug():
    tasks = [
        _task(1, priority=TaskPriority.LOW),
        _task(2, priority=TaskPriority.HIGH, due=date(2026, 6, 1)),
        _task(3, priority=TaskPriority.HIGH, due=date(2026, 5, 15)),
        _task(4, priority=TaskPriority.HIGH),
        _task(5, status=TaskStatus.DONE),
        _task(6, status=TaskStatus.BUG),
    ]
    columns = KanbanService().partition(tasks)
    assert list(columns) == [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE]
    assert [t.id for t in columns[TaskStatus.TODO]] == [3, 2, 4, 1]
    assert columns[TaskStatus.IN_PROGRESS] == []
    assert [t.id for t in columns[TaskStatus.DONE]] == [5]


def test_validate_column_rejects_non_columns():
    kanban = KanbanService()
    assert kanban.validate_column("DONE") == TaskStatus.DONE
    with pytest.raises(ValueError):
        kanban.validate_column("BUG")
    with pytest.raises(ValueError):
        kanban.validate_column("NOPE")


def test_same_column_requires_no_update():
    kanban = KanbanService()
    task = _task(1, TaskStatus.IN_PROGRESS)
    assert kanban.requires_update(task.status, TaskStatus.IN_PROGRESS) is False
    assert kanban.requires_update(task.status, TaskStatus.DONE) is True
    # board cards carry their status as a plain string
    assert kanban.requires_update("IN_PROGRESS", TaskStatus.IN_PROGRESS) is False


# --- Reports ----------------------------------------------------------------

def test_report_summary():
    projects = [_project(1, ProjectStatus.COMPLETED), _project(2), _project(3)]
    tasks = [_task(1, TaskStatus.DONE), _task(2, TaskStatus.DONE), _task(3, TaskStatus.BUG)]
    summary = ReportService().summary([Intern(id=1)], projects, tasks)
    assert summary == {
        "total_interns": 1,
        "total_projects": 3,
        "active_projects": 2,
        "completed_projects": 1,
        "total_tasks": 3,
        "completed_tasks": 2,
        "success_rate": 33,
        "task_completion_rate": 67,
    }


def test_tasks_by_status_and_priority_list_every_key():
    report = ReportService()
    tasks = [_task(1, TaskStatus.BUG, TaskPriority.HIGH)]
    assert report.tasks_by_status(tasks) == {"TODO": 0, "IN_PROGRESS": 0, "DONE": 0, "BUG": 1}
    assert report.tasks_by_priority(tasks) == {"LOW": 0, "MEDIUM": 0, "HIGH": 1}


def test_intern_rows_use_membership_of_user_id():
    intern = Intern(id=5, user_id=7, first_name="Sara", last_name="Amrani")
    projects = [_project(1, members="12, 7"), _project(2, members="5")]
    tasks = [_task(1, TaskStatus.DONE, assigned_to=7), _task(2, assigned_to=7), _task(3)]
    [row] = ReportService().intern_rows([intern], projects, tasks)
    assert row["name"] == "Sara Amrani"
    assert row["projects"] == 1
    assert row["tasks"] == 2
    assert row["completion_pct"] == 50


def test_project_rows_normalise_members():
    [row] = ReportService().project_rows([_project(1, members=" 4 ,x, 5")], [])
    assert row["members"] == "4,5"
    assert row["completion_pct"] == 0


# --- Directory --------------------------------------------------------------

def _interns():
    return [
        Intern(id=1, first_name="Sara", last_name="Amrani", email="sara@ex.com",
               school="ENSIAS", status=InternStatus.ACTIVE),
        Intern(id=2, first_name="Youssef", last_name="Idrissi", email="y@ex.com",
               school="EMI", status=InternStatus.PENDING),
    ]


def test_directory_search_matches_name_email_and_school():
    directory = InternDirectoryService()
    assert [i.id for i in directory.search(_interns(), "sara")] == [1]
    assert [i.id for i in directory.search(_interns(), "emi")] == [2]
    assert [i.id for i in directory.search(_interns(), "  ")] == [1, 2]


def test_directory_status_filter():
    directory = InternDirectoryService()
    assert [i.id for i in directory.search(_interns(), status="PENDING")] == [2]
    assert len(directory.search(_interns(), status="all")) == 2
    with pytest.raises(ValueError):
        directory.search(_interns(), status="UNKNOWN")
