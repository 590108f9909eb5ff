"""
application.py

Application layer for the Internship Management dashboard core.

Overview
--------
The application layer sits between the presentation layer (view models /
API) and the domain / service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) that carry only the data the
     presentation layer needs — no raw domain objects are leaked upward.
  2. Declaring abstract Gateway interfaces for the backend entity services
     so that the application layer stays transport-agnostic
     (implementations live in infrastructure.py).
  3. Resolving the authenticated user into an explicit Session holding the
     role and its scoping key.
  4. Aggregating the role-scoped interns / projects / tasks, and exposing
     one Use Case handler per user-facing read (dashboard, intern
     directory, project list, kanban board, report).

Structure
---------
DTOs
    InternDTO, ProjectDTO, TaskDTO
    DashboardMetricsDTO, KanbanColumnDTO, KanbanBoardDTO, MoveTaskResultDTO
    ReportDTO

Gateway interfaces
    AbstractInternGateway
    AbstractProjectGateway
    AbstractTaskGateway
    AbstractEncadreurGateway
    AbstractEntityGateways
    AbstractReportDocumentGenerator

Use Cases
    --- Role resolution ---
    ResolveSessionUseCase

    --- Aggregation ---
    LoadScopedDataUseCase
    ScopeProjectsUseCase

    --- Views ---
    GetDashboardUseCase
    ListInternsUseCase
    ListProjectsUseCase
    GetKanbanBoardUseCase
    ChangeTaskStatusUseCase
    MoveTaskUseCase
    GetReportUseCase
    GenerateReportDocumentUseCase

Design notes
------------
- Use cases receive a Session and the gateway bundle and return DTOs.
- Multi-entity fetches run concurrently behind an all-or-nothing barrier:
  if any fetch fails nothing is computed and the error propagates.
- An encadreur is resolved with one lookup before the fetch group starts;
  a missing supervisor record degrades to empty collections.
- Errors bubble up as ApplicationError subclasses or ValueError.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from model import (
    KANBAN_COLUMNS,
    AdminQuery,
    AuthenticatedUser,
    DashboardMetrics,
    Encadreur,
    EncadreurQuery,
    Intern,
    InternFilter,
    Project,
    ProjectFilter,
    Role,
    ScopedData,
    Session,
    StagiaireQuery,
    Task,
    TaskFilter,
    TaskStatus,
    UnresolvedQuery,
)
from service import (
    InternDirectoryService,
    KanbanService,
    MetricsService,
    ReportService,
    ScopeService,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist in the caller's scope."""


class ScopeError(ApplicationError):
    """Raised when an identity cannot be mapped to a role and scoping key."""


class GatewayError(ApplicationError):
    """
    Raised by entity gateways on transport or backend failure.
    `message` is safe to show to the user.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _gather_all(*aws):
    """
    Run the awaitables concurrently and return all their results.
    If one fails the others are cancelled and the first error propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class InternDTO:
    id: int
    user_id: int
    first_name: str
    last_name: str
    email: str
    school: str
    department: str
    start_date: Optional[str]
    end_date: Optional[str]
    status: str
    encadreur_id: Optional[int]
    encadreur_name: Optional[str]


@dataclass
class ProjectDTO:
    id: int
    title: str
    description: str
    status: str
    progress: int
    start_date: Optional[str]
    end_date: Optional[str]
    department: str
    encadreur_id: Optional[int]
    stagiaire_id: Optional[str]


@dataclass
class TaskDTO:
    id: int
    title: str
    description: str
    status: str
    priority: str
    due_date: Optional[str]
    project_id: int
    assigned_to: Optional[int]


@dataclass
class DashboardMetricsDTO:
    role: str
    total_interns: int
    total_projects: int
    active_projects: int
    completed_projects: int
    completed_tasks: int
    success_rate: float
    days_remaining: Optional[int] = None
    avg_progress: Optional[float] = None


@dataclass
class KanbanColumnDTO:
    status: str
    count: int
    tasks: List[TaskDTO] = field(default_factory=list)


@dataclass
class KanbanBoardDTO:
    project: ProjectDTO
    columns: List[KanbanColumnDTO] = field(default_factory=list)


@dataclass
class MoveTaskResultDTO:
    task: TaskDTO
    updated: bool


@dataclass
class ReportDTO:
    role: str
    summary: Dict
    tasks_by_status: Dict[str, int]
    tasks_by_priority: Dict[str, int]
    interns: List[Dict] = field(default_factory=list)
    projects: List[Dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Assembler — converts domain objects → DTOs
# ---------------------------------------------------------------------------

class _Assembler:

    @staticmethod
    def intern(i: Intern) -> InternDTO:
        return InternDTO(
            id=i.id,
            user_id=i.user_id,
            first_name=i.first_name,
            last_name=i.last_name,
            email=i.email,
            school=i.school,
            department=i.department,
            start_date=_fmt_date(i.start_date),
            end_date=_fmt_date(i.end_date),
            status=i.status.value,
            encadreur_id=i.encadreur_id,
            encadreur_name=i.encadreur_name,
        )

    @staticmethod
    def project(p: Project) -> ProjectDTO:
        return ProjectDTO(
            id=p.id,
            title=p.title,
            description=p.description,
            status=p.status.value,
            progress=p.progress,
            start_date=_fmt_date(p.start_date),
            end_date=_fmt_date(p.end_date),
            department=p.department,
            encadreur_id=p.encadreur_id,
            stagiaire_id=p.stagiaire_id,
        )

    @staticmethod
    def task(t: Task) -> TaskDTO:
        return TaskDTO(
            id=t.id,
            title=t.title,
            description=t.description,
            status=t.status.value,
            priority=t.priority.value,
            due_date=_fmt_date(t.due_date),
            project_id=t.project_id,
            assigned_to=t.assigned_to,
        )

    @staticmethod
    def dashboard(role: Role, m: DashboardMetrics) -> DashboardMetricsDTO:
        return DashboardMetricsDTO(
            role=role.value,
            total_interns=m.total_interns,
            total_projects=m.total_projects,
            active_projects=m.active_projects,
            completed_projects=m.completed_projects,
            completed_tasks=m.completed_tasks,
            success_rate=m.success_rate,
            days_remaining=m.days_remaining,
            avg_progress=m.avg_progress,
        )

    @staticmethod
    def board(project: Project, columns: Dict[TaskStatus, List[Task]]) -> KanbanBoardDTO:
        return KanbanBoardDTO(
            project=_Assembler.project(project),
            columns=[
                KanbanColumnDTO(
                    status=status.value,
                    count=len(columns[status]),
                    tasks=[_Assembler.task(t) for t in columns[status]],
                )
                for status in KANBAN_COLUMNS
            ],
        )


# ===========================================================================
# GATEWAY INTERFACES
# ===========================================================================

class AbstractInternGateway(abc.ABC):
    @abc.abstractmethod
    async def list(self, filters: Optional[InternFilter] = None) -> List[Intern]: ...


class AbstractProjectGateway(abc.ABC):
    @abc.abstractmethod
    async def list(self, filters: Optional[ProjectFilter] = None) -> List[Project]: ...


class AbstractTaskGateway(abc.ABC):
    @abc.abstractmethod
    async def list(self, filters: Optional[TaskFilter] = None) -> List[Task]: ...
    @abc.abstractmethod
    async def update_status(self, task_id: int, status: TaskStatus) -> Task: ...


class AbstractEncadreurGateway(abc.ABC):
    @abc.abstractmethod
    async def get(self, encadreur_id: int) -> Optional[Encadreur]: ...
    @abc.abstractmethod
    async def get_by_user_id(self, user_id: int) -> Optional[Encadreur]: ...


class AbstractEntityGateways(abc.ABC):
    """
    Groups the entity gateways behind one object.
    Use as an async context manager to release transport resources:

        async with gateways:
            interns = await gateways.interns.list()
    """
    interns: AbstractInternGateway
    projects: AbstractProjectGateway
    tasks: AbstractTaskGateway
    encadreurs: AbstractEncadreurGateway

    async def __aenter__(self) -> "AbstractEntityGateways":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        return None


class AbstractReportDocumentGenerator(abc.ABC):
    """Turns role-scoped collections into a downloadable document."""

    media_type: str = "application/octet-stream"
    extension: str = "bin"

    @abc.abstractmethod
    def generate(
        self,
        interns: List[Intern],
        projects: List[Project],
        tasks: List[Task],
        role: Role,
        user_name: str,
        avatar: Optional[str] = None,
    ) -> bytes: ...


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_scope_svc = ScopeService()
_metrics_svc = MetricsService()
_kanban_svc = KanbanService()
_report_svc = ReportService()
_directory_svc = InternDirectoryService()


# ===========================================================================
# USE CASES — ROLE RESOLUTION
# ===========================================================================

class ResolveSessionUseCase:
    """
    Map an authenticated user to a role and its scoping key.

    ENCADREUR needs one supervisor lookup because the scoping key
    (Encadreur.encadreur_id) differs from the user identity.  A missing
    record yields an UnresolvedQuery rather than an error.
    """

    async def execute(
        self, user: AuthenticatedUser, gateways: AbstractEntityGateways
    ) -> Session:
        try:
            role = Role(user.role)
        except ValueError:
            raise ScopeError(f"Unknown role '{user.role}'.") from None

        if role == Role.ADMIN:
            return Session(user=user, role=role, scope=AdminQuery())

        user_id = user.profile.user_id
        if user_id is None:
            raise ScopeError(f"Role {role.value} requires a user ID to scope its data.")

        if role == Role.STAGIAIRE:
            return Session(user=user, role=role, scope=StagiaireQuery(user_id=user_id))

        encadreur = await gateways.encadreurs.get_by_user_id(user_id)
        if encadreur is None:
            logger.warning("No encadreur record for user %s; scoping to empty collections", user_id)
            return Session(
                user=user,
                role=role,
                scope=UnresolvedQuery(reason=f"No encadreur record for user {user_id}."),
            )
        return Session(
            user=user, role=role, scope=EncadreurQuery(encadreur_id=encadreur.encadreur_id)
        )


# ===========================================================================
# USE CASES — AGGREGATION
# ===========================================================================

class LoadScopedDataUseCase:
    """
    Fetch and join the interns, projects and tasks visible to a session.

    ADMIN      everything, unfiltered.
    ENCADREUR  interns and projects filtered by the backend on encadreur_id;
               tasks fetched unfiltered and kept when they belong to one of
               the freshly fetched projects.
    STAGIAIRE  all interns and projects; the intern record matching the
               user, the projects whose membership lists the user, and the
               tasks the backend returns for the user.
    """

    async def execute(
        self, session: Session, gateways: AbstractEntityGateways
    ) -> ScopedData:
        scope = session.scope

        if isinstance(scope, UnresolvedQuery):
            return ScopedData(role=session.role)

        if isinstance(scope, AdminQuery):
            interns, projects, tasks = await _gather_all(
                gateways.interns.list(),
                gateways.projects.list(),
                gateways.tasks.list(),
            )
            data = ScopedData(role=session.role, interns=interns, projects=projects, tasks=tasks)

        elif isinstance(scope, EncadreurQuery):
            interns, projects, all_tasks = await _gather_all(
                gateways.interns.list(InternFilter(encadreur_id=scope.encadreur_id)),
                gateways.projects.list(ProjectFilter(encadreur_id=scope.encadreur_id)),
                gateways.tasks.list(),
            )
            data = ScopedData(
                role=session.role,
                interns=interns,
                projects=projects,
                tasks=_scope_svc.tasks_for_projects(all_tasks, projects),
            )

        elif isinstance(scope, StagiaireQuery):
            all_interns, all_projects, tasks = await _gather_all(
                gateways.interns.list(),
                gateways.projects.list(),
                gateways.tasks.list(TaskFilter(user_id=scope.user_id)),
            )
            current = _scope_svc.find_intern_by_user(all_interns, scope.user_id)
            data = ScopedData(
                role=session.role,
                interns=[current] if current else [],
                projects=_scope_svc.projects_for_member(all_projects, scope.user_id),
                tasks=tasks,
                current_intern=current,
            )

        else:
            raise ScopeError(f"Unsupported scope {scope!r}.")

        logger.info(
            "Loaded %s scope: %d interns, %d projects, %d tasks",
            session.role.value, len(data.interns), len(data.projects), len(data.tasks),
        )
        return data


class ScopeProjectsUseCase:
    """
    Only the projects visible to a session, with the same filters as
    LoadScopedDataUseCase.  Used by the project list and the kanban
    project picker.
    """

    async def execute(
        self, session: Session, gateways: AbstractEntityGateways
    ) -> List[Project]:
        scope = session.scope
        if isinstance(scope, UnresolvedQuery):
            return []
        if isinstance(scope, AdminQuery):
            return await gateways.projects.list()
        if isinstance(scope, EncadreurQuery):
            return await gateways.projects.list(ProjectFilter(encadreur_id=scope.encadreur_id))
        if isinstance(scope, StagiaireQuery):
            return _scope_svc.projects_for_member(await gateways.projects.list(), scope.user_id)
        raise ScopeError(f"Unsupported scope {scope!r}.")


# ===========================================================================
# USE CASES — DASHBOARD
# ===========================================================================

class GetDashboardUseCase:
    async def execute(
        self,
        session: Session,
        gateways: AbstractEntityGateways,
        now: Optional[datetime] = None,
    ) -> DashboardMetricsDTO:
        data = await LoadScopedDataUseCase().execute(session, gateways)
        metrics = _metrics_svc.compute_dashboard(data, now or _utcnow())
        return _Assembler.dashboard(session.role, metrics)


# ===========================================================================
# USE CASES — INTERNS & PROJECTS
# ===========================================================================

class ListInternsUseCase:
    """
    Intern directory.  Admins see every intern, encadreurs their own
    interns, stagiaires nobody.
    """

    async def execute(
        self,
        session: Session,
        gateways: AbstractEntityGateways,
        search: str = "",
        status: Optional[str] = None,
    ) -> List[InternDTO]:
        scope = session.scope
        if isinstance(scope, AdminQuery):
            interns = await gateways.interns.list()
        elif isinstance(scope, EncadreurQuery):
            interns = await gateways.interns.list(InternFilter(encadreur_id=scope.encadreur_id))
        else:
            interns = []
        return [_Assembler.intern(i) for i in _directory_svc.search(interns, search, status)]


class ListProjectsUseCase:
    async def execute(
        self, session: Session, gateways: AbstractEntityGateways
    ) -> List[ProjectDTO]:
        projects = await ScopeProjectsUseCase().execute(session, gateways)
        return [_Assembler.project(p) for p in projects]


# ===========================================================================
# USE CASES — KANBAN
# ===========================================================================

async def _get_scoped_project_or_raise(
    session: Session, gateways: AbstractEntityGateways, project_id: int
) -> Project:
    projects = await ScopeProjectsUseCase().execute(session, gateways)
    project = next((p for p in projects if p.id == project_id), None)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found.")
    return project


class GetKanbanBoardUseCase:
    """Load one project's tasks and partition them into the kanban columns."""

    async def execute(
        self, session: Session, project_id: int, gateways: AbstractEntityGateways
    ) -> KanbanBoardDTO:
        project = await _get_scoped_project_or_raise(session, gateways, project_id)
        tasks = await gateways.tasks.list(TaskFilter(project_id=project_id))
        return _Assembler.board(project, _kanban_svc.partition(tasks))


class ChangeTaskStatusUseCase:
    """Issue the backend status update for a single task.  No retry."""

    async def execute(
        self, task_id: int, status: TaskStatus, gateways: AbstractEntityGateways
    ) -> TaskDTO:
        column = _kanban_svc.validate_column(status)
        task = await gateways.tasks.update_status(task_id, column)
        logger.info("Task %s moved to %s", task_id, column.value)
        return _Assembler.task(task)


@dataclass
class MoveTaskCommand:
    project_id: int
    task_id: int
    status: str


class MoveTaskUseCase:
    """
    Move a card on a project's board.  Dropping a card on its own column
    returns it unchanged without calling the backend.
    """

    async def execute(
        self, cmd: MoveTaskCommand, session: Session, gateways: AbstractEntityGateways
    ) -> MoveTaskResultDTO:
        column = _kanban_svc.validate_column(cmd.status)
        await _get_scoped_project_or_raise(session, gateways, cmd.project_id)
        tasks = await gateways.tasks.list(TaskFilter(project_id=cmd.project_id))
        task = next((t for t in tasks if t.id == cmd.task_id), None)
        if task is None:
            raise NotFoundError(f"Task {cmd.task_id} not found in project {cmd.project_id}.")
        if not _kanban_svc.requires_update(task.status, column):
            return MoveTaskResultDTO(task=_Assembler.task(task), updated=False)
        updated = await ChangeTaskStatusUseCase().execute(task.id, column, gateways)
        return MoveTaskResultDTO(task=updated, updated=True)


# ===========================================================================
# USE CASES — REPORTS
# ===========================================================================

class GetReportUseCase:
    async def execute(
        self, session: Session, gateways: AbstractEntityGateways
    ) -> ReportDTO:
        data = await LoadScopedDataUseCase().execute(session, gateways)
        return ReportDTO(
            role=session.role.value,
            summary=_report_svc.summary(data.interns, data.projects, data.tasks),
            tasks_by_status=_report_svc.tasks_by_status(data.tasks),
            tasks_by_priority=_report_svc.tasks_by_priority(data.tasks),
            interns=_report_svc.intern_rows(data.interns, data.projects, data.tasks),
            projects=_report_svc.project_rows(data.projects, data.tasks),
        )


class GenerateReportDocumentUseCase:
    async def execute(
        self,
        session: Session,
        gateways: AbstractEntityGateways,
        generator: AbstractReportDocumentGenerator,
    ) -> bytes:
        data = await LoadScopedDataUseCase().execute(session, gateways)
        profile = session.user.profile
        return generator.generate(
            interns=data.interns,
            projects=data.projects,
            tasks=data.tasks,
            role=session.role,
            user_name=profile.display_name,
            avatar=profile.avatar,
        )
