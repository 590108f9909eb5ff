"""
presentation.py

View models consumed by the dashboard, kanban and report screens.

Each view owns its state (loaded DTOs, loading flag, user-visible error)
and runs its loads through the application use cases.  Fetch failures stop
at this boundary: they are logged and turned into an `error` message,
never raised to the caller.

Loads are guarded by a LoadGuard: every load takes a token, and a result
is only applied while its token is still the latest one.  A load that was
superseded by another user or another project while in flight is
discarded.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Hashable, List, Optional

from application import (
    AbstractEntityGateways,
    AbstractReportDocumentGenerator,
    ApplicationError,
    ChangeTaskStatusUseCase,
    DashboardMetricsDTO,
    GatewayError,
    GenerateReportDocumentUseCase,
    GetDashboardUseCase,
    GetKanbanBoardUseCase,
    GetReportUseCase,
    KanbanBoardDTO,
    KanbanColumnDTO,
    ListProjectsUseCase,
    NotFoundError,
    ProjectDTO,
    ReportDTO,
    ResolveSessionUseCase,
    TaskDTO,
)
from model import KANBAN_COLUMNS, AuthenticatedUser, Role, Session
from service import KanbanService, round_half_up

logger = logging.getLogger(__name__)

_kanban = KanbanService()


# ---------------------------------------------------------------------------
# Freshness guard
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LoadToken:
    generation: int
    key: Hashable


class LoadGuard:
    """Generation counter: only the most recent load may apply its result."""

    def __init__(self) -> None:
        self._generation = 0
        self._key: Hashable = None

    def begin(self, key: Hashable) -> LoadToken:
        self._generation += 1
        self._key = key
        return LoadToken(generation=self._generation, key=key)

    def is_current(self, token: LoadToken) -> bool:
        return token.generation == self._generation and token.key == self._key


def _identity(user: AuthenticatedUser) -> Hashable:
    return (user.role, user.profile.user_id)


# ---------------------------------------------------------------------------
# Dashboard formatting
# ---------------------------------------------------------------------------

@dataclass
class MetricCard:
    key: str
    title: str
    value: str


def greeting(hour: int) -> str:
    if hour < 12:
        return "Bonjour"
    if hour < 18:
        return "Bon après-midi"
    return "Bonsoir"


def build_dashboard_cards(metrics: DashboardMetricsDTO) -> List[MetricCard]:
    """The four dashboard cards, labelled for the viewer's role."""
    completed = MetricCard("completed_tasks", "Tâches Terminées", str(metrics.completed_tasks))

    if metrics.role == Role.STAGIAIRE.value:
        return [
            MetricCard("days_remaining", "Jours Restants", str(metrics.days_remaining or 0)),
            MetricCard("active_projects", "Mon Projet", str(metrics.active_projects)),
            completed,
            MetricCard(
                "avg_progress",
                "Progression Moyenne",
                f"{round_half_up(metrics.avg_progress or 0.0)}%",
            ),
        ]

    interns_title = "Total Stagiaires" if metrics.role == Role.ADMIN.value else "Mes Stagiaires"
    return [
        MetricCard("total_interns", interns_title, str(metrics.total_interns)),
        MetricCard("active_projects", "Projets Actifs", str(metrics.active_projects)),
        completed,
        MetricCard("success_rate", "Taux de Réussite", f"{round_half_up(metrics.success_rate)}%"),
    ]


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

class DashboardView:

    def __init__(self, gateways: AbstractEntityGateways):
        self._gateways = gateways
        self._guard = LoadGuard()
        self.metrics: Optional[DashboardMetricsDTO] = None
        self.cards: List[MetricCard] = []
        self.greeting: str = ""
        self.user_name: str = ""
        self.error: Optional[str] = None
        self.loading: bool = False

    async def load(self, user: AuthenticatedUser, now: Optional[datetime] = None) -> bool:
        """Returns True when the result of this load was applied."""
        now = now or datetime.now().astimezone()
        token = self._guard.begin(_identity(user))
        self.loading = True
        self.error = None
        try:
            session = await ResolveSessionUseCase().execute(user, self._gateways)
            metrics = await GetDashboardUseCase().execute(session, self._gateways, now)
        except GatewayError as exc:
            logger.error("Dashboard load failed: %s", exc.message)
            if self._guard.is_current(token):
                self.error = "Erreur lors du chargement du dashboard"
            return False
        finally:
            if self._guard.is_current(token):
                self.loading = False

        if not self._guard.is_current(token):
            logger.debug("Discarding stale dashboard load for %s", token.key)
            return False
        self.metrics = metrics
        self.cards = build_dashboard_cards(metrics)
        self.greeting = greeting(now.hour)
        self.user_name = user.profile.display_name
        return True


# ---------------------------------------------------------------------------
# Kanban
# ---------------------------------------------------------------------------

class KanbanView:
    """
    Project picker plus the three-column board of the selected project.

    Moving a card is optimistic: the card changes column locally first,
    then the backend is updated.  When the update fails the card stays in
    its new column and `error` is set; there is no rollback.
    """

    def __init__(self, gateways: AbstractEntityGateways):
        self._gateways = gateways
        self._projects_guard = LoadGuard()
        self._board_guard = LoadGuard()
        self.session: Optional[Session] = None
        self.projects: List[ProjectDTO] = []
        self.selected_project_id: Optional[int] = None
        self.board: Optional[KanbanBoardDTO] = None
        self.error: Optional[str] = None
        self.loading: bool = False

    # --- Loading ------------------------------------------------------------

    async def load_projects(self, user: AuthenticatedUser) -> bool:
        token = self._projects_guard.begin(_identity(user))
        self.loading = True
        self.error = None
        try:
            session = await ResolveSessionUseCase().execute(user, self._gateways)
            projects = await ListProjectsUseCase().execute(session, self._gateways)
        except GatewayError as exc:
            logger.error("Kanban project load failed: %s", exc.message)
            if self._projects_guard.is_current(token):
                self.error = "Impossible de charger les projets"
            return False
        finally:
            if self._projects_guard.is_current(token):
                self.loading = False

        if not self._projects_guard.is_current(token):
            return False
        if self.session is not None and _identity(self.session.user) != token.key:
            self.selected_project_id = None
            self.board = None
        self.session = session
        self.projects = projects

        if projects and self.selected_project_id is None:
            await self.select_project(projects[0].id)
        return True

    async def select_project(self, project_id: int) -> bool:
        """Load a project's board, discarding the previous one."""
        if self.session is None:
            raise ApplicationError("Projects must be loaded before selecting one.")
        token = self._board_guard.begin(project_id)
        self.selected_project_id = project_id
        self.board = None
        self.error = None
        try:
            board = await GetKanbanBoardUseCase().execute(self.session, project_id, self._gateways)
        except GatewayError as exc:
            logger.error("Kanban task load failed for project %s: %s", project_id, exc.message)
            if self._board_guard.is_current(token):
                self.error = "Impossible de charger les tâches"
            return False

        if not self._board_guard.is_current(token):
            return False
        self.board = board
        return True

    # --- Board --------------------------------------------------------------

    @property
    def columns(self) -> Dict[str, List[TaskDTO]]:
        if self.board is None:
            return {status.value: [] for status in KANBAN_COLUMNS}
        return {column.status: column.tasks for column in self.board.columns}

    def _find(self, task_id: int) -> Optional[TaskDTO]:
        for tasks in self.columns.values():
            for task in tasks:
                if task.id == task_id:
                    return task
        return None

    def _place(self, moved: TaskDTO) -> None:
        columns: List[KanbanColumnDTO] = []
        for column in self.board.columns:
            tasks = [t for t in column.tasks if t.id != moved.id]
            if column.status == moved.status:
                tasks.append(moved)
            columns.append(KanbanColumnDTO(status=column.status, count=len(tasks), tasks=tasks))
        self.board = KanbanBoardDTO(project=self.board.project, columns=columns)

    async def drop(self, task_id: int, new_status: str) -> bool:
        """
        Drop a card on a column.  Returns True when a backend update was
        issued; dropping a card on its own column does nothing.
        """
        column = _kanban.validate_column(new_status)
        task = self._find(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} is not on the current board.")
        if not _kanban.requires_update(task.status, column):
            return False

        self._place(dataclasses.replace(task, status=column.value))
        try:
            await ChangeTaskStatusUseCase().execute(task_id, column, self._gateways)
        except GatewayError as exc:
            logger.error("Task %s status update failed: %s", task_id, exc.message)
            self.error = "Impossible de mettre à jour la tâche"
        return True


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class ReportView:

    def __init__(self, gateways: AbstractEntityGateways):
        self._gateways = gateways
        self._guard = LoadGuard()
        self.session: Optional[Session] = None
        self.report: Optional[ReportDTO] = None
        self.error: Optional[str] = None
        self.loading: bool = False

    async def load(self, user: AuthenticatedUser) -> bool:
        token = self._guard.begin(_identity(user))
        self.loading = True
        self.error = None
        try:
            session = await ResolveSessionUseCase().execute(user, self._gateways)
            report = await GetReportUseCase().execute(session, self._gateways)
        except GatewayError as exc:
            logger.error("Report load failed: %s", exc.message)
            if self._guard.is_current(token):
                self.error = "Erreur lors du chargement des données"
            return False
        finally:
            if self._guard.is_current(token):
                self.loading = False

        if not self._guard.is_current(token):
            return False
        self.session = session
        self.report = report
        return True

    async def generate_document(
        self, generator: AbstractReportDocumentGenerator
    ) -> Optional[bytes]:
        if self.session is None:
            raise ApplicationError("The report must be loaded before generating a document.")
        try:
            return await GenerateReportDocumentUseCase().execute(
                self.session, self._gateways, generator
            )
        except GatewayError as exc:
            logger.error("Report generation failed: %s", exc.message)
            self.error = "Erreur lors de la génération du rapport"
            return None
