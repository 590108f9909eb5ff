"""
model.py

Domain models for the Internship Management dashboard core.

Entities
--------
- Intern (stagiaire)
- Project
- Task
- Encadreur (supervisor)
- UserProfile / AuthenticatedUser

Scoping
-------
- AdminQuery, EncadreurQuery, StagiaireQuery, UnresolvedQuery
- Session
- InternFilter, ProjectFilter, TaskFilter

Aggregates
----------
- ScopedData
- DashboardMetrics

All models use Python dataclasses for clean, framework-agnostic definitions.
Entities are read-only from the point of view of this core: they are
created and mutated by the backend services and only read and derived here.
Integer primary keys mirror the backend's identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Union


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """Role carried by an authenticated user."""
    ADMIN = "ADMIN"
    ENCADREUR = "ENCADREUR"
    STAGIAIRE = "STAGIAIRE"


class InternStatus(str, Enum):
    """Lifecycle status of an internship."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ProjectStatus(str, Enum):
    """Lifecycle status of a project."""
    PLANNING = "PLANNING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"
    CANCELLED = "CANCELLED"


class TaskStatus(str, Enum):
    """
    Status of a task.

    TODO, IN_PROGRESS and DONE are the kanban columns.  BUG is a valid
    backend status that is counted in reports but has no kanban column.
    """
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    BUG = "BUG"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# Fixed kanban columns, in display order
KANBAN_COLUMNS = (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE)


# ---------------------------------------------------------------------------
# Core Entities
# ---------------------------------------------------------------------------


@dataclass
class Intern:
    """
    A trainee tracked by the system.

    `user_id` links the intern to an authentication identity and is the key
    used by project membership strings and task assignment; `id` is the
    intern row identifier and is never used for either.
    """
    id: int = 0
    user_id: int = 0
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    school: str = ""
    department: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: InternStatus = InternStatus.PENDING

    # Owning supervisor (Encadreur.encadreur_id)
    encadreur_id: Optional[int] = None
    encadreur_name: Optional[str] = None

    # Denormalised by the backend when the intern has a main project
    project_id: Optional[int] = None
    project_title: Optional[str] = None
    notes: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Project:
    """
    A project supervised by one encadreur.

    `stagiaire_id` is the backend's many-to-many membership field: a
    comma-joined string of intern user IDs (e.g. "12, 7,19").  It is only
    ever interpreted through the membership codec in service.py.
    """
    id: int = 0
    title: str = ""
    description: str = ""
    status: ProjectStatus = ProjectStatus.PLANNING
    progress: int = 0                   # 0 – 100
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    department: str = ""
    encadreur_id: Optional[int] = None  # FK → Encadreur.encadreur_id
    stagiaire_id: Optional[str] = None


@dataclass
class Task:
    id: int = 0
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    project_id: int = 0                 # FK → Project.id
    assigned_to: Optional[int] = None   # FK → Intern.user_id


@dataclass
class Encadreur:
    """
    A supervisor.

    Three identifiers coexist: `id` is the row key, `encadreur_id` is the
    domain key referenced by projects and interns, and `user_id` links to
    the authentication identity.
    """
    id: int = 0
    encadreur_id: int = 0
    user_id: int = 0
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    department: str = ""


@dataclass
class UserProfile:
    user_id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    avatar: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or "Utilisateur"


@dataclass
class AuthenticatedUser:
    """The identity a view is loaded for."""
    role: str = Role.STAGIAIRE.value
    profile: UserProfile = field(default_factory=UserProfile)


# ---------------------------------------------------------------------------
# Scoping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdminQuery:
    """Everything is visible; no scoping key."""


@dataclass(frozen=True)
class EncadreurQuery:
    encadreur_id: int


@dataclass(frozen=True)
class StagiaireQuery:
    user_id: int


@dataclass(frozen=True)
class UnresolvedQuery:
    """
    An encadreur whose supervisor record could not be found.
    Every scoped collection is empty.
    """
    reason: str = ""


Scope = Union[AdminQuery, EncadreurQuery, StagiaireQuery, UnresolvedQuery]


@dataclass(frozen=True)
class Session:
    """
    Role and scoping key resolved once per load cycle and passed
    explicitly to every use case.
    """
    user: AuthenticatedUser
    role: Role
    scope: Scope


@dataclass(frozen=True)
class InternFilter:
    encadreur_id: Optional[int] = None
    encadreur_user_id: Optional[int] = None
    department: Optional[str] = None
    status: Optional[InternStatus] = None


@dataclass(frozen=True)
class ProjectFilter:
    encadreur_id: Optional[int] = None


@dataclass(frozen=True)
class TaskFilter:
    project_id: Optional[int] = None
    user_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass
class ScopedData:
    """
    Role-scoped collections produced by the aggregator.

    `current_intern` is only set for the STAGIAIRE role.
    """
    role: Role
    interns: List[Intern] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    current_intern: Optional[Intern] = None


@dataclass
class DashboardMetrics:
    total_interns: int = 0
    total_projects: int = 0
    active_projects: int = 0        # projects in PLANNING
    completed_projects: int = 0
    completed_tasks: int = 0
    success_rate: float = 0.0       # 0.0 – 100.0

    # STAGIAIRE only
    days_remaining: Optional[int] = None
    avg_progress: Optional[float] = None
