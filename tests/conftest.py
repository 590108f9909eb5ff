from datetime import date

import pytest

from infrastructure import InMemoryDatabase, InMemoryEntityGateways
from model import (
    Encadreur,
    Intern,
    InternStatus,
    Project,
    ProjectStatus,
    Task,
    TaskPriority,
    TaskStatus,
)


def _build_db() -> InMemoryDatabase:
    """
    Two supervisors (encadreur ids 10 and 20), three interns and three
    projects.  Supervisor 10 has interns 201, 202 and projects 1, 2;
    supervisor 20 has intern 203 and project 3.
    """
    db = InMemoryDatabase()
    db.encadreurs.put(Encadreur(id=1, encadreur_id=10, user_id=100, first_name="Karim"))
    db.encadreurs.put(Encadreur(id=2, encadreur_id=20, user_id=110, first_name="Nadia"))

    db.interns.put(Intern(
        id=1, user_id=201, first_name="Sara", last_name="Amrani", email="sara@example.com",
        school="ENSIAS", status=InternStatus.ACTIVE, encadreur_id=10,
        end_date=date(2026, 5, 20),
    ))
    db.interns.put(Intern(
        id=2, user_id=202, first_name="Youssef", last_name="Idrissi", email="youssef@example.com",
        school="EMI", status=InternStatus.PENDING, encadreur_id=10,
    ))
    db.interns.put(Intern(
        id=3, user_id=203, first_name="Lina", last_name="Tazi", email="lina@example.com",
        school="INPT", status=InternStatus.ACTIVE, encadreur_id=20,
    ))

    db.projects.put(Project(
        id=1, title="Portail RH", status=ProjectStatus.COMPLETED, progress=100,
        encadreur_id=10, stagiaire_id="201, 202",
    ))
    db.projects.put(Project(
        id=2, title="Qualité", status=ProjectStatus.PLANNING, progress=20,
        encadreur_id=10, stagiaire_id="202",
    ))
    db.projects.put(Project(
        id=3, title="Réseau", status=ProjectStatus.IN_PROGRESS, progress=50,
        encadreur_id=20, stagiaire_id="203",
    ))

    for task in (
        Task(id=1, title="Maquettes", status=TaskStatus.DONE, priority=TaskPriority.HIGH,
             project_id=1, assigned_to=201),
        Task(id=2, title="API", status=TaskStatus.TODO, priority=TaskPriority.MEDIUM,
             project_id=1, assigned_to=202),
        Task(id=3, title="Indicateurs", status=TaskStatus.IN_PROGRESS, priority=TaskPriority.LOW,
             project_id=2, assigned_to=202),
        Task(id=4, title="Câblage", status=TaskStatus.DONE, priority=TaskPriority.HIGH,
             project_id=3, assigned_to=203),
        Task(id=5, title="Panne switch", status=TaskStatus.BUG, priority=TaskPriority.HIGH,
             project_id=3, assigned_to=203),
    ):
        db.tasks.put(task)
    return db


@pytest.fixture
def db() -> InMemoryDatabase:
    return _build_db()


@pytest.fixture
def gateways(db) -> InMemoryEntityGateways:
    return InMemoryEntityGateways(db)
