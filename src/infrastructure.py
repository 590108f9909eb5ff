"""
infrastructure.py

Concrete implementations of the gateway interfaces and the report document
generator.

In-memory gateways
    Store everything in plain Python dicts keyed by id.  They honour the
    same filters as the backend and are suitable for local development,
    demos and tests without a running backend.

HTTP gateways
    Talk to the backend REST services with one shared httpx.AsyncClient.
    The backend speaks camelCase JSON; payloads are converted to the
    domain dataclasses here and nowhere else.  Transport failures and
    non-2xx responses surface as GatewayError.  No retries.

Report generators
    Render the report tables from service.ReportService as a landscape A4
    PDF (reportlab) or as a UTF-8 CSV document.

main.py picks the backend from GATEWAY_BACKEND and overrides get_gateways()
in api.py with an async generator that yields the gateway bundle, e.g.

    async with HttpEntityGateways.from_settings(settings) as gateways:
        yield gateways

Nothing in service.py, application.py or presentation.py needs to change.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional
from xml.sax.saxutils import escape

import httpx
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from application import (
    AbstractEncadreurGateway,
    AbstractEntityGateways,
    AbstractInternGateway,
    AbstractProjectGateway,
    AbstractReportDocumentGenerator,
    AbstractTaskGateway,
    GatewayError,
)
from config import Settings
from model import (
    Encadreur,
    Intern,
    InternFilter,
    InternStatus,
    Project,
    ProjectFilter,
    ProjectStatus,
    Role,
    Task,
    TaskFilter,
    TaskPriority,
    TaskStatus,
)
from service import ReportService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save helpers."""

    def fetch(self, key: int):
        return self.get(key)

    def put(self, obj) -> None:
        self[obj.id] = obj

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Persists for the lifetime of the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.interns:    _Store = _Store()
        self.projects:   _Store = _Store()
        self.tasks:      _Store = _Store()
        self.encadreurs: _Store = _Store()


_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# In-memory gateway implementations
# ---------------------------------------------------------------------------

class InMemoryInternGateway(AbstractInternGateway):
    def __init__(self, db: InMemoryDatabase): self._db = db

    async def list(self, filters=None):
        interns = self._db.interns.all()
        if filters is None:
            return interns
        encadreur_id = filters.encadreur_id
        if filters.encadreur_user_id is not None:
            encadreur = next(
                (e for e in self._db.encadreurs.all() if e.user_id == filters.encadreur_user_id),
                None,
            )
            if encadreur is None:
                return []
            if encadreur_id is not None and encadreur_id != encadreur.encadreur_id:
                return []
            encadreur_id = encadreur.encadreur_id
        if encadreur_id is not None:
            interns = [i for i in interns if i.encadreur_id == encadreur_id]
        if filters.department:
            interns = [i for i in interns if i.department == filters.department]
        if filters.status is not None:
            interns = [i for i in interns if i.status == filters.status]
        return interns


class InMemoryProjectGateway(AbstractProjectGateway):
    def __init__(self, db: InMemoryDatabase): self._db = db

    async def list(self, filters=None):
        projects = self._db.projects.all()
        if filters is not None and filters.encadreur_id is not None:
            projects = [p for p in projects if p.encadreur_id == filters.encadreur_id]
        return projects


class InMemoryTaskGateway(AbstractTaskGateway):
    def __init__(self, db: InMemoryDatabase): self._db = db

    async def list(self, filters=None):
        tasks = self._db.tasks.all()
        if filters is None:
            return tasks
        if filters.project_id is not None:
            tasks = [t for t in tasks if t.project_id == filters.project_id]
        if filters.user_id is not None:
            tasks = [t for t in tasks if t.assigned_to == filters.user_id]
        return tasks

    async def update_status(self, task_id, status):
        task = self._db.tasks.fetch(task_id)
        if task is None:
            raise GatewayError(f"Task {task_id} not found.", status_code=404)
        task.status = TaskStatus(status)
        return task


class InMemoryEncadreurGateway(AbstractEncadreurGateway):
    def __init__(self, db: InMemoryDatabase): self._db = db

    async def get(self, encadreur_id):
        return next((e for e in self._db.encadreurs.all() if e.encadreur_id == encadreur_id), None)

    async def get_by_user_id(self, user_id):
        return next((e for e in self._db.encadreurs.all() if e.user_id == user_id), None)


class InMemoryEntityGateways(AbstractEntityGateways):
    """
    Wraps all in-memory gateways.  There is nothing to release, so the
    inherited aclose() is a no-op.
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self.db         = db
        self.interns    = InMemoryInternGateway(db)
        self.projects   = InMemoryProjectGateway(db)
        self.tasks      = InMemoryTaskGateway(db)
        self.encadreurs = InMemoryEncadreurGateway(db)


def seed_demo_data(db: InMemoryDatabase = _db) -> InMemoryDatabase:
    """
    Populate the store with one supervisor, two interns, two projects and a
    handful of tasks so the API is usable without a backend.
    Seeding an already populated store does nothing.
    """
    if db.interns or db.projects or db.tasks or db.encadreurs:
        return db

    db.encadreurs.put(Encadreur(
        id=1, encadreur_id=10, user_id=100, first_name="Karim", last_name="Benali",
        email="k.benali@example.com", department="Informatique",
    ))
    db.interns.put(Intern(
        id=1, user_id=201, first_name="Sara", last_name="Amrani",
        email="sara.amrani@example.com", school="ENSIAS", department="Informatique",
        start_date=date(2026, 3, 1), end_date=date(2026, 8, 31),
        status=InternStatus.ACTIVE, encadreur_id=10, encadreur_name="Karim Benali",
    ))
    db.interns.put(Intern(
        id=2, user_id=202, first_name="Youssef", last_name="Idrissi",
        email="y.idrissi@example.com", school="EMI", department="Informatique",
        start_date=date(2026, 4, 1), end_date=date(2026, 9, 30),
        status=InternStatus.PENDING, encadreur_id=10, encadreur_name="Karim Benali",
    ))
    db.projects.put(Project(
        id=1, title="Portail RH", description="Refonte du portail interne",
        status=ProjectStatus.IN_PROGRESS, progress=60, department="Informatique",
        encadreur_id=10, stagiaire_id="201,202",
    ))
    db.projects.put(Project(
        id=2, title="Tableau de bord qualité", status=ProjectStatus.PLANNING,
        progress=10, department="Qualité", encadreur_id=None, stagiaire_id="202",
    ))
    for task in (
        Task(id=1, title="Maquettes", status=TaskStatus.DONE, priority=TaskPriority.HIGH,
             project_id=1, assigned_to=201),
        Task(id=2, title="API des congés", status=TaskStatus.IN_PROGRESS,
             priority=TaskPriority.HIGH, due_date=date(2026, 6, 15), project_id=1,
             assigned_to=201),
        Task(id=3, title="Tests d'intégration", status=TaskStatus.TODO,
             priority=TaskPriority.MEDIUM, project_id=1, assigned_to=202),
        Task(id=4, title="Collecte des indicateurs", status=TaskStatus.TODO,
             priority=TaskPriority.LOW, project_id=2, assigned_to=202),
    ):
        db.tasks.put(task)
    return db


# ---------------------------------------------------------------------------
# Wire format helpers (backend camelCase JSON → domain dataclasses)
# ---------------------------------------------------------------------------

def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise GatewayError(f"Unexpected date value from backend: {value!r}") from None


def _parse_enum(enum_cls, value: Any, default=None):
    if value is None and default is not None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        raise GatewayError(f"Unexpected {enum_cls.__name__} from backend: {value!r}") from None


def _optional_int(value: Any) -> Optional[int]:
    return int(value) if value is not None and value != "" else None


def _first(payload: Dict, *keys: str, default=None):
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return default


def _intern_from_json(payload: Dict) -> Intern:
    return Intern(
        id=int(payload["id"]),
        user_id=int(payload["userId"]),
        first_name=payload.get("firstName") or "",
        last_name=payload.get("lastName") or "",
        email=payload.get("email") or "",
        phone=payload.get("phone") or "",
        school=payload.get("school") or "",
        department=payload.get("department") or "",
        start_date=_parse_date(payload.get("startDate")),
        end_date=_parse_date(payload.get("endDate")),
        status=_parse_enum(InternStatus, payload.get("status"), InternStatus.PENDING),
        # Some backend versions still send the snake_case key
        encadreur_id=_optional_int(_first(payload, "encadreurId", "encadreur_id")),
        encadreur_name=payload.get("encadreurName"),
        project_id=_optional_int(payload.get("projectId")),
        project_title=payload.get("projectTitle"),
        notes=payload.get("notes"),
        avatar=payload.get("avatar"),
    )


def _project_from_json(payload: Dict) -> Project:
    stagiaire_id = payload.get("stagiaireId")
    return Project(
        id=int(payload["id"]),
        title=payload.get("title") or "",
        description=payload.get("description") or "",
        status=_parse_enum(ProjectStatus, payload.get("status"), ProjectStatus.PLANNING),
        progress=int(payload.get("progress") or 0),
        start_date=_parse_date(payload.get("startDate")),
        end_date=_parse_date(payload.get("endDate")),
        department=payload.get("department") or "",
        encadreur_id=_optional_int(payload.get("encadreurId")),
        stagiaire_id=str(stagiaire_id) if stagiaire_id is not None else None,
    )


def _task_from_json(payload: Dict) -> Task:
    return Task(
        id=int(payload["id"]),
        title=payload.get("title") or "",
        description=payload.get("description") or "",
        status=_parse_enum(TaskStatus, payload.get("status"), TaskStatus.TODO),
        priority=_parse_enum(TaskPriority, payload.get("priority"), TaskPriority.MEDIUM),
        due_date=_parse_date(payload.get("dueDate")),
        project_id=int(payload["projectId"]),
        assigned_to=_optional_int(payload.get("assignedTo")),
    )


def _encadreur_from_json(payload: Dict) -> Encadreur:
    return Encadreur(
        id=int(payload["id"]),
        encadreur_id=int(payload["encadreurId"]),
        user_id=int(payload["userId"]),
        first_name=payload.get("firstName") or "",
        last_name=payload.get("lastName") or "",
        email=payload.get("email") or "",
        phone=payload.get("phone") or "",
        department=payload.get("department") or "",
    )


def _decode(decode, payload: Any, path: str):
    try:
        return decode(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise GatewayError(f"Unexpected payload from {path}.") from exc


def _params(**values: Any) -> Dict[str, str]:
    return {
        k: str(v.value if hasattr(v, "value") else v)
        for k, v in values.items()
        if v is not None and v != ""
    }


# ---------------------------------------------------------------------------
# HTTP gateway implementations
# ---------------------------------------------------------------------------

class _HttpGateway:
    def __init__(self, client: httpx.AsyncClient): self._client = client

    async def _request(self, method: str, path: str, *, allow_missing: bool = False, **kwargs):
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise GatewayError("Impossible de joindre le serveur.") from exc

        if allow_missing and resp.status_code == 404:
            return None
        if resp.is_error:
            logger.error("%s %s returned %s", method, path, resp.status_code)
            raise GatewayError(
                f"Le serveur a répondu {resp.status_code} pour {path}.",
                status_code=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise GatewayError(f"Réponse illisible du serveur pour {path}.") from exc
        # Some endpoints wrap their payload as {"data": ...}
        if isinstance(body, dict) and "data" in body and "id" not in body:
            body = body["data"]
        return body

    async def _list(self, path: str, decode, params: Dict[str, str]) -> list:
        body = await self._request("GET", path, params=params)
        if not isinstance(body, list):
            raise GatewayError(f"Expected a list from {path}.")
        return [_decode(decode, item, path) for item in body]


class HttpInternGateway(_HttpGateway, AbstractInternGateway):
    async def list(self, filters=None):
        filters = filters or InternFilter()
        return await self._list(
            "/interns",
            _intern_from_json,
            _params(
                encadreurId=filters.encadreur_id,
                encadreurUserId=filters.encadreur_user_id,
                department=filters.department,
                status=filters.status,
            ),
        )


class HttpProjectGateway(_HttpGateway, AbstractProjectGateway):
    async def list(self, filters=None):
        filters = filters or ProjectFilter()
        return await self._list(
            "/projects", _project_from_json, _params(encadreurId=filters.encadreur_id)
        )


class HttpTaskGateway(_HttpGateway, AbstractTaskGateway):
    async def list(self, filters=None):
        filters = filters or TaskFilter()
        return await self._list(
            "/tasks",
            _task_from_json,
            _params(projectId=filters.project_id, userId=filters.user_id),
        )

    async def update_status(self, task_id, status):
        body = await self._request(
            "PATCH", f"/tasks/{task_id}/status", json={"status": TaskStatus(status).value}
        )
        return _decode(_task_from_json, body, f"/tasks/{task_id}/status")


class HttpEncadreurGateway(_HttpGateway, AbstractEncadreurGateway):
    async def get(self, encadreur_id):
        body = await self._request("GET", f"/encadreurs/{encadreur_id}", allow_missing=True)
        return _decode(_encadreur_from_json, body, "/encadreurs") if body else None

    async def get_by_user_id(self, user_id):
        body = await self._request("GET", f"/encadreurs/user/{user_id}", allow_missing=True)
        return _decode(_encadreur_from_json, body, "/encadreurs") if body else None


class HttpEntityGateways(AbstractEntityGateways):
    """
    All HTTP gateways over one AsyncClient.  A client passed in by the
    caller is left open on aclose(); one created here is closed.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        if client is None:
            headers = {"Accept": "application/json"}
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.AsyncClient(
                base_url=base_url.rstrip("/"),
                headers=headers,
                timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            )
        self._client = client
        self.interns    = HttpInternGateway(client)
        self.projects   = HttpProjectGateway(client)
        self.tasks      = HttpTaskGateway(client)
        self.encadreurs = HttpEncadreurGateway(client)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpEntityGateways":
        return cls(
            base_url=settings.api_base_url,
            token=settings.api_token,
            timeout=settings.api_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# Report document generator
# ---------------------------------------------------------------------------

_ROLE_TITLES = {
    Role.ADMIN: "Rapport global",
    Role.ENCADREUR: "Rapport encadreur",
    Role.STAGIAIRE: "Rapport stagiaire",
}


class CsvReportDocumentGenerator(AbstractReportDocumentGenerator):
    """
    One CSV document with a header block followed by the summary, status,
    priority, intern and project tables, separated by blank lines.
    """

    media_type = "text/csv"
    extension = "csv"

    def __init__(self, clock=None):
        self._report = ReportService()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def generate(self, interns, projects, tasks, role, user_name, avatar=None):
        buffer = io.StringIO()
        writer = csv.writer(buffer)

        writer.writerow([_ROLE_TITLES.get(role, "Rapport")])
        writer.writerow(["Généré par", user_name])
        if avatar:
            writer.writerow(["Avatar", avatar])
        writer.writerow(["Date", self._clock().strftime("%d/%m/%Y %H:%M")])
        writer.writerow([])

        writer.writerow(["Indicateur", "Valeur"])
        for key, value in self._report.summary(interns, projects, tasks).items():
            writer.writerow([key, value])
        writer.writerow([])

        writer.writerow(["Statut", "Tâches"])
        for key, value in self._report.tasks_by_status(tasks).items():
            writer.writerow([key, value])
        writer.writerow([])

        writer.writerow(["Priorité", "Tâches"])
        for key, value in self._report.tasks_by_priority(tasks).items():
            writer.writerow([key, value])

        for rows in (
            self._report.intern_rows(interns, projects, tasks),
            self._report.project_rows(projects, tasks),
        ):
            if not rows:
                continue
            writer.writerow([])
            writer.writerow(list(rows[0].keys()))
            for row in rows:
                writer.writerow(list(row.values()))

        return buffer.getvalue().encode("utf-8")


_STATUS_LABELS = {
    "TODO": "En attente",
    "IN_PROGRESS": "En cours",
    "DONE": "Terminées",
    "BUG": "Bugs",
}

_PRIORITY_LABELS = {"LOW": "Basse", "MEDIUM": "Moyenne", "HIGH": "Haute"}

_TABLE_STYLE = TableStyle([
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#4472C4")),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, 0), 9),
    ("ALIGN", (0, 0), (-1, 0), "CENTER"),
    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
    ("FONTSIZE", (0, 1), (-1, -1), 8),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("BOX", (0, 0), (-1, -1), 1, colors.black),
    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F2F2F2")]),
])


class PdfReportDocumentGenerator(AbstractReportDocumentGenerator):
    """
    The management report as a landscape A4 PDF: a title block naming the
    author and date, then one table per section (summary, tasks by status,
    tasks by priority, interns, projects).  Empty intern or project
    sections are left out.
    """

    media_type = "application/pdf"
    extension = "pdf"

    def __init__(self, clock=None):
        self._report = ReportService()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def generate(self, interns, projects, tasks, role, user_name, avatar=None):
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            rightMargin=1 * cm,
            leftMargin=1 * cm,
            topMargin=1 * cm,
            bottomMargin=1 * cm,
            title=_ROLE_TITLES.get(role, "Rapport"),
            author=user_name,
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ReportTitle", parent=styles["Heading1"], fontSize=14, alignment=TA_CENTER, spaceAfter=20
        )
        sub_style = ParagraphStyle(
            "ReportSubTitle", parent=styles["Normal"], fontSize=9, alignment=TA_CENTER, spaceAfter=15
        )

        elements = [
            Paragraph(escape(_ROLE_TITLES.get(role, "Rapport").upper()), title_style),
            Paragraph(f"Généré par : {escape(user_name)}", sub_style),
        ]
        if avatar:
            elements.append(Paragraph(f"Avatar : {escape(avatar)}", sub_style))
        elements.append(
            Paragraph(f"Date : {self._clock().strftime('%d/%m/%Y %H:%M')}", sub_style)
        )

        summary = self._report.summary(interns, projects, tasks)
        self._section(elements, styles, "Résumé global",
                      [["Indicateur", "Valeur"]] + [[k, v] for k, v in summary.items()])

        by_status = self._report.tasks_by_status(tasks)
        self._section(elements, styles, "Tâches par statut",
                      [["Statut", "Tâches"]]
                      + [[_STATUS_LABELS.get(k, k), v] for k, v in by_status.items()])

        by_priority = self._report.tasks_by_priority(tasks)
        self._section(elements, styles, "Tâches par priorité",
                      [["Priorité", "Tâches"]]
                      + [[_PRIORITY_LABELS.get(k, k), v] for k, v in by_priority.items()])

        for heading, rows in (
            ("Détails par stagiaire", self._report.intern_rows(interns, projects, tasks)),
            ("Détails par projet", self._report.project_rows(projects, tasks)),
        ):
            if rows:
                self._section(elements, styles, heading,
                              [list(rows[0].keys())] + [list(row.values()) for row in rows])

        doc.build(elements)
        return buffer.getvalue()

    @staticmethod
    def _section(elements, styles, heading, data):
        elements.append(Spacer(1, 12))
        elements.append(Paragraph(escape(heading), styles["Heading2"]))
        table = Table([[str(cell) for cell in row] for row in data], repeatRows=1)
        table.setStyle(_TABLE_STYLE)
        elements.append(table)
