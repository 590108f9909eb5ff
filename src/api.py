"""
api.py

REST API layer for the Internship Management dashboard core.

Framework : FastAPI
Identity  : The caller is identified by request headers, set by the
            authenticating front end:
              X-User-Role        ADMIN | ENCADREUR | STAGIAIRE   (required)
              X-User-Id          numeric user id                 (required unless ADMIN)
              X-User-First-Name, X-User-Last-Name, X-User-Email, X-User-Avatar
            get_session resolves them to a Session (role + scoping key)
            which every endpoint passes to its use case.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /dashboard            — role-scoped dashboard metrics and cards
  ├── /interns              — intern directory (search + status filter)
  ├── /projects             — projects visible to the caller
  ├── /kanban
  │   ├── /projects                  — kanban project picker
  │   ├── /projects/{project_id}     — three-column board
  │   └── /tasks/{task_id}/move      — move a card to another column
  └── /reports
      └── /document         — PDF (default) or CSV report download

Error handling
--------------
  NotFoundError    → 404
  ScopeError       → 403
  GatewayError     → 502
  ApplicationError → 422
  ValueError       → 422
  Unhandled        → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn main:app --reload
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Path, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi_mcp import FastApiMCP
from pydantic import BaseModel, Field, field_validator

from application import (
    # Exceptions
    ApplicationError,
    GatewayError,
    NotFoundError,
    ScopeError,
    # Interfaces
    AbstractEntityGateways,
    # Commands
    MoveTaskCommand,
    # Use cases
    GenerateReportDocumentUseCase,
    GetDashboardUseCase,
    GetKanbanBoardUseCase,
    GetReportUseCase,
    ListInternsUseCase,
    ListProjectsUseCase,
    MoveTaskUseCase,
    ResolveSessionUseCase,
)
from infrastructure import (
    CsvReportDocumentGenerator,
    InMemoryEntityGateways,
    PdfReportDocumentGenerator,
)
from model import KANBAN_COLUMNS, AuthenticatedUser, Session, UserProfile
from presentation import build_dashboard_cards

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Internship Management — Dashboard API",
    version="1.0.0",
    description=(
        "Role-scoped read API over interns, projects and tasks: dashboard "
        "metrics, intern directory, kanban boards and report documents."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ScopeError)
async def scope_error_handler(request, exc: ScopeError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(GatewayError)
async def gateway_error_handler(request, exc: GatewayError):
    logger.error("Backend call failed on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_gateways() -> AsyncIterator[AbstractEntityGateways]:
    """
    Yields the in-memory gateways (no backend required).
    main.py overrides this with the configured backend.
    """
    async with InMemoryEntityGateways() as gateways:
        yield gateways


def get_current_user(
    x_user_role: str = Header(..., description="ADMIN, ENCADREUR or STAGIAIRE"),
    x_user_id: Optional[int] = Header(default=None),
    x_user_first_name: str = Header(default=""),
    x_user_last_name: str = Header(default=""),
    x_user_email: str = Header(default=""),
    x_user_avatar: Optional[str] = Header(default=None),
) -> AuthenticatedUser:
    return AuthenticatedUser(
        role=x_user_role.strip().upper(),
        profile=UserProfile(
            user_id=x_user_id,
            first_name=x_user_first_name,
            last_name=x_user_last_name,
            email=x_user_email,
            avatar=x_user_avatar,
        ),
    )


async def get_session(
    user: AuthenticatedUser = Depends(get_current_user),
    gateways: AbstractEntityGateways = Depends(get_gateways),
) -> Session:
    return await ResolveSessionUseCase().execute(user, gateways)


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

class MoveTaskRequest(BaseModel):
    project_id: int = Field(..., ge=1, description="Project whose board holds the task.")
    status: str = Field(..., description="One of: TODO, IN_PROGRESS, DONE")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        valid = {s.value for s in KANBAN_COLUMNS}
        if v not in valid:
            raise ValueError(f"status must be one of: {sorted(valid)}")
        return v


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@dashboard_router.get("", summary="Role-scoped dashboard metrics")
async def get_dashboard(
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    """
    The four headline counters for the caller's role, plus the formatted
    cards the dashboard screen displays.  Stagiaires also get the days
    remaining in their internship and their average project progress.
    """
    metrics = await GetDashboardUseCase().execute(session, gateways)
    return _ok(
        {
            "metrics": dataclasses.asdict(metrics),
            "cards": [dataclasses.asdict(c) for c in build_dashboard_cards(metrics)],
        }
    )


# ---------------------------------------------------------------------------
# Interns
# ---------------------------------------------------------------------------

intern_router = APIRouter(prefix="/interns", tags=["Interns"])


@intern_router.get("", summary="Search the intern directory")
async def list_interns(
    search: str = Query(default="", description="Matches first/last name, email or school."),
    status: str = Query(default="all", description="'all' or an intern status."),
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    result = await ListInternsUseCase().execute(session, gateways, search=search, status=status)
    return _ok(result)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

project_router = APIRouter(prefix="/projects", tags=["Projects"])


@project_router.get("", summary="List the projects visible to the caller")
async def list_projects(
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    result = await ListProjectsUseCase().execute(session, gateways)
    return _ok(result)


# ---------------------------------------------------------------------------
# Kanban
# ---------------------------------------------------------------------------

kanban_router = APIRouter(prefix="/kanban", tags=["Kanban"])


@kanban_router.get("/projects", summary="Projects available on the kanban board")
async def list_kanban_projects(
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    result = await ListProjectsUseCase().execute(session, gateways)
    return _ok(result)


@kanban_router.get("/projects/{project_id}", summary="Kanban board of one project")
async def get_kanban_board(
    project_id: int = Path(...),
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    """
    Tasks of the project split into TODO / IN_PROGRESS / DONE columns,
    each sorted by priority then due date.  404 when the project is not
    visible to the caller.
    """
    result = await GetKanbanBoardUseCase().execute(session, project_id, gateways)
    return _ok(result)


@kanban_router.post("/tasks/{task_id}/move", summary="Move a task to another column")
async def move_task(
    body: MoveTaskRequest,
    task_id: int = Path(...),
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    """
    Moving a task onto the column it is already in is accepted and returns
    `updated: false` without touching the backend.
    """
    cmd = MoveTaskCommand(project_id=body.project_id, task_id=task_id, status=body.status)
    result = await MoveTaskUseCase().execute(cmd, session, gateways)
    return _ok(result)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

report_router = APIRouter(prefix="/reports", tags=["Reports"])

_DOCUMENT_GENERATORS = {
    "pdf": PdfReportDocumentGenerator,
    "csv": CsvReportDocumentGenerator,
}


@report_router.get("", summary="Report statistics for the caller's scope")
async def get_report(
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    result = await GetReportUseCase().execute(session, gateways)
    return _ok(result)


@report_router.get(
    "/document",
    summary="Download the report as a document",
    response_class=Response,
)
async def download_report(
    format: str = Query("pdf", pattern="^(pdf|csv)$", description="pdf or csv"),
    session: Session = Depends(get_session),
    gateways: AbstractEntityGateways = Depends(get_gateways),
):
    generator = _DOCUMENT_GENERATORS[format]()
    content = await GenerateReportDocumentUseCase().execute(session, gateways, generator)
    filename = f"rapport-{session.role.value.lower()}.{generator.extension}"
    return Response(
        content=content,
        media_type=generator.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ===========================================================================
# REGISTER ALL ROUTERS
# ===========================================================================

api_v1.include_router(dashboard_router)
api_v1.include_router(intern_router)
api_v1.include_router(project_router)
api_v1.include_router(kanban_router)
api_v1.include_router(report_router)

app.include_router(api_v1)

# ---------------------------------------------------------------------------
# MCP Server — exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ===========================================================================
# OPENAPI CUSTOMISATION — tag order and descriptions
# ===========================================================================

tags_metadata = [
    {
        "name": "Health",
        "description": "Liveness probe.",
    },
    {
        "name": "Dashboard",
        "description": (
            "Headline counters scoped to the caller's role: all data for admins, "
            "supervised interns and projects for encadreurs, own projects and "
            "tasks for stagiaires."
        ),
    },
    {
        "name": "Interns",
        "description": (
            "Intern directory with free-text search and status filter.  "
            "Stagiaires see an empty directory."
        ),
    },
    {
        "name": "Projects",
        "description": "Projects visible to the caller.",
    },
    {
        "name": "Kanban",
        "description": (
            "Per-project task board with three columns.  Moving a task updates "
            "its status on the backend; dropping it on its own column is a no-op."
        ),
    },
    {
        "name": "Reports",
        "description": (
            "Summary, status and priority breakdowns plus per-intern and "
            "per-project tables, as JSON or as a PDF or CSV document."
        ),
    },
]

app.openapi_tags = tags_metadata
