import pytest
from fastapi.testclient import TestClient

from api import app, get_gateways
from application import GatewayError
from infrastructure import InMemoryEntityGateways, InMemoryTaskGateway


class _UnreachableTaskGateway(InMemoryTaskGateway):
    async def list(self, filters=None):
        raise GatewayError("Impossible de joindre le serveur.")


@pytest.fixture
def client(db):
    async def override():
        yield InMemoryEntityGateways(db)

    app.dependency_overrides[get_gateways] = override
    yield TestClient(app)
    app.dependency_overrides.clear()


ADMIN = {"X-User-Role": "ADMIN"}
ENCADREUR = {"X-User-Role": "ENCADREUR", "X-User-Id": "100"}
OTHER_ENCADREUR = {"X-User-Role": "ENCADREUR", "X-User-Id": "110"}
STAGIAIRE = {"X-User-Role": "STAGIAIRE", "X-User-Id": "202", "X-User-First-Name": "Youssef"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_admin_dashboard(client):
    resp = client.get("/api/v1/dashboard", headers=ADMIN)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["metrics"]["total_interns"] == 3
    assert [c["title"] for c in data["cards"]][0] == "Total Stagiaires"


def test_role_header_is_required(client):
    assert client.get("/api/v1/dashboard").status_code == 422


def test_unknown_role_is_forbidden(client):
    resp = client.get("/api/v1/projects", headers={"X-User-Role": "GUEST", "X-User-Id": "1"})
    assert resp.status_code == 403


def test_stagiaire_without_user_id_is_forbidden(client):
    assert client.get("/api/v1/projects", headers={"X-User-Role": "STAGIAIRE"}).status_code == 403


def test_interns_search_and_status(client):
    resp = client.get("/api/v1/interns", params={"search": "sara"}, headers=ENCADREUR)
    assert [i["user_id"] for i in resp.json()["data"]] == [201]

    resp = client.get("/api/v1/interns", params={"status": "WHATEVER"}, headers=ADMIN)
    assert resp.status_code == 422


def test_stagiaire_projects(client):
    resp = client.get("/api/v1/projects", headers=STAGIAIRE)
    assert [p["id"] for p in resp.json()["data"]] == [1, 2]


def test_kanban_board_outside_scope(client):
    resp = client.get("/api/v1/kanban/projects/1", headers=OTHER_ENCADREUR)
    assert resp.status_code == 404


def test_kanban_board(client):
    resp = client.get("/api/v1/kanban/projects/1", headers=ENCADREUR)
    columns = resp.json()["data"]["columns"]
    assert [(c["status"], c["count"]) for c in columns] == [("TODO", 1), ("IN_PROGRESS", 0), ("DONE", 1)]


def test_move_task(client, db):
    same = client.post(
        "/api/v1/kanban/tasks/1/move", json={"project_id": 1, "status": "DONE"}, headers=ENCADREUR
    )
    assert same.json()["data"]["updated"] is False

    moved = client.post(
        "/api/v1/kanban/tasks/2/move",
        json={"project_id": 1, "status": "IN_PROGRESS"},
        headers=ENCADREUR,
    )
    assert moved.json()["data"]["updated"] is True
    assert db.tasks.fetch(2).status.value == "IN_PROGRESS"


def test_move_task_rejects_bug_column(client):
    resp = client.post(
        "/api/v1/kanban/tasks/2/move", json={"project_id": 1, "status": "BUG"}, headers=ADMIN
    )
    assert resp.status_code == 422


def test_report_json_and_document(client):
    report = client.get("/api/v1/reports", headers=STAGIAIRE).json()["data"]
    assert report["role"] == "STAGIAIRE"
    assert report["summary"]["total_tasks"] == 2

    pdf = client.get("/api/v1/reports/document", headers=STAGIAIRE)
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert 'filename="rapport-stagiaire.pdf"' in pdf.headers["content-disposition"]
    assert pdf.content.startswith(b"%PDF")

    doc = client.get("/api/v1/reports/document", params={"format": "csv"}, headers=STAGIAIRE)
    assert doc.status_code == 200
    assert doc.headers["content-type"].startswith("text/csv")
    assert 'filename="rapport-stagiaire.csv"' in doc.headers["content-disposition"]
    assert doc.content.decode("utf-8").startswith("Rapport stagiaire")


def test_report_document_rejects_unknown_format(client):
    resp = client.get("/api/v1/reports/document", params={"format": "xlsx"}, headers=ADMIN)
    assert resp.status_code == 422


def test_backend_failure_maps_to_bad_gateway(db):
    async def override():
        gateways = InMemoryEntityGateways(db)
        gateways.tasks = _UnreachableTaskGateway(db)
        yield gateways

    app.dependency_overrides[get_gateways] = override
    try:
        resp = TestClient(app).get("/api/v1/dashboard", headers=ADMIN)
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 502
    assert resp.json() == {"detail": "Impossible de joindre le serveur."}
