"""
main.py

Entry point for the Internship Management dashboard API.

Reads the settings (environment / .env), configures logging, wires the
configured gateways into the FastAPI app and starts uvicorn.

Usage
-----
    # Option 1 — run directly
    python main.py

    # Option 2 — run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI
    http://localhost:8000/health    ← liveness check

Quick-start (in-memory backend, seeded with demo data)
------------------------------------------------------
    curl -H "X-User-Role: ADMIN" localhost:8000/api/v1/dashboard
    curl -H "X-User-Role: ENCADREUR" -H "X-User-Id: 100" localhost:8000/api/v1/kanban/projects
    curl -H "X-User-Role: STAGIAIRE" -H "X-User-Id: 201" localhost:8000/api/v1/reports/document

Set GATEWAY_BACKEND=http and API_BASE_URL to read from the real backend.
"""

import logging

import uvicorn

from api import app, get_gateways
from config import load_settings
from infrastructure import HttpEntityGateways, InMemoryEntityGateways, seed_demo_data

settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire the configured gateways into the FastAPI dependency system.
# ---------------------------------------------------------------------------

async def _http_gateways():
    async with HttpEntityGateways.from_settings(settings) as gateways:
        yield gateways


async def _memory_gateways():
    async with InMemoryEntityGateways() as gateways:
        yield gateways


if settings.gateway_backend == "http":
    app.dependency_overrides[get_gateways] = _http_gateways
    logger.info("Using HTTP backend at %s", settings.api_base_url)
else:
    seed_demo_data()
    app.dependency_overrides[get_gateways] = _memory_gateways
    logger.info("Using in-memory backend with demo data")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
