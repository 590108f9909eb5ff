"""
config.py

Runtime settings, read from the environment (and a .env file next to the
sources when present).

Variables
---------
API_BASE_URL         Backend REST root             (http://localhost:8080/api)
API_TOKEN            Bearer token for the backend  (unset)
API_TIMEOUT_SECONDS  Per-request timeout           (10)
GATEWAY_BACKEND      "memory" or "http"            (memory)
LOG_LEVEL            Root logging level            (INFO)
HOST / PORT          uvicorn bind address          (127.0.0.1 / 8000)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

GATEWAY_BACKENDS = ("memory", "http")


@dataclass(frozen=True)
class Settings:
    api_base_url: str = "http://localhost:8080/api"
    api_token: Optional[str] = None
    api_timeout_seconds: float = 10.0
    gateway_backend: str = "memory"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path=env_file or os.path.join(os.path.dirname(__file__), ".env"))

    backend = os.getenv("GATEWAY_BACKEND", "memory").lower()
    if backend not in GATEWAY_BACKENDS:
        raise RuntimeError(f"GATEWAY_BACKEND must be one of {GATEWAY_BACKENDS}, got '{backend}'.")

    return Settings(
        api_base_url=os.getenv("API_BASE_URL", "http://localhost:8080/api"),
        api_token=os.getenv("API_TOKEN") or None,
        api_timeout_seconds=float(os.getenv("API_TIMEOUT_SECONDS", "10")),
        gateway_backend=backend,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
