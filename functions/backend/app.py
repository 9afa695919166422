"""
HTTP surface of the memorial wizard.

`create_app` mounts the routes under `settings.api_prefix` (default "/api"):

    GET  /config             public client configuration (asset cloud, preset, limits)
    POST /delete-asset       removes an uploaded asset the caller owns
    POST /validate-memorial  validates a draft and returns it sanitized

Run locally with `uvicorn backend.app:app --reload` from `functions/`.
"""

from __future__ import annotations

from fastapi import FastAPI

from backend.config import get_settings
from backend.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Tayvu Memorials API", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
