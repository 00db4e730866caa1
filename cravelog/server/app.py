"""FastAPI application serving per-identity craving collections."""

import logging

from fastapi import FastAPI
from pydantic import BaseModel, Field

from ..config import Config
from .store import CollectionStore

logger = logging.getLogger(__name__)


class CravingCreate(BaseModel):
    duration: int = Field(gt=0, description="Resisted duration in milliseconds")


def create_app(config: Config, store: CollectionStore | None = None) -> FastAPI:
    """Create the collection service application.

    Args:
        config: Application configuration.
        store: Optional CollectionStore; opened from config when omitted.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="cravelog collection service",
        description="Authoritative store for logged resistance events",
        version="0.1.0",
    )

    if store is None:
        store = CollectionStore(config.server.db_path)
    store.connect()
    app.state.store = store

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/artifacts/{app_id}/users/{identity}/cravings")
    async def list_cravings(app_id: str, identity: str):
        """Full collection snapshot with its version."""
        version, items = store.snapshot(app_id, identity)
        return {"version": version, "items": items}

    @app.post("/api/artifacts/{app_id}/users/{identity}/cravings", status_code=201)
    async def create_craving(app_id: str, identity: str, body: CravingCreate):
        """Append a record; the server assigns id and date."""
        item = store.append(app_id, identity, body.duration)
        logger.info(f"Logged {body.duration}ms for {identity}")
        return item

    return app
