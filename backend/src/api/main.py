"""FastAPI application main entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from ..services.config import get_config
from ..services.database import init_database
from .middleware import register_error_handlers
from .routes import search

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the document store schema before serving requests."""
    db_path = init_database(get_config().database_path)
    logger.info("Startup complete: document store ready", extra={"database_path": str(db_path)})
    yield


app = FastAPI(
    title="Document Search API",
    description="Query-language search over a personal document collection",
    version="0.1.0",
    lifespan=lifespan,
)

config = get_config()

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(search.router, tags=["search"])


@app.get("/api/health")
async def health():
    """Liveness probe."""
    return {"status": "healthy"}


__all__ = ["app"]
