"""
Print Studio – FastAPI Application Factory.

Registers the card, mini and stat block routers and configures CORS,
logging and lifespan events (database schema bootstrap on startup).
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.controllers.card_controller import router as card_router
from app.controllers.dependencies import get_database
from app.controllers.mini_controller import router as mini_router
from app.controllers.statblock_controller import router as statblock_router

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

log_level = os.getenv("LOG_LEVEL", "info").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger("printstudio")


# ---------------------------------------------------------------------------
# Lifespan (startup / shutdown)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - **Startup**: Create the SQLite tables so the first request finds them.
    - **Shutdown**: Nothing to release; connections are per operation.
    """
    db = get_database()
    logger.info("Print Studio starting up, database at %s", db.path)
    yield
    logger.info("Print Studio shutting down")


# ---------------------------------------------------------------------------
# App instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Print Studio",
    description=(
        "Tabletop RPG print materials. Manage reference cards, miniature "
        "images and mini sheets, and export duplex card decks and paginated "
        "mini sheets as printable PDFs."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = [o.strip() for o in os.getenv("PRINTSTUDIO_CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(card_router)
app.include_router(mini_router)
app.include_router(statblock_router)


@app.get("/health")
async def health():
    """Health-check endpoint."""
    return {"status": "ok", "service": "Print Studio"}


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Print Studio v1.0.0", "docs": "/docs"}
