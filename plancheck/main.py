"""plancheck FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from plancheck import config
from plancheck.db import connection, sqlite_migrations
from plancheck.observability import initialize as initialize_observability, shutdown as shutdown_observability
from plancheck.routers.analysis import analysis_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("plancheck")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("plancheck starting up")
    initialize_observability(app)

    db = await connection.get_connection()
    await sqlite_migrations.run_migrations(db)

    yield

    logger.info("plancheck shutting down")
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="plancheck API",
    description="Evidence-weighted completion scoring for planned features and TODO comments",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(analysis_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("plancheck.main:app", host=config.HOST, port=config.PORT)
