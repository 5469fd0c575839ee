"""taskhub FastAPI Backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskhub import config
from taskhub.routers.api import tags_router, tasks_router, users_router
from taskhub.db import connection, migrations
from taskhub.errors import LinkError, NotFoundError, PersistenceError
from taskhub.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("taskhub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("taskhub backend starting up")
    initialize_observability(app)

    # 1. Open the application's DB handle
    db = await connection.open_connection()
    app.state.db = db

    # 2. Run migrations
    await migrations.run_migrations(db)

    yield

    logger.info("taskhub backend shutting down")
    shutdown_observability(app)
    app.state.db = None
    await connection.close_connection(db)


app = FastAPI(
    title="taskhub API",
    description="Users, tasks and tags with relational bookkeeping",
    version="0.1.0",
    lifespan=lifespan,
)


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


async def link_error_handler(request: Request, exc: LinkError) -> JSONResponse:
    logger.warning("Link failed during %s: %s", exc.phase, exc.message)
    return JSONResponse(status_code=409, content={"detail": exc.message, "phase": exc.phase})


async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Persistence failure: %s", exc.message, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": exc.message})


app.add_exception_handler(NotFoundError, not_found_handler)
app.add_exception_handler(LinkError, link_error_handler)
app.add_exception_handler(PersistenceError, persistence_error_handler)

# Register routers
app.include_router(users_router)
app.include_router(tasks_router)
app.include_router(tags_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "backend": config.DB_BACKEND,
        "db": "connected" if getattr(app.state, "db", None) is not None else "disconnected",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
