"""FastAPI Application Entry Point.

Configures the app, lifespan, CORS, and includes all route modules.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowcore.config import CORS_ORIGINS as _CORS_ORIGINS_RAW
from flowcore.logging_config import configure_logging, get_logger

# Ensure executors are registered at import time
import flowcore.nodes  # noqa: F401

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and stop in-flight runs on shutdown."""
    configure_logging()
    logger.info("Workflow API starting")
    yield
    await cancel_running_tasks()
    logger.info("Workflow API stopped")


app = FastAPI(title="Workflow Execution API", version="1.0.0", lifespan=lifespan)

CORS_ORIGINS = [o.strip() for o in _CORS_ORIGINS_RAW.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from .routes.workflows import cancel_running_tasks, router as workflows_router  # noqa: E402
from .routes.node_types import router as node_types_router  # noqa: E402

app.include_router(workflows_router)
app.include_router(node_types_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    from flowcore.config import API_HOST, API_PORT

    uvicorn.run("app.main:app", host=API_HOST, port=API_PORT)
