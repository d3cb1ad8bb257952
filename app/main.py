"""FastAPI application entry point."""

import logging
import threading
from typing import List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.routes import files, workflows

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Photo Session Worker",
    description="Durable corporate photo session generation workflow",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(workflows.router)
app.include_router(files.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are rejected with 400 before reaching the orchestrator."""
    logger.info(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or invalid fields", "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> List[dict]:
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]


# Worker thread management
worker_threads: List[threading.Thread] = []
worker_stop_event = threading.Event()


@app.on_event("startup")
async def startup_event():
    """Apply migrations and start the background workers."""
    logger.info("Starting application...")

    from app.database import ensure_schema

    ensure_schema()

    if not settings.WORKER_ENABLED:
        logger.info("Background worker disabled")
        return

    from app.worker import start_workers

    worker_threads.extend(start_workers(worker_stop_event))


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the background workers when the app shuts down."""
    logger.info("Shutting down application...")

    # Signal workers to stop; in-flight steps finish first
    worker_stop_event.set()

    for thread in worker_threads:
        if thread.is_alive():
            thread.join(timeout=10)
    logger.info("Background worker threads stopped")


@app.get("/")
@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "worker": "photosession"}
