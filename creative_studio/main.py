"""Creative Studio backend - FastAPI application."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from creative_studio.api.deps import error_response, set_services
from creative_studio.api.v1.health import router as health_root_router
from creative_studio.api.v1.router import v1_router
from creative_studio.config import settings
from creative_studio.jobs.errors import (
    InvalidTransition,
    JobError,
    JobNotFound,
    ProcessorError,
    StorageError,
    TemplateNotFound,
    ValidationFailed,
)
from creative_studio.services import build_services

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    print(f"Starting Creative Studio backend on port {settings.api_port}")
    print(f"Job store: {settings.job_store_backend}, storage: {settings.storage_backend}")
    print(f"Lipsync reconcile mode: {settings.lipsync_reconcile_mode}")

    services = build_services(settings)
    set_services(services)

    if services.dispatcher is not None:
        await services.dispatcher.start()
        print("Style job worker started")

    if services.poller is not None:
        services.poller.bind_loop(asyncio.get_running_loop())
        resumed = await services.poller.resume()
        print(f"Resumed polling for {resumed} open lipsync job(s)")

    yield

    print("Shutting down Creative Studio backend")
    if services.dispatcher is not None:
        await services.dispatcher.stop()
    if services.poller is not None:
        await services.poller.stop()
    set_services(None)


app = FastAPI(
    title="Creative Studio API",
    description="Async generation jobs for marketing creatives: lipsync video, style replication, templates",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: frontend dev servers and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error shape: every failure leaves as {"success": false, "error": message}
# ---------------------------------------------------------------------------

_JOB_ERROR_STATUS = [
    (ValidationFailed, 400),
    (JobNotFound, 404),
    (TemplateNotFound, 404),
    (InvalidTransition, 409),
    (ProcessorError, 502),
    (StorageError, 502),
]


@app.exception_handler(JobError)
async def job_error_handler(request: Request, exc: JobError):
    for exc_type, status_code in _JOB_ERROR_STATUS:
        if isinstance(exc, exc_type):
            if status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            return error_response(status_code, str(exc))
    logger.exception("Unhandled job error on %s", request.url.path)
    return error_response(500, "An internal server error occurred.")


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return error_response(422, "; ".join(problems))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "An internal server error occurred.")


# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints

if settings.storage_backend == "local":
    app.mount(
        "/files",
        StaticFiles(directory=settings.local_storage_dir, check_dir=False),
        name="files",
    )
