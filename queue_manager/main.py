import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from queue_manager.api.responses import envelope
from queue_manager.api.v1.job_sets import router as job_sets_router
from queue_manager.api.v1.metrics import router as metrics_router
from queue_manager.api.v1.queues import router as queues_router
from queue_manager.db.session import build_engine, build_session_factory, create_tables
from queue_manager.domain.errors import BackendUnavailable, InvalidRequest
from queue_manager.domain.results import OperationResult
from queue_manager.settings import Settings, settings
from queue_manager.store.base import JobStore
from queue_manager.store.sql import SqlJobStore

logger = logging.getLogger(__name__)


def describe_validation_errors(errors) -> list[str]:
    problems = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return problems


def create_app(app_settings: Optional[Settings] = None, store: Optional[JobStore] = None) -> FastAPI:
    app_settings = app_settings or settings
    base_path = app_settings.BASE_PATH.rstrip("/")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        if store is None:
            engine = build_engine(app_settings.SQLALCHEMY_DATABASE_URI)
            if app_settings.CREATE_TABLES:
                await create_tables(engine)
                logger.info("Queue manager schema ensured.")
            app.state.store = SqlJobStore(
                build_session_factory(engine),
                capabilities=app_settings.STORE_CAPABILITIES,
            )
        logger.info(f"Queue manager mounted at {base_path or '/'}")

        yield

        if engine is not None:
            await engine.dispose()

    app = FastAPI(title=app_settings.PROJECT_NAME, lifespan=lifespan)
    app.state.config = app_settings.manager_config()
    if store is not None:
        app.state.store = store

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if not request.url.path.startswith(base_path or "/"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s - %s (%.2fms)", request.method, request.url.path, response.status_code, duration_ms
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        error = InvalidRequest(describe_validation_errors(exc.errors()))
        logger.warning("%s %s rejected: %s", request.method, request.url.path, error)
        return envelope(OperationResult.failure(error))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return envelope(OperationResult.failure(BackendUnavailable(f"An unexpected error occurred: {exc}")))

    app.include_router(metrics_router, prefix=base_path, tags=["metrics"])
    app.include_router(queues_router, prefix=f"{base_path}/queues", tags=["queues"])
    app.include_router(job_sets_router, prefix=base_path, tags=["job sets"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


logging.basicConfig(level=settings.LOG_LEVEL.upper())
app = create_app()
