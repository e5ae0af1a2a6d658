"""FastAPI application factory."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dispatcher.logging import get_logger
from dispatcher.persistence.exceptions import PersistenceError, RecordNotFoundError
from dispatcher.pipeline.runner import DispatchPipeline

from .routes import register_routes

logger = get_logger(__name__, component="api")

DISPATCH_PATH = "/process-notifications"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def cors_headers_for(path: str) -> dict:
    """CORS headers for a request path; admin routes also allow GET and DELETE."""
    if path.rstrip("/") == DISPATCH_PATH:
        methods = "POST, OPTIONS"
    else:
        methods = "GET, POST, DELETE, OPTIONS"
    return {**CORS_HEADERS, "Access-Control-Allow-Methods": methods}


def create_app(pipeline: DispatchPipeline) -> FastAPI:
    """Build the application around an already configured pipeline.

    The database must be initialized before the first request.
    """
    app = FastAPI(title="Notification Dispatcher")
    app.state.pipeline = pipeline

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in cors_headers_for(request.url.path).items():
            response.headers[name] = value
        return response

    @app.exception_handler(RecordNotFoundError)
    async def record_not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(
            f"Storage error on {request.method} {request.url.path}: {exc}",
            extra={"event": "api.request.storage_error"},
        )
        return JSONResponse(status_code=500, content={"error": str(exc)})

    register_routes(app)
    return app
