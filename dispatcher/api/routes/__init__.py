from fastapi import FastAPI

from .dispatch import router as dispatch_router
from .notifications import router as notifications_router


def register_routes(app: FastAPI) -> None:
    """Register every API router on the application."""

    app.include_router(dispatch_router)
    app.include_router(notifications_router)
