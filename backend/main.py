"""
Project Pilot Teams - Main FastAPI Application
Team collaboration backend: membership, team chat, activity feed, analytics and realtime rooms
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.realtime_api import router as realtime_router
from api.teams_api import router as teams_router
from config import settings
from models.api_models import ErrorResponse
from services.errors import TeamError
from services.service_container import ServiceContainer
from utils.logging_config import setup_logging
from version import __version__

setup_logging()
logger = logging.getLogger(__name__)

HTTP_ERROR_KINDS = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def _error_body(message: str, kind: str, errors=None) -> dict:
    return ErrorResponse(error=message, error_kind=kind, errors=errors).model_dump(exclude_none=True)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the application around a service container"""
    container = container or ServiceContainer()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting Project Pilot Teams backend...")
        await container.initialize()
        logger.info(f"✅ Backend ready ({container.record_store.kind} record store)")
        yield
        logger.info("🔄 Shutting down Project Pilot Teams backend...")
        await container.close()
        logger.info("👋 Project Pilot Teams shutdown complete")

    app = FastAPI(
        title="Project Pilot Teams",
        description="Team collaboration backend with realtime team rooms",
        version=__version__,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.container = container

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TeamError)
    async def team_error_handler(request: Request, exc: TeamError):
        logger.info(f"⛔ {request.method} {request.url.path} -> {exc.kind}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.kind))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Specific handler for request validation errors"""
        logger.warning(f"❌ RequestValidationError on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content=_error_body("Validation error", "validation_error", errors=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        kind = HTTP_ERROR_KINDS.get(exc.status_code, "http_error")
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail), kind))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler; details stay in the server log"""
        logger.error(f"❌ Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body("Internal server error", "internal_error"))

    app.include_router(teams_router)
    app.include_router(realtime_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        stats = container.get_stats()
        return {
            "status": "healthy",
            "service": "Project Pilot Teams",
            "version": __version__,
            "storage": stats["record_store"],
            "realtime_rooms": stats["team_rooms"],
            "realtime_connections": stats["websocket_connections"],
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())
