"""
Analysis Worker - analysis versioning and team-structure API
=============================================================

Main application entry point.

Usage:
    uvicorn analysis_worker.main:app --host 0.0.0.0 --port 3000 --reload

    Or run directly:
    python -m analysis_worker.main
"""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analysis_worker import __version__
from analysis_worker.analyses.config_store import config_store
from analysis_worker.analyses.routes import router as analyses_router
from analysis_worker.analyses.service import analysis_service
from analysis_worker.config import settings
from analysis_worker.core.errors import AnalysisWorkerError
from analysis_worker.core.logging import get_logger, setup_logging
from analysis_worker.teams.authority import JsonTeamAuthority, build_team_authority
from analysis_worker.teams.routes import assignment_router
from analysis_worker.teams.routes import router as teams_router
from analysis_worker.teams.service import team_service

# Load environment variables
load_dotenv()

# Set up logging
setup_logging("analysis_worker")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan handler for startup/shutdown."""
    logger.info(f"Starting Analysis Worker v{__version__}")

    await config_store.initialize_storage()

    if not team_service.initialized:
        authority = build_team_authority()
        if isinstance(authority, JsonTeamAuthority) and settings.bootstrap_organization:
            await authority.ensure_organization(settings.organization_slug)
        await team_service.initialize(analysis_service, authority=authority)
        analysis_service.attach_team_lookup(team_service.get_team)

    yield

    logger.info("Shutting down Analysis Worker")


async def handle_service_error(request: Request, exc: AnalysisWorkerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    application = FastAPI(
        title="Analysis Worker API",
        description="Analysis version history and team folder structure",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    origins = (
        settings.allowed_origins.split(",") if settings.allowed_origins != "*" else ["*"]
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(AnalysisWorkerError, handle_service_error)

    application.include_router(analyses_router)
    application.include_router(assignment_router)
    application.include_router(teams_router)

    @application.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy" if team_service.initialized else "initializing",
            "version": __version__,
        }

    return application


app = create_app()

__all__ = ["app", "create_app"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "analysis_worker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug_mode,
    )
