#!/usr/bin/env python3
"""
Auto-Deploy Dashboard Backend
Polls container, host, git, CI and cloud state and serves it to the dashboard

Deployment data is simulated: /api/deploy only fabricates an id and bumps
in-memory counters. See deployment/simulator.py.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request, Depends, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from config.settings import AppConfig, setup_logging, HealthCheckFilter
from config.paths import FRONTEND_DIR
from collector import (
    DashboardState,
    HostProbes,
    ProjectDeriver,
    SnapshotCollector,
    get_dashboard_state,
)
from deployment import DeploymentSimulator
from deployment import routes as deployment_routes
from vcs import get_git_service

# Configure logging
setup_logging()
logger = logging.getLogger(__name__)


# ==================== Application State ====================

def build_dashboard(app: FastAPI) -> None:
    """Create the state container and its collaborators on app.state"""
    state = DashboardState()
    probes = HostProbes()
    project_deriver = ProjectDeriver(probes, get_git_service())

    app.state.dashboard = state
    app.state.probes = probes
    app.state.project_deriver = project_deriver
    app.state.collector = SnapshotCollector(state, probes)
    app.state.deployments = DeploymentSimulator(state)


def _handle_task_exception(task: asyncio.Task):
    """Handle exceptions from background tasks"""
    try:
        task.result()
    except asyncio.CancelledError:
        pass  # Normal shutdown, don't log
    except Exception as e:
        logger.error(f"Background task failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Validate configuration early to fail fast on misconfiguration
    AppConfig.validate()

    logger.info("Starting Auto-Deploy dashboard backend...")

    # Reapply health check filter to uvicorn access logger (must be done after uvicorn starts)
    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.addFilter(HealthCheckFilter())

    collector: SnapshotCollector = app.state.collector
    collector_task = collector.start()
    collector_task.add_done_callback(_handle_task_exception)

    logger.info(f"Server running on port {AppConfig.PORT}")
    logger.info(f"Environment: {AppConfig.ENVIRONMENT}")
    logger.info(f"Health check: http://localhost:{AppConfig.PORT}/api/health")

    yield

    logger.info("Shutting down Auto-Deploy dashboard backend...")

    await collector.stop()

    try:
        await app.state.deployments.shutdown()
    except Exception as e:
        logger.error(f"Error cancelling pending deployments: {e}")

    try:
        await asyncio.to_thread(app.state.probes.close)
    except Exception as e:
        logger.error(f"Error closing Docker client: {e}")


app = FastAPI(
    title="Auto-Deploy Dashboard API",
    version=AppConfig.VERSION,
    lifespan=lifespan
)
build_dashboard(app)

# Configure CORS
cors_config = AppConfig.CORS_ORIGINS
cors_methods = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
cors_headers = ["Content-Type", "Authorization", "X-Requested-With"]
if cors_config:
    origins_list = [origin.strip() for origin in cors_config.split(',')]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins_list,
        allow_credentials=True,
        allow_methods=cors_methods,
        allow_headers=cors_headers,
    )
    logger.info(f"CORS configured for specific origins: {origins_list}")
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=cors_methods,
        allow_headers=cors_headers,
    )
    logger.info("CORS configured to allow all origins")


# ==================== Error Handling ====================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Custom handler for Pydantic validation errors.
    Returns user-friendly error messages with field-level details.
    """
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(x) for x in error['loc'])
        errors.append({
            "field": field,
            "message": error['msg'],
            "type": error['type']
        })

    logger.warning(f"Validation failed for {request.url.path}: {errors}")

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request data",
            "errors": errors
        }
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last-resort handler; hides exception detail outside development"""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": str(exc) if AppConfig.is_development() else "Something went wrong"
        }
    )


# ==================== API Routes ====================

@app.get("/api/test")
async def connectivity_test(request: Request):
    """Echo request headers so clients can verify the server is reachable"""
    return {
        "message": "Server is reachable!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "headers": dict(request.headers),
    }


@app.get("/api/health")
async def health_check(state: DashboardState = Depends(get_dashboard_state)):
    """Health check endpoint for Docker/AWS - always 200 while the process is alive"""
    identity = HostProbes.host_identity()
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": state.uptime_seconds,
        "systemUptime": int(identity['uptime']),
        "environment": AppConfig.ENVIRONMENT,
        "version": AppConfig.VERSION,
        "hostname": identity['hostname'],
        "platform": identity['platform'],
    }


@app.get("/api/status")
async def get_status(state: DashboardState = Depends(get_dashboard_state)):
    """Deployment counters and per-collaborator health"""
    return {
        "message": "DockerHub Auto-Deploy API is running!",
        "version": AppConfig.VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "deployments": state.deployment_stats.model_dump(),
        "systemHealth": state.system_health(),
    }


@app.get("/api/projects")
async def get_projects(request: Request, state: DashboardState = Depends(get_dashboard_state)):
    """Project list, re-derived from fresh git and container data on every call"""
    deriver: ProjectDeriver = request.app.state.project_deriver
    try:
        projects = await deriver.build(state.deployment_stats.total)
    except Exception as e:
        logger.error(f"Error fetching projects: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch projects", "message": str(e)}
        )
    return [p.model_dump(by_alias=True, exclude_none=True) for p in projects]


@app.get("/api/system")
async def get_system(state: DashboardState = Depends(get_dashboard_state)):
    """Raw snapshot as last published by the collector"""
    snapshot = state.snapshot
    if snapshot is None:
        return {}
    return snapshot.model_dump(by_alias=True, exclude_none=True)


app.include_router(deployment_routes.router)


# ==================== Frontend ====================

def resolve_frontend_file(path: str, frontend_dir: str = None) -> Path:
    """
    Map a request path to a file in the frontend bundle.

    Existing files are served as-is; anything else falls back to index.html so
    client-side routes work. Paths escaping the bundle directory fall back too.
    """
    root = Path(frontend_dir or FRONTEND_DIR).resolve()
    if path:
        candidate = (root / path).resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            candidate = None
        if candidate is not None and candidate.is_file():
            return candidate
    return root / 'index.html'


@app.get("/{full_path:path}", include_in_schema=False)
async def serve_frontend(full_path: str):
    """Serve the bundled frontend for every path no API route matched"""
    target = resolve_frontend_file(full_path)
    if not target.is_file():
        raise HTTPException(status_code=404, detail="Frontend not built")
    return FileResponse(target)


def run():
    """Start the backend with uvicorn"""
    import uvicorn

    uvicorn.run(
        app,
        host=AppConfig.HOST,
        port=AppConfig.PORT,
        log_level=AppConfig.LOG_LEVEL.lower(),
        log_config=None,  # Keep the handlers installed by setup_logging()
    )


if __name__ == "__main__":
    run()
