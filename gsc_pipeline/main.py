"""
GSC Pipeline
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.gzip import GZipMiddleware

from gsc_pipeline import __version__
from gsc_pipeline.api import connections, coverage, health, indexing, schedules, sitemaps, sync
from gsc_pipeline.config import get_settings
from gsc_pipeline.errors import PipelineError
from gsc_pipeline.utils.logger import log

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    from gsc_pipeline.models.base import init_db
    init_db()
    log.info("Database initialized")

    if settings.scheduler_enabled:
        from gsc_pipeline.scheduler import start_scheduler
        start_scheduler()

    yield

    # Shutdown
    if settings.scheduler_enabled:
        from gsc_pipeline.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Google Search Console sync and URL indexing pipeline

    - Syncs 16 months of search analytics per dimension
    - Submits URLs to the Indexing API and tracks each request
    - Inspects index coverage with a 24h staleness window
    - Manages sitemaps and runs indexing schedules
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        log.warning(f"{request.method} {request.url.path} rejected [{exc.status_code}]: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters are a 400 with an {"error"} body"""
    message = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    ) or "Invalid request"
    log.warning(f"{request.method} {request.url.path} rejected [400]: {message}")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(connections.router)
app.include_router(sync.router)
app.include_router(indexing.router)
app.include_router(coverage.router)
app.include_router(sitemaps.router)
app.include_router(schedules.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("gsc_pipeline.main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
