from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink_app.config import settings
from shortlink_app.database.connection import engine, Base
from shortlink_app.api.v1 import urls, redirect
from shortlink_app.dependencies import get_click_recorder, get_event_sink
from shortlink_app.logging_config import setup_logging

# Import models to ensure they're registered with Base
from shortlink_app.models import URL

setup_logging(settings.log_level)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the click recorder for the lifetime of the app"""
    recorder = app.dependency_overrides.get(get_click_recorder, get_click_recorder)()
    await recorder.start()
    try:
        yield
    finally:
        await recorder.stop(drain_timeout=settings.click_drain_timeout)
        sink = app.dependency_overrides.get(get_event_sink, get_event_sink)()
        await sink.close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="URL shortener with per-owner deduplication and click tracking",
    debug=settings.debug,
    lifespan=lifespan,
)


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


# Before the redirect router, whose /{short_code} would match /metrics
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

######## Include routers
app.include_router(urls.router, prefix="/api/v1")
app.include_router(redirect.router)
