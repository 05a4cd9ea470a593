"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from spire.core.config import settings
from spire.core.middleware import setup_middleware
from spire.db.session import init_db

from spire.api.me import router as me_router
from spire.api.roles import router as roles_router
from spire.api.nodes import router as nodes_router
from spire.api.servers import router as servers_router
from spire.api.settings import router as settings_router
from spire.api.users import router as users_router
from spire.api.onboarding import router as onboarding_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("spire")

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s API", settings.APP_NAME)
    init_db()
    yield
    logger.info("Shutting down %s API", settings.APP_NAME)


app = FastAPI(
    title="Spire API",
    description="Control panel for game servers hosted on Glide nodes",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware and error handlers
setup_middleware(app)

# Register routers
app.include_router(me_router, prefix=API_PREFIX)
app.include_router(roles_router, prefix=API_PREFIX)
app.include_router(nodes_router, prefix=API_PREFIX)
app.include_router(servers_router, prefix=API_PREFIX)
app.include_router(settings_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(onboarding_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
