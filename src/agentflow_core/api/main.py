"""AgentFlow Core FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_settings
from ..database import init_db
from ..events import EventBus
from .routers import audit_logs, epics, tasks, validation_runs

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("agentflow-core")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database tables ready")
    yield


logger.info("Starting AgentFlow Core API")

# Create FastAPI app
app = FastAPI(
    title="AgentFlow Core API",
    description="Epic and task lifecycle tracking with GitHub signal reconciliation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Change notifications for in-process subscribers
app.state.events = EventBus()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(epics.router, prefix="/api/v1/epics")
app.include_router(tasks.router, prefix="/api/v1/tasks")
app.include_router(validation_runs.router, prefix="/api/v1")
app.include_router(audit_logs.router, prefix="/api/v1/audit-logs")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "AgentFlow Core API",
        "version": __version__,
        "docs": "/docs",
        "description": "Epic and task lifecycle tracking",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
