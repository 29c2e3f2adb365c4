"""
Rice Mill back-office – FastAPI application entry point.

Run with:
    uvicorn ricemill.main:app --reload --host 0.0.0.0 --port 5000
"""
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ricemill.api.documents import document_router
from ricemill.api.operations import operations_router
from ricemill.api.reference import reference_router
from ricemill.api.reports import health_router, report_router
from ricemill.core.config import settings
from ricemill.core.database import create_db_and_tables
from ricemill.core.errors import install_error_handlers
from ricemill.core.logging import setup_logging
from ricemill.core.security import require_auth


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown hooks."""
    setup_logging()
    logger.info("Starting Rice Mill backend …")
    create_db_and_tables()
    logger.info("Database tables ready")
    if not settings.AUTH_ENABLED:
        logger.warning("AUTH_ENABLED is false: every route is open")
    yield
    logger.info("Rice Mill backend shut down")


app = FastAPI(
    title="Rice Mill API",
    description="REST API for rice mill purchases, sales, production, payroll, accounts and stock",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS – allow frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.middleware("http")
async def log_context(request: Request, call_next):
    """Tag every log line written while serving a request with its method and path."""
    with logger.contextualize(request=f"{request.method} {request.url.path}"):
        return await call_next(request)


protected = [Depends(require_auth)]
app.include_router(health_router)
app.include_router(reference_router, dependencies=protected)
app.include_router(document_router, dependencies=protected)
app.include_router(operations_router, dependencies=protected)
app.include_router(report_router, dependencies=protected)


@app.get("/")
def root():
    return {"message": "Rice Mill API", "docs": "/docs"}
