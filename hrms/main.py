"""HRMS leave service — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hrms.admin.router import router as admin_router
from hrms.attendance.router import router as attendance_router
from hrms.attendance.router import shifts_router
from hrms.auth.router import router as auth_router
from hrms.common.exceptions import register_exception_handlers
from hrms.common.rate_limit import limiter
from hrms.config import settings
from hrms.core_hr.router import (
    departments_router,
    employees_router,
    org_tree_router,
)
from hrms.database import Base, engine
from hrms.holidays.router import router as holidays_router
from hrms.leave.router import router as leave_router
from hrms.notifications.router import router as notifications_router
from hrms.permissions.router import router as permissions_router

# Model modules register their tables on Base.metadata
import hrms.attendance.models  # noqa: F401
import hrms.auth.models  # noqa: F401
import hrms.common.audit  # noqa: F401
import hrms.holidays.models  # noqa: F401
import hrms.leave.models  # noqa: F401
import hrms.notifications.models  # noqa: F401
import hrms.permissions.models  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# (path segment, router) mounted under settings.API_PREFIX
ROUTERS: list[tuple[str, APIRouter]] = [
    ("auth", auth_router),
    ("employees", employees_router),
    ("departments", departments_router),
    ("org-tree", org_tree_router),
    ("leave", leave_router),
    ("holidays", holidays_router),
    ("attendance", attendance_router),
    ("shifts", shifts_router),
    ("admin", admin_router),
    ("notifications", notifications_router),
    ("permissions", permissions_router),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")
    logger.info("HRMS %s started (%s)", VERSION, settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("HRMS stopped; connection pool disposed")


def create_app() -> FastAPI:
    """Build the application: handlers, middleware, then routers."""
    docs = not settings.is_production
    app = FastAPI(
        title="HRMS",
        description="Leave, attendance and shifts over the org hierarchy",
        version=VERSION,
        docs_url=f"{settings.API_PREFIX}/docs" if docs else None,
        redoc_url=f"{settings.API_PREFIX}/redoc" if docs else None,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get(f"{settings.API_PREFIX}/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": VERSION,
            "environment": settings.ENVIRONMENT,
        }

    for segment, router in ROUTERS:
        app.include_router(router, prefix=f"{settings.API_PREFIX}/{segment}", tags=[segment])

    return app


app = create_app()
