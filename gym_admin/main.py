from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import init_db
from .observability import RequestTimingLoggingMiddleware, add_exception_handlers
from .routers import health
from .routers import attendance as attendance_router
from .routers import lockers as lockers_router
from .routers import members as members_router
from .routers import payments as payments_router
from .routers import plans as plans_router
from .routers import pt as pt_router
from .routers import requests as requests_router
from .routers import tickets as tickets_router

# Ensure schema is present when the module is imported (helps tests using TestClient without lifespan)
init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    application = FastAPI(title="Gym Admin API", version="0.1.0", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestTimingLoggingMiddleware)

    add_exception_handlers(application)

    # Routers
    application.include_router(health.router)
    application.include_router(plans_router.router)
    application.include_router(members_router.router)
    application.include_router(tickets_router.router)
    application.include_router(lockers_router.router)
    application.include_router(pt_router.router)
    application.include_router(attendance_router.router)
    application.include_router(requests_router.router)
    application.include_router(payments_router.router)

    return application


app = create_app()
