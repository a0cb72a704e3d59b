"""
FastAPI Backend - SchoolFocus categorization service
Resolves student activity into productive / neutral / distracting and
learns new website categories from usage
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from schoolfocus.api import (
    activities,
    ai_categorization,
    app_categories,
    categorize,
    health,
    productivity_rules,
    website_categories,
)
from schoolfocus.config import Settings, get_settings
from schoolfocus.database import close_db, create_engine, create_session_maker, init_db
from schoolfocus.jobs import JobScheduler
from schoolfocus.services import build_services

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, services_factory=build_services) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        # Startup
        configure_logging(settings)
        logger.info("Starting SchoolFocus API v%s", settings.VERSION)
        logger.info("Environment: %s", settings.ENVIRONMENT)

        engine = create_engine(settings)
        await init_db(engine)
        logger.info("Database initialized")

        services = services_factory(settings, create_session_maker(engine))
        await services.initialize()
        app.state.services = services
        logger.info("Categorization services ready")

        scheduler = None
        if settings.SCHEDULER_ENABLED:
            scheduler = JobScheduler(services)
            scheduler.start()

        yield

        # Shutdown
        logger.info("Shutting down...")
        if scheduler is not None:
            await scheduler.stop()
        await close_db(engine)

    app = FastAPI(
        title="SchoolFocus API",
        description="Activity categorization backend for school focus monitoring",
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    )
    app.state.settings = settings

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(categorize.router, prefix="/api", tags=["Categorization"])
    app.include_router(activities.router, prefix="/api", tags=["Activities"])
    app.include_router(app_categories.router, prefix="/api/app-categories", tags=["App Categories"])
    app.include_router(website_categories.router, prefix="/api/website-categories", tags=["Website Categories"])
    app.include_router(productivity_rules.router, prefix="/api/productivity-rules", tags=["Productivity Rules"])
    app.include_router(ai_categorization.router, prefix="/api/ai-categorization", tags=["AI Categorization"])

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": "SchoolFocus API",
            "version": settings.VERSION,
            "status": "running",
        }

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("schoolfocus.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
