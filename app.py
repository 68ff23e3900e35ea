"""
FastAPI application factory.
create_app() is the single entry point for building the app.

The lifespan owns every shared resource (engine, cache and search clients,
outbound HTTP clients, rate limiter, scheduler) and publishes the wired
services on app.state. Tests hand in ready-made collaborators through the
keyword arguments instead of letting the lifespan connect to real ones.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import sentry_sdk
from elasticsearch import AsyncElasticsearch
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppSettings
from errors import register_error_handlers
from infrastructure.cache.aggregate_cache import AggregateCache
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.db.storage import Storage
from infrastructure.db.transactor import Transactor
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.images.cloudinary import CloudinaryImageHost
from infrastructure.images.protocol import ImageHost
from infrastructure.rate_limiter import IpRateLimiter
from infrastructure.search.elastic import SearchIndex, create_search_client
from middleware import register_middleware
from repositories.readmes import ReadmeRepository
from repositories.templates import TemplateRepository
from repositories.users import UserRepository
from repositories.verifications import VerificationRepository
from repositories.widgets import WidgetRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.readme_routes import router as readme_router
from routes.template_routes import router as template_router
from routes.user_routes import router as user_router
from routes.widget_routes import router as widget_router
from scheduler.jobs import build_jobs
from scheduler.scheduler import Scheduler
from services.auth import AuthService
from services.media import MediaStore
from services.readmes import ReadmeService
from services.templates import TemplateService
from services.users import UserService
from services.widgets import WidgetService
from shared.crypto import configure_password_hasher
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)

API_PREFIX = "/api"

# distinguishes "not injected" from an injected None redis client (cache disabled)
_UNSET: Any = object()


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    storage: Optional[Storage] = None,
    redis_client: Any = _UNSET,
    search_client: Optional[AsyncElasticsearch] = None,
    email_provider: Optional[EmailProvider] = None,
    image_host: Optional[ImageHost] = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.dsn:
        sentry_sdk.init(
            dsn=settings.sentry.dsn,
            send_default_pii=settings.sentry.send_pii,
            traces_sample_rate=settings.sentry.traces_sample_rate,
            environment=settings.app.env,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        setup_logging(settings.logging)
        auth = settings.auth
        configure_password_hasher(
            auth.hash_time_cost, auth.hash_memory_cost, auth.hash_parallelism
        )

        db = storage or Storage.from_settings(settings.storage)
        if settings.app.init_db:
            await db.create_schema()

        redis = (
            await create_redis_client(settings.cache)
            if redis_client is _UNSET
            else redis_client
        )
        cache = AggregateCache(redis, settings.cache.default_ttl_seconds)
        search = SearchIndex(search_client or create_search_client(settings.search))

        mail_http = HttpClient("email", timeout=settings.email.timeout_seconds)
        image_http = HttpClient("cloudstorage", timeout=settings.cloudstorage.timeout_seconds)
        mailer = email_provider or ZeptoMailProvider(
            settings.email,
            mail_http,
            code_ttl_minutes=max(1, auth.code_ttl_seconds // 60),
        )
        media = MediaStore(image_host or CloudinaryImageHost(settings.cloudstorage, image_http))

        transactor = Transactor(db)
        users = UserRepository(db)
        verifications = VerificationRepository(db)
        templates = TemplateRepository(db, cache, search, settings.search.templates_index)
        widgets = WidgetRepository(
            db,
            cache,
            search,
            settings.search.widgets_index,
            popular_threshold=settings.cache.popular_threshold,
            popular_ttl_seconds=settings.cache.popular_ttl_seconds,
        )
        readmes = ReadmeRepository(db)

        app.state.settings = settings
        app.state.storage = db
        app.state.redis = redis
        app.state.search = search
        app.state.auth_service = AuthService(transactor, users, verifications, mailer, auth)
        app.state.user_service = UserService(transactor, users, templates, widgets, media)
        app.state.template_service = TemplateService(transactor, templates, widgets, users, media)
        app.state.widget_service = WidgetService(transactor, widgets)
        app.state.readme_service = ReadmeService(
            transactor, readmes, templates, widgets, users, media
        )

        server = settings.server
        limiter = IpRateLimiter(
            server.rate_limit,
            server.burst,
            idle_seconds=server.limiter_idle_seconds,
            sweep_interval=server.limiter_sweep_seconds,
        )
        limiter.start()
        app.state.rate_limiter = limiter

        scheduler = Scheduler(
            build_jobs(
                settings.scheduler,
                verifications,
                widgets,
                templates,
                bulk_page_size=settings.search.bulk_page_size,
            )
        )
        if settings.scheduler.enabled:
            scheduler.start()
        app.state.scheduler = scheduler

        log.info("app_started", env=settings.app.env, version=settings.app.version)
        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await scheduler.stop()
        await limiter.stop()
        await mail_http.aclose()
        await image_http.aclose()
        await search.aclose()
        if redis is not None:
            await redis.aclose()
        await db.dispose()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app.name,
        version=settings.app.version,
        docs_url=settings.app.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # credentialed CORS: the session travels in a cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_middleware(app, settings.server.request_timeout_seconds)

    register_error_handlers(app)
    app.include_router(health_router)
    for router in (auth_router, user_router, template_router, widget_router, readme_router):
        app.include_router(router, prefix=API_PREFIX)

    return app
