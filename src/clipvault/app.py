"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from clipvault.api.routes import admin, mailing_list, submissions
from clipvault.core.config import Settings, configure_logging
from clipvault.core.database import setup_db_session
from clipvault.services.mailing_list import MailingListService
from clipvault.services.moderation import ModerationService
from clipvault.services.notifications import LogNotifier, WebhookNotifier
from clipvault.services.record_store import SqlRecordStore
from clipvault.services.storage.bucket_client import BucketClient
from clipvault.services.storage.cloudinary_client import CloudinaryClient
from clipvault.services.storage.dropbox_client import DropboxClient
from clipvault.services.storage.probe import ConnectivityProbe
from clipvault.services.submission.attempts import AttemptRegistry
from clipvault.services.submission.orchestrator import UploadOrchestrator
from clipvault.uow import create_uow_factory

logger = structlog.get_logger()


def build_services(app: FastAPI, settings: Settings, session_factory) -> None:
    """Create providers and services from settings and store them in ``app.state``.

    Providers without configuration are left as None; the orchestrator and the
    moderation service work with whichever subset is present.
    """
    uow_factory = create_uow_factory(session_factory)

    media_store = (
        CloudinaryClient(
            settings.cloudinary_cloud_name,
            settings.cloudinary_upload_preset,
            settings.cloudinary_api_key,
            timeout=settings.upload_timeout_seconds,
        )
        if settings.media_store_enabled
        else None
    )
    backup_store = (
        DropboxClient(
            settings.dropbox_client_id,
            settings.dropbox_client_secret,
            settings.dropbox_refresh_token,
            upload_timeout=settings.upload_timeout_seconds,
            api_timeout=settings.api_timeout_seconds,
            token_refresh_margin=settings.token_refresh_margin_seconds,
            session_threshold=settings.dropbox_session_threshold_bytes,
            chunk_size=settings.dropbox_chunk_size_bytes,
        )
        if settings.backup_store_enabled
        else None
    )
    record_bucket = (
        BucketClient(
            settings.record_bucket_url,
            settings.record_bucket_key,
            settings.record_bucket_name,
            timeout=settings.upload_timeout_seconds,
        )
        if settings.record_bucket_enabled
        else None
    )

    record_store = SqlRecordStore(uow_factory, bucket=record_bucket)
    mailing_list_service = MailingListService(uow_factory)
    notifier = (
        WebhookNotifier(settings.confirmation_webhook_url, timeout=settings.api_timeout_seconds)
        if settings.confirmation_webhook_url
        else LogNotifier()
    )

    orchestrator = UploadOrchestrator(
        record_store,
        media_store=media_store,
        backup_store=backup_store,
        record_bucket=record_bucket,
        probe=(
            ConnectivityProbe(settings.connectivity_probe_url)
            if settings.connectivity_probe_url
            else None
        ),
        notifier=notifier,
        mailing_list=mailing_list_service,
        registry=AttemptRegistry(ttl_seconds=settings.attempt_ttl_seconds),
        submissions_path=settings.dropbox_submissions_path,
    )
    moderation = ModerationService(
        record_store, mover=backup_store, approved_path=settings.dropbox_approved_path
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.record_store = record_store
    app.state.mailing_list = mailing_list_service
    app.state.backup_store = backup_store
    app.state.orchestrator = orchestrator
    app.state.moderation = moderation

    logger.info(
        "application.providers_configured",
        media_store=media_store is not None,
        backup_store=backup_store is not None,
        record_bucket=record_bucket is not None,
        webhook_notifier=bool(settings.confirmation_webhook_url),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    - Startup: load settings, configure logging, create the session factory and services
    - Shutdown: cancel in-flight upload attempts, wait for detached side effects
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    build_services(app, settings, session_factory)

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    orchestrator: UploadOrchestrator = app.state.orchestrator
    running = orchestrator.registry.running_tasks()
    for task in running:
        task.cancel()
    await asyncio.gather(*running, return_exceptions=True)
    await orchestrator.drain()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="ClipVault API",
        description="Video submission intake and moderation",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(submissions.router)
    app.include_router(admin.router)
    app.include_router(mailing_list.router)

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
