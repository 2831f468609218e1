import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vaxchain.api import health
from vaxchain.api.v1 import endpoints
from vaxchain.core.async_db import build_engine, build_sessionmaker, init_models
from vaxchain.core.config import Settings, get_settings
from vaxchain.core.logging import configure_logging
from vaxchain.ledger.producer import ChainProducer
from vaxchain.ledger.sensor import SafeRange
from vaxchain.ledger.store import LedgerStore
from vaxchain.services.chain_service import ChainService

logger = structlog.get_logger(__name__)

SHUTDOWN_GRACE_SECONDS = 30.0


def _log_producer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.critical("producer_crashed", error=str(exc), error_type=type(exc).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    engine = build_engine(settings.DATABASE_URL)
    await init_models(engine)

    store = LedgerStore(build_sessionmaker(engine))
    app.state.store = store
    app.state.chain_service = ChainService(store, SafeRange.from_settings(settings))
    app.state.producer = None

    task = None
    if settings.PRODUCER_ENABLED:
        producer = ChainProducer.from_settings(store, settings)
        app.state.producer = producer
        task = asyncio.create_task(producer.run(), name=f"producer:{producer.lineage_id}")
        task.add_done_callback(_log_producer_exit)

    try:
        yield
    finally:
        if task is not None:
            app.state.producer.stop()
            try:
                # Let the in-flight iteration finish its store round-trip
                await asyncio.wait_for(asyncio.shield(task), timeout=SHUTDOWN_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(
                    "producer_shutdown_timeout",
                    batch_no=app.state.producer.lineage_id,
                    grace_seconds=SHUTDOWN_GRACE_SECONDS,
                )
                task.cancel()
            except Exception as exc:
                logger.warning("producer_shutdown_error", error=str(exc))
        await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = get_settings()
        configure_logging(settings)
    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    app.include_router(endpoints.router, tags=["Blocks"])
    app.include_router(health.router, prefix="/health", tags=["Health"])
    return app


app = create_app()
