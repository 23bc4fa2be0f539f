from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from basesplit.api.router import router as api_router
from basesplit.bootstrap import bootstrap
from basesplit.core.config import settings
from basesplit.core.db import create_db_engine, make_session_factory
from basesplit.core.errors import BaseSplitError, InvalidRequest
from basesplit.core.logging import RequestContextMiddleware, get_logger, log_event
from basesplit.modules.bills.service import BillLedger
from basesplit.modules.claims.service import ClaimCoordinator
from basesplit.modules.ingestion.service import IngestionDeduplicator
from basesplit.worker.consumer import EventConsumer

logger = get_logger(__name__)


def create_app(
    *,
    ledger: BillLedger | None = None,
    ingestion: IngestionDeduplicator | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        active_ledger = ledger
        if active_ledger is None:
            engine = create_db_engine(settings.database_url)
            bootstrap(engine)
            active_ledger = BillLedger(make_session_factory(engine))

        app.state.ledger = active_ledger
        app.state.claim_coordinator = ClaimCoordinator(
            active_ledger,
            strict_addresses=settings.claim_strict_addresses,
            auto_settle=settings.auto_settle_when_fully_claimed,
        )
        consumer = None
        if ingestion is not None:
            consumer = EventConsumer(ingestion.handle, max_queue_size=settings.ingestion_queue_size)
            consumer.start()
        app.state.consumer = consumer
        log_event(logger, "app.started", environment=settings.environment)
        try:
            yield
        finally:
            if consumer is not None:
                await consumer.shutdown()
            if engine is not None:
                engine.dispose()

    app = FastAPI(title="BaseSplit", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(BaseSplitError)
    async def _basesplit_error_handler(_: Request, exc: BaseSplitError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        err = InvalidRequest("Request body is malformed")
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    app.include_router(api_router)
    return app


app = create_app()
