import asyncio
import contextlib
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ledger_categorizer.api.routes import automation, categorize, learning
from ledger_categorizer.core import settings
from ledger_categorizer.core.settings import AutomationOptions
from ledger_categorizer.logger import get_logger, setup_logging
from ledger_categorizer.manager import CategorizerService
from ledger_categorizer.services.auto_apply import AutoApplyWorker
from ledger_categorizer.services.categorization import CategorizationPipeline
from ledger_categorizer.services.monitoring import MonitoringService
from ledger_categorizer.services.undo import UndoService
from ledger_categorizer.storage.json_store import (
    JsonAuditStore,
    JsonCategoryRepository,
    JsonProfileStore,
    JsonRuleStore,
    JsonSettingsStore,
    JsonTransactionRepository,
)

logger = get_logger(__name__)


def _data_path(filename: str) -> str:
    return os.path.join(settings.DATA_DIR, filename)


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        options = AutomationOptions.from_env()
        transactions = JsonTransactionRepository(_data_path("transactions.json"))
        audit = JsonAuditStore(_data_path("audit.json"))
        settings_store = JsonSettingsStore(_data_path("settings.json"))

        service = CategorizerService(
            rules=JsonRuleStore(_data_path("rules.json")),
            profiles=JsonProfileStore(_data_path("profiles.json")),
            categories=JsonCategoryRepository(_data_path("categories.json")),
            transactions=transactions,
        )
        pipeline = CategorizationPipeline(service=service, transactions=transactions, audit=audit)
        worker = AutoApplyWorker(pipeline, settings_store, options)

        app.state.pipeline = pipeline
        app.state.worker = worker
        app.state.settings_store = settings_store
        app.state.undo = UndoService(
            transactions,
            audit,
            service.learning,
            options.undo_retention_days,
        )
        app.state.monitoring = MonitoringService(
            audit,
            transactions,
            retention_days=options.undo_retention_days,
            undo_rate_alert_threshold=options.undo_rate_alert_threshold,
        )

        worker_task = asyncio.create_task(worker.run_forever())
        logger.info("Services initialized.")
        yield

        logger.info("Service shutting down.")
        worker.stop()
        try:
            await asyncio.wait_for(worker_task, timeout=10)
        except asyncio.TimeoutError:
            logger.warning("Auto-apply worker did not stop in time; cancelling.")
            worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker_task

    app = FastAPI(title="Ledger Categorizer", lifespan=lifespan)

    app.include_router(categorize.router)
    app.include_router(learning.router)
    app.include_router(automation.router)

    return app


app = create_app()
