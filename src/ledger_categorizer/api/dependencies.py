from fastapi import HTTPException, Request

from ledger_categorizer.services.auto_apply import AutoApplyWorker
from ledger_categorizer.services.categorization import CategorizationPipeline
from ledger_categorizer.services.monitoring import MonitoringService
from ledger_categorizer.services.undo import UndoService
from ledger_categorizer.storage.base import SettingsStore


def _require_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if not value:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return value


def get_pipeline(request: Request) -> CategorizationPipeline:
    return _require_state(request, "pipeline")


def get_worker(request: Request) -> AutoApplyWorker:
    return _require_state(request, "worker")


def get_undo_service(request: Request) -> UndoService:
    return _require_state(request, "undo")


def get_monitoring(request: Request) -> MonitoringService:
    return _require_state(request, "monitoring")


def get_settings_store(request: Request) -> SettingsStore:
    return _require_state(request, "settings_store")
