import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException

from ledger_categorizer.api.dependencies import (
    get_monitoring,
    get_settings_store,
    get_undo_service,
    get_worker,
)
from ledger_categorizer.api.schemas import UndoRequest
from ledger_categorizer.errors import (
    AuditEntryNotFoundError,
    TransactionNotFoundError,
    UndoConflictError,
    UndoExpiredError,
)
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import (
    AuditEntry,
    AutoApplyHistoryItem,
    AutoApplyRunSummary,
    AutoApplySettings,
    AutoApplyStats,
    utcnow,
)
from ledger_categorizer.services.auto_apply import AutoApplyWorker
from ledger_categorizer.services.monitoring import MonitoringService
from ledger_categorizer.services.undo import UndoService
from ledger_categorizer.storage.base import SettingsStore

logger = get_logger(__name__)

router = APIRouter(prefix="/automation")


@router.get("/settings", response_model=AutoApplySettings)
async def get_settings(
    store: Annotated[SettingsStore, Depends(get_settings_store)],
) -> AutoApplySettings:
    return await asyncio.to_thread(store.get)


@router.put("/settings", response_model=AutoApplySettings)
async def update_settings(
    settings: AutoApplySettings,
    store: Annotated[SettingsStore, Depends(get_settings_store)],
) -> AutoApplySettings:
    stamped = settings.model_copy(update={"updated_at": utcnow()})
    logger.info(
        "[CONFIG] Auto-apply settings updated by %s (enabled: %s, min confidence: %.2f)",
        stamped.updated_by or "unknown",
        stamped.enabled,
        stamped.min_confidence,
    )
    return await asyncio.to_thread(store.set, stamped)


@router.get("/status")
async def get_status(
    worker: Annotated[AutoApplyWorker, Depends(get_worker)],
) -> dict[str, Any]:
    return worker.get_status()


@router.post("/run", response_model=AutoApplyRunSummary)
async def run_now(
    worker: Annotated[AutoApplyWorker, Depends(get_worker)],
) -> AutoApplyRunSummary:
    if worker.running:
        raise HTTPException(status_code=409, detail="Auto-apply run in progress")
    return await worker.run_once()


@router.post("/undo/{transaction_id}", response_model=AuditEntry)
async def undo_auto_apply(
    transaction_id: str,
    undo: Annotated[UndoService, Depends(get_undo_service)],
    req: UndoRequest | None = None,
) -> AuditEntry:
    actor = req.actor if req else "user"
    try:
        return await asyncio.to_thread(undo.undo_auto_apply, transaction_id, actor=actor)
    except (AuditEntryNotFoundError, TransactionNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except UndoExpiredError as e:
        raise HTTPException(status_code=410, detail=str(e)) from e
    except UndoConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.get("/can-undo/{transaction_id}")
async def can_undo(
    transaction_id: str,
    undo: Annotated[UndoService, Depends(get_undo_service)],
) -> dict[str, bool]:
    return {"can_undo": await asyncio.to_thread(undo.can_undo, transaction_id)}


@router.get("/stats", response_model=AutoApplyStats)
async def get_stats(
    monitoring: Annotated[MonitoringService, Depends(get_monitoring)],
    window_days: int = 7,
) -> AutoApplyStats:
    if window_days <= 0:
        raise HTTPException(status_code=400, detail="window_days must be positive")
    return await asyncio.to_thread(monitoring.get_stats, window_days)


@router.get("/history", response_model=list[AutoApplyHistoryItem])
async def get_history(
    monitoring: Annotated[MonitoringService, Depends(get_monitoring)],
    limit: int = 50,
) -> list[AutoApplyHistoryItem]:
    return await asyncio.to_thread(monitoring.get_history, max(1, limit))
