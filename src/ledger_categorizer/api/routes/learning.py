import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ledger_categorizer.api.dependencies import get_pipeline
from ledger_categorizer.api.schemas import LearnRequest
from ledger_categorizer.errors import TransactionNotFoundError
from ledger_categorizer.models import AuditEntry
from ledger_categorizer.services.categorization import CategorizationPipeline

router = APIRouter()


@router.post("/learn", response_model=AuditEntry)
async def learn_transaction(
    req: LearnRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> AuditEntry:
    try:
        return await asyncio.to_thread(
            pipeline.assign,
            req.transaction_id,
            req.category_id,
            actor=req.actor,
            labels=req.labels,
        )
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
