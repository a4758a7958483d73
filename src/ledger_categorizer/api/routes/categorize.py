import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ledger_categorizer.api.dependencies import get_pipeline
from ledger_categorizer.api.schemas import CategorizeRequest, PreviewRequest
from ledger_categorizer.errors import TransactionNotFoundError
from ledger_categorizer.models import CategorizationResult, CategorySuggestion, Transaction
from ledger_categorizer.services.categorization import CategorizationPipeline

router = APIRouter()


@router.post("/categorize", response_model=CategorizationResult)
async def categorize_transaction(
    req: CategorizeRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> CategorizationResult:
    return await pipeline.predict(req.transaction, threshold=req.threshold)


@router.get("/transactions/{transaction_id}/suggestions", response_model=list[CategorySuggestion])
async def suggest_categories(
    transaction_id: str,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> list[CategorySuggestion]:
    try:
        return await pipeline.suggest(transaction_id)
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/rules/preview", response_model=list[Transaction])
async def preview_rule(
    req: PreviewRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> list[Transaction]:
    return await asyncio.to_thread(
        pipeline.service.rule_engine.preview_rule,
        req.rule,
        account_id=req.account_id,
    )
