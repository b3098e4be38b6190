"""
Financial Endpoints
Ledger of revenue and expenses; session billing rows are maintained by the
financial sync service but stay editable here.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from app.api.endpoints.records import add_record_routes
from app.core.auth import get_owner_id
from app.models import SESSION_CATEGORY
from app.schemas.financial import FinancialSummary
from app.services.financial_sync import normalize_amount
from app.services.record_store import FinancialStore

router = APIRouter(prefix="/financial", tags=["Financial"])

OPEN_STATUSES = {"pendente", "atrasado"}


def summarize(transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals per type and status; cancelled entries are ignored"""
    summary = FinancialSummary(transaction_count=len(transactions))

    for transaction in transactions:
        amount = normalize_amount(transaction.get("amount"))
        status = transaction.get("status")
        kind = transaction.get("type")

        if kind == "receita":
            if status == "pago":
                summary.revenue_paid += amount
            elif status in OPEN_STATUSES:
                summary.revenue_pending += amount
        elif kind == "despesa":
            if status == "pago":
                summary.expenses_paid += amount
            elif status in OPEN_STATUSES:
                summary.expenses_pending += amount

        if transaction.get("category") == SESSION_CATEGORY and not transaction.get("session_id"):
            summary.unlinked_session_transactions += 1

    summary.balance = summary.revenue_paid - summary.expenses_paid
    return summary.model_dump()


@router.get("/summary", response_model=FinancialSummary)
async def financial_summary(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    return summarize(await FinancialStore(db).list(owner_id))


# Registered after /summary so the literal path wins over /{record_id}
add_record_routes(router, FinancialStore)
