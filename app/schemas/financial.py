"""
Financial summary schema
"""
from pydantic import BaseModel


class FinancialSummary(BaseModel):
    revenue_paid: float = 0
    revenue_pending: float = 0
    expenses_paid: float = 0
    expenses_pending: float = 0
    balance: float = 0
    transaction_count: int = 0
    unlinked_session_transactions: int = 0
