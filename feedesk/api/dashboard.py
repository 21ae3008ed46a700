"""Collection dashboard figures derived from the installment ledger."""
from datetime import date
from typing import Optional

from fastapi import APIRouter

from feedesk.api.deps import FeeManager
from feedesk.services import ledger

router = APIRouter()


@router.get("/")
async def fee_dashboard(user: FeeManager, day: Optional[date] = None):
    today = ledger.today()
    return {
        "pending_fees": await ledger.pending_fees_summary(today),
        "fees_collected": await ledger.fees_collected_on(day or today),
    }
