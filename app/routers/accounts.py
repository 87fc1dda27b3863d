from fastapi import APIRouter, Query

from app.core.money import to_rupees
from app.services import accounts as accounts_service
from app.services import ledger as ledger_service

router = APIRouter()


@router.get("/{user_id}")
async def account_snapshot(user_id: str):
    """Return balance and lifetime winnings."""
    account = await accounts_service.get_account(user_id)
    return {"user_id": account.user_id, "balance": to_rupees(account.balance), "earned": to_rupees(account.earned)}


@router.get("/{user_id}/ledger")
async def account_ledger(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Return deposit/withdrawal entries (newest first)."""
    entries, total = await ledger_service.list_entries(user_id, limit, offset)
    return {
        "entries": [{**e.model_dump(), "amount": to_rupees(e.amount)} for e in entries],
        "limit": limit,
        "offset": offset,
        "total": total,
    }
