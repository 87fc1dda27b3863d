"""Winner payouts shared by the standard and Loto engines.

A bet is first claimed (pending -> settled) by its engine. Paying it is a second
claim on the bet's credited flag (False -> True) followed by an atomic $inc on the
account, so the settlement loop and reconcile_unpaid() can never both pay one bet.
A failed credit releases the flag for a later reconcile pass.
"""

from datetime import datetime
from typing import Any

from beanie import Document
from pymongo.errors import PyMongoError

from app.core.audit import log_event
from app.core.exceptions import AppError
from app.core.logging import get_logger
from app.core.money import to_rupees
from app.services import accounts as accounts_service

log = get_logger(__name__)


async def _pay_once(model: type[Document], bet_id: Any, user_id: str, amount: int, entity_type: str) -> bool:
    """Claim credited and pay amount (paise). False if another payer holds the claim or the credit failed."""
    coll = model.get_motor_collection()
    claim = await coll.update_one({"_id": bet_id, "credited": False}, {"$set": {"credited": True}})
    if claim.modified_count != 1:
        log.info("winner_already_credited", entity_type=entity_type, bet_id=str(bet_id), user_id=user_id)
        return False
    try:
        await accounts_service.credit(user_id, amount, earned=True)
    except (AppError, PyMongoError):
        log.exception("winner_credit_failed", entity_type=entity_type, bet_id=str(bet_id), user_id=user_id,
                      amount=str(to_rupees(amount)))
        await coll.update_one({"_id": bet_id}, {"$set": {"credited": False}})
        raise
    return True


async def credit_winner(
    model: type[Document],
    bet_id: Any,
    user_id: str,
    amount: int,
    entity_type: str,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Pay a claimed winner at most once. False if the credit failed and is left to reconciliation."""
    try:
        paid = await _pay_once(model, bet_id, user_id, amount, entity_type)
    except (AppError, PyMongoError):
        return False
    if paid:
        log.info("winner_credited", entity_type=entity_type, bet_id=str(bet_id), user_id=user_id,
                 amount=str(to_rupees(amount)))
        await log_event(user_id, "bet_won", entity_type, str(bet_id), amount=amount, metadata=metadata)
    return True


async def reconcile_unpaid(
    model: type[Document],
    winner_filter: dict[str, Any],
    entity_type: str,
    older_than: datetime,
) -> int:
    """Pay winners settled before older_than that were never credited. Returns how many were paid."""
    paid = 0
    stuck = await model.find(
        {**winner_filter, "credited": False, "settled_at": {"$lte": older_than}}
    ).to_list()
    for bet in stuck:
        try:
            done = await _pay_once(model, bet.id, bet.user_id, bet.winning_price, entity_type)
        except (AppError, PyMongoError):
            continue
        if not done:
            continue
        paid += 1
        log.info("winnings_reconciled", entity_type=entity_type, bet_id=str(bet.id), user_id=bet.user_id,
                 amount=str(to_rupees(bet.winning_price)))
        await log_event(bet.user_id, "bet_won_reconciled", entity_type, str(bet.id), amount=bet.winning_price)
    return paid
