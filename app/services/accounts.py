"""Account store: balances and earnings in int paise. Every balance change is a single atomic $inc."""

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core import clock
from app.core.exceptions import InsufficientFundsError, NotFoundError
from app.core.logging import get_logger
from app.core.money import to_rupees
from app.models.account import Account

log = get_logger(__name__)


def collection():
    return Account.get_motor_collection()


async def ensure_account(user_id: str) -> None:
    """Create the account on first use; no-op if it already exists."""
    now = clock.utcnow()
    try:
        await collection().update_one(
            {"user_id": user_id},
            {
                "$setOnInsert": {
                    "user_id": user_id,
                    "balance": 0,
                    "earned": 0,
                    "balance_history": [],
                    "created_at": now,
                    "updated_at": now,
                }
            },
            upsert=True,
        )
    except DuplicateKeyError:
        # Concurrent first request inserted it; unique user_id index keeps one copy.
        log.debug("account_upsert_race", user_id=user_id)


async def get_account(user_id: str) -> Account:
    account = await Account.find_one(Account.user_id == user_id)
    if not account:
        raise NotFoundError("User not found")
    return account


async def debit(user_id: str, amount: int) -> int:
    """Take amount (paise) from balance if it is covered. Returns balance after."""
    doc = await collection().find_one_and_update(
        {"user_id": user_id, "balance": {"$gte": amount}},
        {"$inc": {"balance": -amount}, "$set": {"updated_at": clock.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        account = await get_account(user_id)
        raise InsufficientFundsError(
            "Insufficient balance to place the bet.",
            details={"balance": to_rupees(account.balance), "requested": to_rupees(amount)},
        )
    return doc["balance"]


async def credit(user_id: str, amount: int, earned: bool = False) -> int:
    """Add amount (paise) to balance; winnings also count towards earned. Returns balance after."""
    inc = {"balance": amount}
    if earned:
        inc["earned"] = amount
    doc = await collection().find_one_and_update(
        {"user_id": user_id},
        {"$inc": inc, "$set": {"updated_at": clock.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFoundError("User not found")
    return doc["balance"]
