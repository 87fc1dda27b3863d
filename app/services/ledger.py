"""Balance ledger: deposit/withdrawal claims and their operator verification.

A claim is appended to the account's balance_history unverified and does not touch
the balance. Verification matches the unverified entry by exact requested_at and,
in the same single-document update, flips it to verified and moves the balance.
Replaying a verification therefore matches nothing and fails instead of applying twice.

Amounts arrive in rupees and are stored as int paise.
"""

from datetime import datetime
from typing import Any

from pymongo import ReturnDocument

from app.core import clock
from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import InsufficientFundsError, InternalError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.money import parse_amount, to_paise, to_rupees
from app.core.pagination import paginate
from app.models.account import LedgerEntry
from app.services import accounts as accounts_service

log = get_logger(__name__)

# Attempts to find a free millisecond when two claims land on the same instant
_STAMP_ATTEMPTS = 50

_WEEKDAY_WINDOW = "Withdrawals are allowed only from Monday to Saturday between 11 AM and 3 AM IST."
_SUNDAY_WINDOW = "Withdrawals are allowed only on Sunday between 11 AM and 2 PM IST."


def _require(**fields: Any) -> None:
    missing = [name for name, value in fields.items() if value is None or (isinstance(value, str) and not value.strip())]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})


def withdrawal_block_message(now_local: datetime) -> str | None:
    """None inside the withdrawal window, else the message shown to the user.

    Mon-Sat 11:00 until 03:00 the next morning, Sunday 11:00-14:00. The small hours
    belong to the previous day's window.
    """
    minutes = now_local.hour * 60 + now_local.minute
    day = clock.js_weekday(now_local)
    if minutes >= 11 * 60:
        if day != 0 or minutes <= 14 * 60:
            return None
    elif minutes <= 3 * 60:
        if (day - 1) % 7 != 0:
            return None
    window = _SUNDAY_WINDOW if day == 0 else _WEEKDAY_WINDOW
    return f"Withdrawals are not allowed at this time. {window}"


async def _append_entry(user_id: str, entry_type: str, amount: int, **fields: Any) -> LedgerEntry:
    """Push an unverified entry with a requested_at unique within the account."""
    requested_at = clock.utcnow()
    coll = accounts_service.collection()
    for _ in range(_STAMP_ATTEMPTS):
        entry = LedgerEntry(type=entry_type, amount=amount, requested_at=requested_at, **fields)
        result = await coll.update_one(
            {"user_id": user_id, "balance_history.requested_at": {"$ne": requested_at}},
            {"$push": {"balance_history": entry.model_dump()}, "$set": {"updated_at": clock.utcnow()}},
        )
        if result.matched_count == 1:
            return entry
        requested_at += clock.ONE_MS
    raise InternalError("Could not record the request, please retry")


async def submit_deposit(
    user_id: str,
    amount: Any,
    phone_number: str | None,
    mode: str | None,
    txn_id: str | None,
) -> LedgerEntry:
    """Record an unverified deposit claim. The account is created if needed."""
    _require(user_id=user_id, amount=amount, phone_number=phone_number, mode=mode, txn_id=txn_id)
    value = parse_amount(amount)
    minimum = get_settings().min_deposit
    if value < minimum:
        raise ValidationError(f"Minimum deposit is {minimum:g} rupees")
    await accounts_service.ensure_account(user_id)
    entry = await _append_entry(
        user_id, "deposit", to_paise(value), phone_number=phone_number, mode=mode, txn_id=txn_id
    )
    log.info("deposit_submitted", user_id=user_id, amount=str(value), requested_at=entry.requested_at.isoformat())
    return entry


async def submit_withdrawal(
    user_id: str,
    amount: Any,
    phone_number: str | None = None,
    mode: str | None = None,
    txn_id: str | None = None,
) -> dict[str, Any]:
    """Record an unverified withdrawal claim.

    Outside the allowed hours nothing is recorded and the result carries
    accepted=False with the window message; callers still answer with success.
    """
    _require(user_id=user_id, amount=amount)
    value = parse_amount(amount)
    settings = get_settings()
    if value < settings.min_withdrawal:
        raise ValidationError(f"Minimum withdrawal is {settings.min_withdrawal:g}")
    account = await accounts_service.get_account(user_id)
    if to_paise(value) > account.balance:
        raise InsufficientFundsError(
            "Insufficient balance for withdrawal",
            details={"balance": to_rupees(account.balance), "requested": value},
        )
    if settings.withdrawal_hours_enforced:
        message = withdrawal_block_message(clock.local_now())
        if message:
            log.info("withdrawal_soft_blocked", user_id=user_id, amount=str(value))
            return {"accepted": False, "message": message, "requested_at": None}
    entry = await _append_entry(
        user_id, "withdraw", to_paise(value), phone_number=phone_number, mode=mode, txn_id=txn_id
    )
    log.info("withdrawal_submitted", user_id=user_id, amount=str(value), requested_at=entry.requested_at.isoformat())
    return {
        "accepted": True,
        "message": "Withdraw request added successfully.",
        "requested_at": entry.requested_at,
    }


def _entry_filter(entry_type: str, requested_at: datetime) -> dict[str, Any]:
    return {
        "balance_history": {
            "$elemMatch": {"type": entry_type, "requested_at": requested_at, "verified": False}
        }
    }


async def verify_deposit(user_id: str, amount: Any, requested_at: datetime) -> int:
    """Credit a pending deposit exactly once. Returns balance after, in paise."""
    _require(user_id=user_id, amount=amount, requested_at=requested_at)
    paise = to_paise(parse_amount(amount))
    requested_at = clock.as_utc_naive(requested_at)
    now = clock.utcnow()
    doc = await accounts_service.collection().find_one_and_update(
        {"user_id": user_id, **_entry_filter("deposit", requested_at)},
        {
            "$inc": {"balance": paise},
            "$set": {
                "balance_history.$.verified": True,
                "balance_history.$.verified_at": now,
                "updated_at": now,
            },
        },
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        await accounts_service.get_account(user_id)
        raise NotFoundError("Balance history entry not found or already verified")
    log.info("deposit_verified", user_id=user_id, amount=str(to_rupees(paise)), balance=str(to_rupees(doc["balance"])))
    await log_event(
        user_id, "deposit_verified", "ledger_entry", requested_at.isoformat(), amount=paise
    )
    return doc["balance"]


async def verify_withdrawal(
    user_id: str,
    amount: Any,
    txn_id: str | None,
    requested_at: datetime,
) -> int:
    """Debit a pending withdrawal exactly once and stamp the operator's txn_id. Returns balance after, in paise."""
    _require(user_id=user_id, amount=amount, requested_at=requested_at)
    paise = to_paise(parse_amount(amount))
    requested_at = clock.as_utc_naive(requested_at)
    now = clock.utcnow()
    updates: dict[str, Any] = {
        "balance_history.$.verified": True,
        "balance_history.$.verified_at": now,
        "updated_at": now,
    }
    if txn_id:
        updates["balance_history.$.txn_id"] = txn_id
    doc = await accounts_service.collection().find_one_and_update(
        {"user_id": user_id, "balance": {"$gte": paise}, **_entry_filter("withdraw", requested_at)},
        {"$inc": {"balance": -paise}, "$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        account = await accounts_service.get_account(user_id)
        pending = any(
            e.type == "withdraw" and not e.verified and e.requested_at == requested_at
            for e in account.balance_history
        )
        if not pending:
            raise NotFoundError("Withdrawal history entry not found or already verified")
        raise InsufficientFundsError(
            "Insufficient balance for withdrawal",
            details={"balance": to_rupees(account.balance), "requested": to_rupees(paise)},
        )
    log.info("withdrawal_verified", user_id=user_id, amount=str(to_rupees(paise)), balance=str(to_rupees(doc["balance"])))
    await log_event(
        user_id,
        "withdrawal_verified",
        "ledger_entry",
        requested_at.isoformat(),
        amount=paise,
        metadata={"txn_id": txn_id},
    )
    return doc["balance"]


async def list_entries(user_id: str, limit: int, offset: int) -> tuple[list[LedgerEntry], int]:
    """Ledger entries newest first, with the total count."""
    account = await accounts_service.get_account(user_id)
    entries = sorted(account.balance_history, key=lambda e: e.requested_at, reverse=True)
    return paginate(entries, limit, offset)
