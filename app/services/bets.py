"""Standard bets: placement against (game, baji, bet type) and settlement on result publication."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from app.core import clock
from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.money import parse_amount, to_paise, to_rupees
from app.models.baji import Baji, WinningDigit
from app.models.standard_bet import StandardBet
from app.services import accounts as accounts_service
from app.services import settlement
from app.services.payouts import (
    DIGIT_LENGTH,
    check_bet_type,
    check_digit,
    check_stake,
    standard_payout,
)

log = get_logger(__name__)

_WEEKDAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


async def get_baji(game_id: str, baji_id: str) -> Baji:
    try:
        oid = PydanticObjectId(baji_id)
    except (InvalidId, TypeError):
        raise NotFoundError(f"Baji with ID {baji_id} not found.")
    baji = await Baji.find_one(Baji.id == oid, Baji.game_id == game_id)
    if not baji:
        raise NotFoundError(f"Baji with ID {baji_id} not found.")
    return baji


async def place_bet(
    game_id: str,
    baji_id: str,
    bet_type: str,
    digit: str,
    amount: Any,
    user_id: str,
) -> StandardBet:
    """Validate, debit the stake atomically, then record the pending bet."""
    if not all([game_id, baji_id, bet_type, digit, user_id]) or amount is None:
        raise ValidationError("Missing required fields.")
    value = parse_amount(amount)
    check_bet_type(bet_type)
    check_stake(bet_type, value)
    stake = to_paise(value)
    digit = check_digit(digit, length=DIGIT_LENGTH[bet_type])
    await get_baji(game_id, baji_id)

    balance_after = await accounts_service.debit(user_id, stake)
    bet = StandardBet(
        user_id=user_id,
        game_id=game_id,
        baji_id=baji_id,
        bet_type=bet_type,
        digit=digit,
        amount=stake,
        created_at=clock.utcnow(),
    )
    try:
        await bet.insert()
    except PyMongoError:
        log.exception("bet_insert_failed_refunding", user_id=user_id, amount=str(value))
        await accounts_service.credit(user_id, stake)
        raise
    log.info(
        "bet_placed",
        bet_id=str(bet.id),
        user_id=user_id,
        game_id=game_id,
        baji_id=baji_id,
        bet_type=bet_type,
        amount=str(value),
        balance=str(to_rupees(balance_after)),
    )
    return bet


async def publish_winning_digit(game_id: str, baji_id: str, bet_type: str, digit: str) -> dict[str, Any]:
    """Record today's result for a bet type and settle the pending bets it decides."""
    if not all([game_id, baji_id, bet_type, digit]):
        raise ValidationError("Please select a game, a Baji, a bet type, and enter a winning digit.")
    check_bet_type(bet_type)
    digit = check_digit(digit, length=DIGIT_LENGTH[bet_type])
    baji = await get_baji(game_id, baji_id)

    now = clock.utcnow()
    local = clock.local_now()
    weekday = clock.js_weekday(local)
    if weekday not in baji.active_days:
        raise ValidationError(
            f"Results cannot be set on {_WEEKDAYS[weekday]}. This Baji is not active on this day."
        )
    result_day = local.date().isoformat()
    duplicate = ConflictError(
        f"A winning digit has already been set for {bet_type} on {result_day}. "
        "Only one winning digit is allowed per bet type per day."
    )
    if any(w.result_day == result_day for w in baji.winning_digits.get(bet_type, [])):
        raise duplicate

    entry = WinningDigit(digit=digit, result_date=now, result_day=result_day)
    field = f"winning_digits.{bet_type}"
    result = await Baji.get_motor_collection().update_one(
        {"_id": baji.id, f"{field}.result_day": {"$ne": result_day}},
        {"$push": {field: entry.model_dump()}},
    )
    if result.modified_count != 1:
        raise duplicate
    log.info("winning_digit_published", game_id=game_id, baji_id=baji_id, bet_type=bet_type, digit=digit)
    await log_event(
        None,
        "winning_digit_published",
        "baji",
        baji_id,
        metadata={"game_id": game_id, "bet_type": bet_type, "digit": digit, "result_day": result_day},
    )

    summary = await settle_bets(game_id, baji_id, bet_type, digit, published_at=now)
    return {"result_date": now, "result_day": result_day, **summary}


async def settle_bets(
    game_id: str,
    baji_id: str,
    bet_type: str,
    winning_digit: str,
    published_at: datetime,
) -> dict[str, Any]:
    """Settle pending bets placed up to published_at.

    Losers are flipped with one update_many. Each winner is claimed pending -> win
    with a conditional update and credited only if that claim succeeded, so a
    repeated call settles nothing twice.
    """
    coll = StandardBet.get_motor_collection()
    scope = {
        "game_id": game_id,
        "baji_id": baji_id,
        "bet_type": bet_type,
        "status": "pending",
        "created_at": {"$lte": published_at},
    }
    settled_at = clock.utcnow()
    lost = await coll.update_many(
        {**scope, "digit": {"$ne": winning_digit}},
        {"$set": {"status": "loss", "winning_price": 0, "result_digit": winning_digit, "settled_at": settled_at}},
    )

    winners = 0
    payout_total = 0
    credit_failures = 0
    chunk = get_settings().settlement_chunk_size
    while True:
        batch = await StandardBet.find({**scope, "digit": winning_digit}).sort("+created_at").limit(chunk).to_list()
        if not batch:
            break
        for bet in batch:
            price = standard_payout(bet_type, bet.amount)
            claim = await coll.update_one(
                {"_id": bet.id, "status": "pending"},
                {"$set": {"status": "win", "winning_price": price, "result_digit": winning_digit, "settled_at": settled_at}},
            )
            if claim.modified_count != 1:
                continue
            winners += 1
            payout_total += price
            paid = await settlement.credit_winner(
                StandardBet, bet.id, bet.user_id, price, "standard_bet",
                metadata={"bet_type": bet_type, "digit": bet.digit},
            )
            if not paid:
                credit_failures += 1

    summary = {
        "bet_type": bet_type,
        "winning_digit": winning_digit,
        "settled": lost.modified_count + winners,
        "winners": winners,
        "losers": lost.modified_count,
        "total_payout": to_rupees(payout_total),
        "credit_failures": credit_failures,
    }
    log.info(
        "bets_settled",
        game_id=game_id,
        baji_id=baji_id,
        bet_type=bet_type,
        winners=winners,
        losers=lost.modified_count,
        total_payout=str(summary["total_payout"]),
        credit_failures=credit_failures,
    )
    return summary


async def reconcile_standard_winnings(older_than: datetime) -> int:
    return await settlement.reconcile_unpaid(StandardBet, {"status": "win"}, "standard_bet", older_than)
