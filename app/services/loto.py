"""Loto: one rolling draw per game. Rounds last a fixed window; a 1-3 digit result
pays bets by prefix tier (first digit, first two, all three)."""

import math
import secrets
from datetime import datetime, timedelta
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
from app.models.game import Game
from app.models.loto import LotoBet, LotoRound
from app.services import accounts as accounts_service
from app.services import settlement
from app.services.payouts import check_digit, loto_comparison_digits, loto_payout

log = get_logger(__name__)


def _round_window() -> timedelta:
    return timedelta(minutes=get_settings().loto_round_minutes)


def random_result() -> str:
    """Uniform 3-digit result 000-999."""
    return f"{secrets.randbelow(1000):03d}"


async def create_loto_game() -> tuple[Game, bool]:
    """Return the Loto game, creating it on first call. Second value is True if created."""
    existing = await Game.find_one(Game.type == "loto")
    if existing:
        return existing, False
    game = Game(title="Loto Game", type="loto", created_at=clock.utcnow())
    await game.insert()
    log.info("loto_game_created", game_id=str(game.id))
    return game, True


async def get_loto_game(game_id: str) -> Game:
    try:
        oid = PydanticObjectId(game_id)
    except (InvalidId, TypeError):
        raise NotFoundError("Game not found.")
    game = await Game.find_one(Game.id == oid, Game.type == "loto")
    if not game:
        raise NotFoundError("Game not found.")
    return game


async def latest_round(game_id: str) -> LotoRound | None:
    return await LotoRound.find(LotoRound.game_id == game_id).sort("-created_at").first_or_none()


async def _require_latest_round(game_id: str) -> LotoRound:
    rnd = await latest_round(game_id)
    if not rnd:
        raise NotFoundError("No rounds found for this game.")
    return await _refresh_status(rnd)


async def _refresh_status(rnd: LotoRound, now: datetime | None = None) -> LotoRound:
    """Move an open round past its end_time to closed."""
    now = now or clock.utcnow()
    if rnd.status == "open" and now > rnd.end_time:
        await LotoRound.get_motor_collection().update_one(
            {"_id": rnd.id, "status": "open"}, {"$set": {"status": "closed"}}
        )
        rnd.status = "closed"
        log.info("loto_round_closed", round_id=str(rnd.id), game_id=rnd.game_id)
    return rnd


async def start_round(game_id: str) -> LotoRound:
    """Open a new round unless the previous one was created within the round window."""
    game = await get_loto_game(game_id)
    now = clock.utcnow()
    window = _round_window()
    previous = game.last_round_at
    guard = await Game.get_motor_collection().update_one(
        {
            "_id": game.id,
            "$or": [{"last_round_at": None}, {"last_round_at": {"$lt": now - window}}],
        },
        {"$set": {"last_round_at": now}},
    )
    if guard.modified_count != 1:
        raise ConflictError("Game has already started.")

    rnd = LotoRound(game_id=game_id, start_time=now, end_time=now + window, created_at=now)
    try:
        await rnd.insert()
    except PyMongoError:
        log.exception("loto_round_insert_failed", game_id=game_id)
        await Game.get_motor_collection().update_one(
            {"_id": game.id, "last_round_at": now}, {"$set": {"last_round_at": previous}}
        )
        raise
    log.info("loto_round_started", game_id=game_id, round_id=str(rnd.id), end_time=rnd.end_time.isoformat())
    return rnd


async def join_round(game_id: str, user_id: str, amount: Any, bet_digit: str) -> LotoBet:
    """Debit the stake and add the bet to the latest round."""
    if not all([game_id, user_id, bet_digit]) or amount is None:
        raise ValidationError("Missing required fields. gameId, userId, amount, and betDigit are required.")
    value = parse_amount(amount)
    stake = to_paise(value)
    bet_digit = check_digit(bet_digit, max_length=3)
    await get_loto_game(game_id)
    rnd = await _require_latest_round(game_id)
    if rnd.status == "settled":
        raise ConflictError("This round has already been settled.")
    if rnd.status == "closed" and not get_settings().loto_accept_late_joins:
        raise ConflictError("This round is closed for new bets.")

    await accounts_service.debit(user_id, stake)
    bet = LotoBet(
        round_id=str(rnd.id),
        game_id=game_id,
        user_id=user_id,
        amount=stake,
        bet_digit=bet_digit,
        created_at=clock.utcnow(),
    )
    try:
        await bet.insert()
    except PyMongoError:
        log.exception("loto_bet_insert_failed_refunding", user_id=user_id, amount=str(value))
        await accounts_service.credit(user_id, stake)
        raise

    # Settlement may have claimed the round while this bet was being written. If the
    # bet is still unsettled it would never be paid: withdraw it and refund.
    current = await LotoRound.get(rnd.id)
    if current and current.status == "settled":
        removed = await LotoBet.get_motor_collection().delete_one({"_id": bet.id, "is_winner": None})
        if removed.deleted_count == 1:
            await accounts_service.credit(user_id, stake)
            log.info("loto_bet_withdrawn_after_settle", user_id=user_id, round_id=str(rnd.id), amount=str(value))
            raise ConflictError("This round has already been settled.")

    log.info("loto_bet_placed", user_id=user_id, round_id=str(rnd.id), amount=str(value), bet_digit=bet_digit)
    return bet


async def get_live_status(game_id: str) -> dict[str, Any]:
    """Phase of the latest round: scheduled, open (with seconds left), closed (awaiting result) or settled."""
    await get_loto_game(game_id)
    now = clock.utcnow()
    rnd = await latest_round(game_id)
    if not rnd:
        raise NotFoundError("No round found.")
    rnd = await _refresh_status(rnd, now)
    out: dict[str, Any] = {
        "game_id": game_id,
        "round_id": str(rnd.id),
        "status": rnd.status,
        "is_live": False,
        "current_time": now,
        "start_time": rnd.start_time,
        "end_time": rnd.end_time,
    }
    if rnd.status == "settled":
        out.update(phase="settled", winning_digit=rnd.result_digit,
                   message="Game has ended, and the winning digit is available.")
        # Result set early: the round still runs out its window
        if rnd.start_time <= now <= rnd.end_time:
            out.update(is_live=True, remaining_seconds=max(0, math.floor((rnd.end_time - now).total_seconds())),
                       message="Live game found; the winning digit is already available.")
    elif now < rnd.start_time:
        out.update(phase="scheduled", seconds_to_start=math.ceil((rnd.start_time - now).total_seconds()),
                   message="No live game currently running.")
    elif now <= rnd.end_time:
        out.update(phase="open", is_live=True,
                   remaining_seconds=max(0, math.floor((rnd.end_time - now).total_seconds())),
                   message="Live game found.")
    else:
        out.update(phase="closed", winning_digit=None,
                   message="Game has ended, but the winning digit is not available yet.")
    return out


async def settle_round(game_id: str, bet_digit: str | None = None) -> dict[str, Any]:
    """Set the latest round's result once and pay its bets.

    Without a supplied digit a random 3-digit result is drawn, but only once the
    round has been over for LOTO_AUTO_RESULT_AFTER_SECONDS.
    """
    await get_loto_game(game_id)
    rnd = await _require_latest_round(game_id)
    if rnd.status == "settled":
        raise ConflictError("The result for this round has already been set.")
    now = clock.utcnow()
    if bet_digit:
        result_digit = check_digit(bet_digit, max_length=3)
    elif now - rnd.end_time >= timedelta(seconds=get_settings().loto_auto_result_after_seconds):
        result_digit = random_result()
    else:
        raise ValidationError(
            "No result digit provided and the time difference is not sufficient to auto-generate one."
        )

    claim = await LotoRound.get_motor_collection().update_one(
        {"_id": rnd.id, "status": {"$ne": "settled"}},
        {"$set": {"status": "settled", "result_digit": result_digit, "settled_at": now}},
    )
    if claim.modified_count != 1:
        raise ConflictError("The result for this round has already been set.")
    log.info("loto_result_set", game_id=game_id, round_id=str(rnd.id), result_digit=result_digit,
             auto=not bet_digit)

    summary = await _settle_round_bets(rnd, result_digit, now)
    await LotoRound.get_motor_collection().update_one(
        {"_id": rnd.id},
        {"$set": {"total_bet_amount": summary["total_bet_amount"],
                  "total_winning_price": summary["total_winning_price"]}},
    )
    await log_event(
        None, "loto_round_settled", "loto_round", str(rnd.id), amount=summary["total_winning_price"],
        metadata={"game_id": game_id, "result_digit": result_digit, "winners": summary["winners"]},
    )
    settled = await LotoRound.get(rnd.id)
    return {
        "game_id": game_id,
        "result_digit": result_digit,
        "comparison_digits": loto_comparison_digits(result_digit),
        "winners": summary["winners"],
        "credit_failures": summary["credit_failures"],
        "round": await round_view(settled),
    }


async def _settle_round_bets(rnd: LotoRound, result_digit: str, settled_at: datetime) -> dict[str, Any]:
    round_id = str(rnd.id)
    coll = LotoBet.get_motor_collection()
    prefixes = sorted(set(loto_comparison_digits(result_digit).values()))
    await coll.update_many(
        {"round_id": round_id, "is_winner": None, "bet_digit": {"$nin": prefixes}},
        {"$set": {"is_winner": False, "winning_price": 0, "settled_at": settled_at}},
    )

    winners = 0
    credit_failures = 0
    chunk = get_settings().settlement_chunk_size
    while True:
        batch = await LotoBet.find(
            LotoBet.round_id == round_id, LotoBet.is_winner == None  # noqa: E711
        ).sort("+created_at").limit(chunk).to_list()
        if not batch:
            break
        for bet in batch:
            tier, price = loto_payout(bet.bet_digit, bet.amount, result_digit)
            claim = await coll.update_one(
                {"_id": bet.id, "is_winner": None},
                {"$set": {"is_winner": tier is not None, "winning_price": price, "settled_at": settled_at}},
            )
            if claim.modified_count != 1 or tier is None:
                continue
            winners += 1
            paid = await settlement.credit_winner(
                LotoBet, bet.id, bet.user_id, price, "loto_bet",
                metadata={"round_id": round_id, "tier": tier, "bet_digit": bet.bet_digit},
            )
            if not paid:
                credit_failures += 1

    total_bet, total_won = await round_totals(round_id)
    log.info("loto_round_settled", round_id=round_id, winners=winners,
             total_bet_amount=str(to_rupees(total_bet)), total_winning_price=str(to_rupees(total_won)))
    return {
        "winners": winners,
        "credit_failures": credit_failures,
        "total_bet_amount": total_bet,
        "total_winning_price": total_won,
    }


async def round_totals(round_id: str) -> tuple[int, int]:
    """(stakes, winnings) in paise over settled bets only.

    A join still unsettled after the payout loop lost the race with settlement;
    join_round withdraws and refunds it, so it never counts.
    """
    bets = await LotoBet.find(LotoBet.round_id == round_id, LotoBet.is_winner != None).to_list()  # noqa: E711
    return sum(b.amount for b in bets), sum(b.winning_price or 0 for b in bets)


async def round_view(rnd: LotoRound) -> dict[str, Any]:
    """Round descriptor with its bets in join order (the round's user list)."""
    bets = await LotoBet.find(LotoBet.round_id == str(rnd.id)).sort("+created_at").to_list()
    return {
        "id": str(rnd.id),
        "game_id": rnd.game_id,
        "status": rnd.status,
        "start_time": rnd.start_time,
        "end_time": rnd.end_time,
        "created_at": rnd.created_at,
        "result_digit": rnd.result_digit,
        "total_bet_amount": to_rupees(rnd.total_bet_amount),
        "total_winning_price": to_rupees(rnd.total_winning_price),
        "user_list": [
            {
                "id": str(b.id),
                "user_id": b.user_id,
                "amount": to_rupees(b.amount),
                "bet_digit": b.bet_digit,
                "created_at": b.created_at,
                "is_winner": b.is_winner,
                "winning_price": None if b.winning_price is None else to_rupees(b.winning_price),
            }
            for b in bets
        ],
    }


async def settle_due_rounds() -> int:
    """Auto-settle each Loto game's latest round once it is past the auto-result delay."""
    due_before = clock.utcnow() - timedelta(seconds=get_settings().loto_auto_result_after_seconds)
    settled = 0
    for game in await Game.find(Game.type == "loto").to_list():
        rnd = await latest_round(str(game.id))
        if not rnd or rnd.status == "settled" or rnd.end_time > due_before:
            continue
        try:
            await settle_round(str(game.id))
        except ConflictError:
            log.info("loto_round_already_settled", game_id=str(game.id), round_id=str(rnd.id))
            continue
        settled += 1
    return settled


async def reconcile_loto_winnings(older_than: datetime) -> int:
    return await settlement.reconcile_unpaid(LotoBet, {"is_winner": True}, "loto_bet", older_than)
