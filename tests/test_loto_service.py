"""Loto rounds: start guard, joins, live status and tiered settlement."""

from datetime import timedelta

import pytest
import pytest_asyncio

from app.core.exceptions import ConflictError, InsufficientFundsError, NotFoundError, ValidationError
from app.models.account import Account
from app.models.loto import LotoBet, LotoRound
from app.services import accounts as accounts_service
from app.services import loto as loto_service
from app.services import settlement

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def game_id(db) -> str:
    game, created = await loto_service.create_loto_game()
    assert created
    return str(game.id)


async def _account(user_id: str) -> Account:
    return await Account.find_one(Account.user_id == user_id)


async def test_create_loto_game_is_idempotent(game_id):
    game, created = await loto_service.create_loto_game()
    assert created is False
    assert str(game.id) == game_id


async def test_start_round_guard(game_id, clock):
    first = await loto_service.start_round(game_id)
    assert first.start_time == clock.now
    assert (first.end_time - first.start_time).total_seconds() == 600

    clock.advance(minutes=9)
    with pytest.raises(ConflictError, match="already started"):
        await loto_service.start_round(game_id)
    clock.advance(minutes=1)
    with pytest.raises(ConflictError):
        await loto_service.start_round(game_id)
    assert await LotoRound.find(LotoRound.game_id == game_id).count() == 1

    clock.advance(seconds=1)
    second = await loto_service.start_round(game_id)
    assert (await loto_service.latest_round(game_id)).id == second.id


async def test_start_round_unknown_game(db):
    with pytest.raises(NotFoundError):
        await loto_service.start_round("000000000000000000000000")


async def test_join_requires_round_and_funds(game_id, funded):
    await funded("u1", 100)
    with pytest.raises(NotFoundError):
        await loto_service.join_round(game_id, "u1", 10, "4")
    assert (await _account("u1")).balance == 100_00

    await loto_service.start_round(game_id)
    with pytest.raises(InsufficientFundsError):
        await loto_service.join_round(game_id, "u1", 500, "4")
    with pytest.raises(ValidationError):
        await loto_service.join_round(game_id, "u1", 10, "4321")
    with pytest.raises(ValidationError):
        await loto_service.join_round(game_id, "u1", 0, "4")

    bet = await loto_service.join_round(game_id, "u1", 10, "42")
    assert (await _account("u1")).balance == 90_00
    assert bet.is_winner is None


async def test_live_status_phases(game_id, clock):
    with pytest.raises(NotFoundError):
        await loto_service.get_live_status(game_id)
    await loto_service.start_round(game_id)

    status = await loto_service.get_live_status(game_id)
    assert (status["phase"], status["is_live"], status["remaining_seconds"]) == ("open", True, 600)
    clock.advance(minutes=4, seconds=30)
    assert (await loto_service.get_live_status(game_id))["remaining_seconds"] == 330

    clock.advance(minutes=6)
    status = await loto_service.get_live_status(game_id)
    assert status["phase"] == "closed"
    assert status["winning_digit"] is None
    assert (await loto_service.latest_round(game_id)).status == "closed"

    await loto_service.settle_round(game_id, "427")
    status = await loto_service.get_live_status(game_id)
    assert (status["phase"], status["winning_digit"]) == ("settled", "427")


async def test_settle_tiers(game_id, funded):
    for user in ("a", "b", "c", "d", "e"):
        await funded(user, 100)
    await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "a", 10, "4")
    await loto_service.join_round(game_id, "b", 10, "42")
    await loto_service.join_round(game_id, "c", 10, "427")
    await loto_service.join_round(game_id, "d", 10, "43")
    await loto_service.join_round(game_id, "e", 10, "7")

    out = await loto_service.settle_round(game_id, "427")
    assert out["result_digit"] == "427"
    assert out["comparison_digits"] == {"single": "4", "double": "42", "triple": "427"}
    assert out["winners"] == 3

    by_user = {b["user_id"]: b for b in out["round"]["user_list"]}
    assert (by_user["a"]["is_winner"], by_user["a"]["winning_price"]) == (True, 90)
    assert (by_user["b"]["is_winner"], by_user["b"]["winning_price"]) == (True, 800)
    assert (by_user["c"]["is_winner"], by_user["c"]["winning_price"]) == (True, 1000)
    assert (by_user["d"]["is_winner"], by_user["d"]["winning_price"]) == (False, 0)
    assert (by_user["e"]["is_winner"], by_user["e"]["winning_price"]) == (False, 0)
    assert out["round"]["status"] == "settled"
    assert out["round"]["total_bet_amount"] == 50
    assert out["round"]["total_winning_price"] == 1890

    assert ((await _account("a")).balance, (await _account("a")).earned) == (180_00, 90_00)
    assert (await _account("b")).balance == 890_00
    assert (await _account("c")).balance == 1090_00
    assert (await _account("d")).balance == 90_00


@pytest.mark.parametrize("result", ["420", "429"])
async def test_double_tier_ignores_third_digit(game_id, funded, result):
    await funded("u1", 100)
    await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "u1", 10, "42")
    out = await loto_service.settle_round(game_id, result)
    assert out["round"]["user_list"][0]["winning_price"] == 800


async def test_settle_without_digit_needs_grace_period(game_id, funded, clock, monkeypatch):
    await funded("u1", 100)
    await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "u1", 10, "5")

    clock.advance(minutes=11, seconds=59)
    with pytest.raises(ValidationError):
        await loto_service.settle_round(game_id)
    assert (await loto_service.latest_round(game_id)).result_digit is None

    clock.advance(seconds=1)
    monkeypatch.setattr(loto_service, "random_result", lambda: "512")
    out = await loto_service.settle_round(game_id)
    assert out["result_digit"] == "512"
    assert out["round"]["user_list"][0]["winning_price"] == 90
    assert (await _account("u1")).earned == 90_00


async def test_random_result_shape():
    draws = {loto_service.random_result() for _ in range(300)}
    assert all(len(d) == 3 and d.isdigit() for d in draws)
    assert len(draws) > 100


async def test_settle_is_once_only(game_id, funded):
    await funded("u1", 100)
    await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "u1", 10, "4")
    await loto_service.settle_round(game_id, "4")
    with pytest.raises(ConflictError):
        await loto_service.settle_round(game_id, "4")
    account = await _account("u1")
    assert (account.balance, account.earned) == (180_00, 90_00)


async def test_settle_without_rounds(game_id):
    with pytest.raises(NotFoundError):
        await loto_service.settle_round(game_id, "123")


async def test_join_after_settle_rejected(game_id, funded):
    await funded("u1", 100)
    await loto_service.start_round(game_id)
    await loto_service.settle_round(game_id, "123")
    with pytest.raises(ConflictError):
        await loto_service.join_round(game_id, "u1", 10, "1")
    assert (await _account("u1")).balance == 100_00


async def test_late_join_policy(game_id, funded, clock, monkeypatch):
    from app.core.config import get_settings

    await funded("u1", 100)
    await loto_service.start_round(game_id)
    clock.advance(minutes=11)
    await loto_service.join_round(game_id, "u1", 10, "1")

    monkeypatch.setattr(get_settings(), "loto_accept_late_joins", False)
    with pytest.raises(ConflictError, match="closed"):
        await loto_service.join_round(game_id, "u1", 10, "1")
    assert (await _account("u1")).balance == 90_00


async def test_settle_due_rounds(game_id, funded, clock, monkeypatch):
    await funded("u1", 100)
    await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "u1", 10, "9")
    assert await loto_service.settle_due_rounds() == 0

    clock.advance(minutes=12)
    monkeypatch.setattr(loto_service, "random_result", lambda: "900")
    assert await loto_service.settle_due_rounds() == 1
    assert (await loto_service.latest_round(game_id)).result_digit == "900"
    assert await loto_service.settle_due_rounds() == 0
    assert (await _account("u1")).balance == 180_00


async def test_reconcile_loto_winnings(game_id, funded, clock):
    await funded("u1", 100)
    rnd = await loto_service.start_round(game_id)
    bet = LotoBet(
        round_id=str(rnd.id),
        game_id=game_id,
        user_id="u1",
        amount=10_00,
        bet_digit="4",
        is_winner=True,
        winning_price=90_00,
        credited=False,
        settled_at=clock.now,
        created_at=clock.now,
    )
    await bet.insert()
    assert await loto_service.reconcile_loto_winnings(older_than=clock.now) == 1
    assert await loto_service.reconcile_loto_winnings(older_than=clock.now) == 0
    assert (await _account("u1")).earned == 90_00


async def test_live_status_after_early_result(game_id, clock):
    await loto_service.start_round(game_id)
    clock.advance(minutes=2)
    await loto_service.settle_round(game_id, "427")

    status = await loto_service.get_live_status(game_id)
    assert (status["phase"], status["winning_digit"]) == ("settled", "427")
    assert (status["is_live"], status["remaining_seconds"]) == (True, 480)

    clock.advance(minutes=9)
    status = await loto_service.get_live_status(game_id)
    assert (status["phase"], status["is_live"]) == ("settled", False)
    assert "remaining_seconds" not in status


async def test_join_racing_settlement_is_refunded(game_id, funded, monkeypatch):
    await funded("u1", 100)
    rnd = await loto_service.start_round(game_id)
    real_debit = accounts_service.debit

    async def debit_then_settle(user_id, amount):
        balance = await real_debit(user_id, amount)
        await loto_service.settle_round(game_id, "1")
        return balance

    monkeypatch.setattr(accounts_service, "debit", debit_then_settle)
    with pytest.raises(ConflictError, match="settled"):
        await loto_service.join_round(game_id, "u1", 10, "1")

    assert (await _account("u1")).balance == 100_00
    assert await LotoBet.find(LotoBet.round_id == str(rnd.id)).count() == 0
    stored = await LotoRound.get(rnd.id)
    assert (stored.total_bet_amount, stored.total_winning_price) == (0, 0)


async def test_round_totals_skip_unsettled_bets(game_id, funded, clock):
    await funded("u1", 100)
    rnd = await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "u1", 10, "4")
    await loto_service.settle_round(game_id, "4")

    straggler = LotoBet(
        round_id=str(rnd.id), game_id=game_id, user_id="u2", amount=25_00, bet_digit="4", created_at=clock.now
    )
    await straggler.insert()
    assert await loto_service.round_totals(str(rnd.id)) == (10_00, 90_00)
    stored = await LotoRound.get(rnd.id)
    assert (stored.total_bet_amount, stored.total_winning_price) == (10_00, 90_00)


async def test_reconcile_during_round_payout_does_not_pay_twice(game_id, funded, clock, monkeypatch):
    await funded("u1", 100)
    await funded("u2", 100)
    await loto_service.start_round(game_id)
    await loto_service.join_round(game_id, "u1", 10, "4")
    await loto_service.join_round(game_id, "u2", 10, "42")

    real_credit_winner = settlement.credit_winner
    seen = []

    async def slow_fan_out(model, bet_id, user_id, amount, entity_type, metadata=None):
        seen.append(user_id)
        if len(seen) == 2:
            clock.advance(minutes=6)
            await loto_service.reconcile_loto_winnings(older_than=clock.now - timedelta(minutes=5))
        return await real_credit_winner(model, bet_id, user_id, amount, entity_type, metadata)

    monkeypatch.setattr(settlement, "credit_winner", slow_fan_out)
    out = await loto_service.settle_round(game_id, "427")

    assert (out["winners"], out["credit_failures"]) == (2, 0)
    assert (await _account("u1")).earned == 90_00
    assert (await _account("u2")).earned == 800_00
    assert (await _account("u2")).balance == (100 - 10 + 800) * 100
