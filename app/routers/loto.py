from decimal import Decimal

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from app.core.money import to_rupees
from app.services import loto as loto_service

router = APIRouter()


class JoinRoundRequest(BaseModel):
    user_id: str
    amount: Decimal
    bet_digit: str


class SettleRoundRequest(BaseModel):
    bet_digit: str | None = None


@router.post("/games")
async def create_loto_game():
    """Create the Loto game once; later calls return the existing one."""
    game, created = await loto_service.create_loto_game()
    body = {
        "message": "Loto game created successfully." if created else "A Loto game already exists.",
        "game_id": str(game.id),
    }
    return ORJSONResponse(status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK, content=body)


@router.post("/{game_id}/rounds")
async def start_round(game_id: str):
    rnd = await loto_service.start_round(game_id)
    return {"message": "Loto round started.", "game_id": game_id, "round": await loto_service.round_view(rnd)}


@router.post("/{game_id}/bets")
async def join_round(game_id: str, body: JoinRoundRequest):
    bet = await loto_service.join_round(game_id, body.user_id, body.amount, body.bet_digit)
    return {
        "message": "Bet added successfully to the latest round.",
        "game_id": game_id,
        "bet": {
            "id": str(bet.id),
            "round_id": bet.round_id,
            "user_id": bet.user_id,
            "amount": to_rupees(bet.amount),
            "bet_digit": bet.bet_digit,
            "created_at": bet.created_at,
        },
    }


@router.post("/{game_id}/result")
async def settle_round(game_id: str, body: SettleRoundRequest | None = None):
    """Set the latest round's result (random after the grace period if omitted) and pay winners."""
    out = await loto_service.settle_round(game_id, body.bet_digit if body else None)
    return {"message": "Loto game result set successfully for the latest round.", **out}


@router.get("/{game_id}/live")
async def live_status(game_id: str):
    return await loto_service.get_live_status(game_id)
