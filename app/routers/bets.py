from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel

from app.services import bets as bets_service

router = APIRouter()


class PlaceBetRequest(BaseModel):
    game_id: str
    baji_id: str
    bet_type: str
    digit: str
    amount: Decimal
    user_id: str


class PublishResultRequest(BaseModel):
    game_id: str
    baji_id: str
    bet_type: str
    digit: str


@router.post("")
async def place_bet(body: PlaceBetRequest):
    bet = await bets_service.place_bet(
        body.game_id, body.baji_id, body.bet_type, body.digit, body.amount, body.user_id
    )
    return {"message": "Bet added successfully.", "bet_id": str(bet.id), "status": bet.status}


@router.post("/results")
async def publish_result(body: PublishResultRequest):
    """Publish today's winning digit for a bet type and settle its pending bets."""
    summary = await bets_service.publish_winning_digit(
        body.game_id, body.baji_id, body.bet_type, body.digit
    )
    return {"message": "Winning digit set successfully and bet statuses updated!", "settlement": summary}
