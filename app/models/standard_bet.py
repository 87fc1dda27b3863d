from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field

BetType = Literal["Single", "Jodi", "Patti"]


class StandardBet(Document):
    user_id: str
    game_id: str
    baji_id: str
    bet_type: BetType
    digit: str
    amount: int  # paise
    status: Literal["pending", "win", "loss"] = "pending"
    winning_price: int = 0  # paise
    result_digit: str | None = None
    credited: bool = False  # winner payout applied to the account
    settled_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "standard_bets"
        indexes = [
            [("game_id", 1), ("baji_id", 1), ("bet_type", 1), ("status", 1), ("created_at", 1)],
            [("user_id", 1), ("created_at", -1)],
            [("status", 1), ("credited", 1)],
        ]
