from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field


class LotoRound(Document):
    game_id: str
    start_time: datetime
    end_time: datetime
    status: Literal["open", "closed", "settled"] = "open"
    result_digit: str | None = None
    total_bet_amount: int = 0  # paise
    total_winning_price: int = 0  # paise
    settled_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "loto_rounds"
        indexes = [[("game_id", 1), ("created_at", -1)], [("status", 1), ("end_time", 1)]]


class LotoBet(Document):
    round_id: str
    game_id: str
    user_id: str
    amount: int  # paise
    bet_digit: str
    is_winner: bool | None = None  # None until the round is settled
    winning_price: int | None = None  # paise
    credited: bool = False
    settled_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "loto_bets"
        indexes = [[("round_id", 1), ("created_at", 1)], [("is_winner", 1), ("credited", 1)]]
