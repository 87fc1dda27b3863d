from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field


class WinningDigit(BaseModel):
    digit: str
    result_date: datetime
    result_day: str  # YYYY-MM-DD in the business timezone; one per bet type per day


class Baji(Document):
    game_id: str
    name: str = ""
    active_days: list[int] = Field(default_factory=list)  # 0 = Sunday ... 6 = Saturday
    winning_digits: dict[str, list[WinningDigit]] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "bajis"
        indexes = [[("game_id", 1)]]
