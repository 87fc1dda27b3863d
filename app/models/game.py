from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field


class Game(Document):
    title: str
    type: Literal["baji", "loto"] = "baji"
    # Loto only: creation time of the latest round, guards concurrent starts
    last_round_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "games"
        indexes = [[("type", 1)]]
