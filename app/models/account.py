from datetime import datetime
from typing import Literal

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class LedgerEntry(BaseModel):
    """Deposit/withdrawal claim. requested_at identifies the entry within its account."""
    type: Literal["deposit", "withdraw"]
    amount: int  # paise
    phone_number: str | None = None
    mode: str | None = None
    txn_id: str | None = None
    requested_at: datetime
    verified: bool = False
    verified_at: datetime | None = None


class Account(Document):
    """Balance per user. Verification mutates balance and one history entry in a single update."""
    user_id: Indexed(str, unique=True)
    balance: int = 0  # paise
    earned: int = 0  # paise, lifetime winnings
    balance_history: list[LedgerEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "accounts"
