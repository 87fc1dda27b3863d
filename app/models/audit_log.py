from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class AuditLog(Document):
    user_id: str | None = None  # None for operator/system events
    event_type: str  # deposit_verified, withdrawal_verified, winning_digit_published, bet_won, loto_round_settled, ...
    entity_type: str  # ledger_entry, baji, standard_bet, loto_round, loto_bet
    entity_id: str | None = None
    amount: int | None = None  # paise
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]
