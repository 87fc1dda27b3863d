from app.models.account import Account, LedgerEntry
from app.models.game import Game
from app.models.baji import Baji, WinningDigit
from app.models.standard_bet import StandardBet
from app.models.loto import LotoBet, LotoRound
from app.models.audit_log import AuditLog
from app.models.failed_job import FailedJob

__all__ = [
    "Account",
    "LedgerEntry",
    "Game",
    "Baji",
    "WinningDigit",
    "StandardBet",
    "LotoRound",
    "LotoBet",
    "AuditLog",
    "FailedJob",
]
