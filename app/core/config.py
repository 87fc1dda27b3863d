from decimal import Decimal
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except ValueError:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="baji_ledger", alias="MONGODB_DB_NAME")

    # Redis (ARQ worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Business calendar; weekdays and withdrawal hours are evaluated here
    business_timezone: str = Field(default="Asia/Kolkata", alias="BUSINESS_TIMEZONE")

    # Ledger
    min_deposit: Decimal = Field(default=Decimal("100"), alias="MIN_DEPOSIT")
    min_withdrawal: Decimal = Field(default=Decimal("300"), alias="MIN_WITHDRAWAL")
    withdrawal_hours_enforced: bool = Field(default=True, alias="WITHDRAWAL_HOURS_ENFORCED")

    # Loto
    loto_round_minutes: int = Field(default=10, alias="LOTO_ROUND_MINUTES")
    loto_auto_result_after_seconds: int = Field(default=120, alias="LOTO_AUTO_RESULT_AFTER_SECONDS")
    loto_accept_late_joins: bool = Field(default=True, alias="LOTO_ACCEPT_LATE_JOINS")

    # Settlement
    settlement_chunk_size: int = Field(default=500, alias="SETTLEMENT_CHUNK_SIZE")
    reconcile_after_seconds: int = Field(default=300, alias="RECONCILE_AFTER_SECONDS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
