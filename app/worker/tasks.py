"""ARQ job definitions: Loto auto-settlement and payout reconciliation."""

import uuid
from datetime import timedelta
from typing import Any

from arq.connections import RedisSettings

from app.core import clock
from app.core.config import get_settings
from app.core.logging import bind_job, get_logger
from app.services import bets as bets_service
from app.services import loto as loto_service

log = get_logger(__name__)


async def _run_with_dlq(job_name: str, ctx: dict[str, Any], coro) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else str(uuid.uuid4())
    bind_job(job_name, job_id=job_id)
    try:
        return await coro
    except Exception as e:
        from app.models.failed_job import FailedJob
        await FailedJob(
            job_name=job_name,
            job_id=job_id,
            reason=str(e)[:2000],
            job_try=int(ctx.get("job_try") or 1),
        ).insert()
        log.exception("job_failed", reason=str(e))
        raise


async def settle_due_loto_rounds(ctx: dict[str, Any]) -> int:
    """Cron: draw a random result for Loto rounds left unsettled past the grace period."""

    async def _run() -> int:
        settled = await loto_service.settle_due_rounds()
        if settled:
            log.info("job_done", settled=settled)
        return settled

    return await _run_with_dlq("settle_due_loto_rounds", ctx, _run())


async def reconcile_unpaid_winnings(ctx: dict[str, Any]) -> dict[str, int]:
    """Cron: credit winners whose payout was interrupted after settlement."""

    async def _run() -> dict[str, int]:
        older_than = clock.utcnow() - timedelta(seconds=get_settings().reconcile_after_seconds)
        out = {
            "standard": await bets_service.reconcile_standard_winnings(older_than),
            "loto": await loto_service.reconcile_loto_winnings(older_than),
        }
        if any(out.values()):
            log.warning("job_done", **out)
        return out

    return await _run_with_dlq("reconcile_unpaid_winnings", ctx, _run())


async def startup(ctx: dict) -> None:
    from app.core.logging import configure_logging
    from app.db.init import init_db
    configure_logging(debug=get_settings().debug)
    await init_db()


async def shutdown(ctx: dict) -> None:
    pass


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
