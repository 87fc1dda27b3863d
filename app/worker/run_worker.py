"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from app.worker.tasks import (
    get_redis_settings,
    reconcile_unpaid_winnings,
    settle_due_loto_rounds,
    shutdown,
    startup,
)


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [settle_due_loto_rounds, reconcile_unpaid_winnings]
    cron_jobs = [
        cron(settle_due_loto_rounds, second=0),  # every minute at :00
        cron(reconcile_unpaid_winnings, minute=set(range(0, 60, 5)), second=30),
    ]
    on_startup = startup
    on_shutdown = shutdown


if __name__ == "__main__":
    run_worker(WorkerSettings)
