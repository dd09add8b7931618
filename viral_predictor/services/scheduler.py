import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from viral_predictor.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def sweep_rate_limits(rate_limiter: RateLimiter) -> int:
    removed = rate_limiter.sweep()
    if removed:
        logger.info(f"Removed {removed} expired rate limit entries")
    return removed


def create_scheduler(rate_limiter: RateLimiter, interval_minutes: int = 60) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_rate_limits,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[rate_limiter],
        id="sweep_rate_limits",
        name="Remove expired rate limit entries",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler):
    scheduler.start()
    job = scheduler.get_job("sweep_rate_limits")
    logger.info(f"Scheduler started, next rate limit sweep at {job.next_run_time if job else 'n/a'}")


def stop_scheduler(scheduler: AsyncIOScheduler):
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
