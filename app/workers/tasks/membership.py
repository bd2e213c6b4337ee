"""
Celery beat task: remove group members without an active subscription.
Redis lock keeps sweeps from overlapping when a run outlives the interval.
"""
import logging

from app.core.celery_app import celery_app
from app.core.config import settings
from app.db.session import SessionLocal
from app.services.task_lock import TaskLock
from app.services.membership.service import MembershipEnforcer
from app.services.telegram.client import TelegramClient

logger = logging.getLogger(__name__)

SWEEP_LOCK_NAME = "membership_sweep"


@celery_app.task(
    name="app.workers.tasks.membership.enforce_membership",
    time_limit=3500,
    soft_time_limit=3400,
)
def enforce_membership() -> dict:
    lock = TaskLock(SWEEP_LOCK_NAME, ttl_seconds=settings.membership_sweep_lock_ttl)
    if not lock.acquire():
        logger.info("membership_sweep_skipped", extra={"reason": "already_running"})
        return {"ok": True, "skipped": "already_running"}

    db = SessionLocal()
    telegram = TelegramClient()
    try:
        stats = MembershipEnforcer(db, telegram).sweep()
        return {"ok": True, **stats.as_dict()}
    except Exception:
        logger.exception("membership_sweep_error")
        db.rollback()
        return {"ok": False}
    finally:
        telegram.close()
        db.close()
        lock.release()
