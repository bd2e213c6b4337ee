"""
Celery beat task: daily reminder for subscriptions ending within the window.
"""
import logging

from app.core.celery_app import celery_app
from app.db.session import SessionLocal
from app.services.notifications.expiry import ExpiryNotifier
from app.services.telegram.client import TelegramClient

logger = logging.getLogger(__name__)


@celery_app.task(
    name="app.workers.tasks.expiry_reminders.send_expiry_reminders",
    time_limit=1800,
    soft_time_limit=1700,
)
def send_expiry_reminders() -> dict:
    db = SessionLocal()
    telegram = TelegramClient()
    try:
        stats = ExpiryNotifier(db, telegram).run()
        return {"ok": True, "sent": stats.sent, "failed": stats.failed}
    except Exception:
        logger.exception("expiry_reminders_error")
        return {"ok": False}
    finally:
        telegram.close()
        db.close()
