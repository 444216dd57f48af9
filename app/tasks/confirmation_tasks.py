# app/tasks/confirmation_tasks.py
"""Delivery confirmation tasks"""
import logging
from datetime import datetime, timezone
from uuid import UUID

from app.config.celery_config import celery_app
from app.config.database import get_db
from app.config.redis import get_sync_redis, write_sweep_heartbeat
from app.services.confirmation.confirmation_expiry_service import ConfirmationExpiryService
from app.services.order.order_lifecycle_service import OrderStateMachine

logger = logging.getLogger(__name__)


def _record_heartbeat(started_at: datetime, result: dict) -> None:
    """Publish the last sweep run for /health/detailed"""
    try:
        write_sweep_heartbeat(get_sync_redis(), started_at, result)
    except Exception as e:
        logger.warning(f"Could not record confirmation sweep heartbeat: {e}")


@celery_app.task(bind=True, max_retries=3)
def sweep_expired_confirmations(self, batch_size: int = None):
    """Periodic beat task: auto-complete orders whose 24h window has elapsed"""
    started_at = datetime.now(timezone.utc)
    try:
        db = next(get_db())
        try:
            result = ConfirmationExpiryService.sweep(db, now=started_at, batch_size=batch_size)
        finally:
            db.close()

        summary = result.to_dict()
        _record_heartbeat(started_at, summary)
        return {"status": "completed", **summary}

    except Exception as exc:
        logger.error(f"Confirmation sweep failed: {str(exc)}")
        raise self.retry(exc=exc, countdown=30 * (self.request.retries + 1))


@celery_app.task(bind=True, max_retries=3)
def auto_complete_order(self, order_id: str):
    """Complete a single order if its window has elapsed; no-op otherwise"""
    try:
        db = next(get_db())
        try:
            completed = OrderStateMachine.auto_complete(db, UUID(order_id))
        finally:
            db.close()

        return {"status": "completed" if completed else "skipped", "order_id": order_id}

    except Exception as exc:
        logger.error(f"Auto-completion failed for order {order_id}: {str(exc)}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
