# ============================================================================
# app/services/confirmation/confirmation_expiry_service.py
# ============================================================================
"""Auto-completes delivered orders whose confirmation window has elapsed"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.models.order import Order, OrderStatus, Resolution
from app.services.order.order_lifecycle_service import OrderStateMachine, confirmation_window
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    examined: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    completed_order_ids: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "examined": self.examined,
            "completed": self.completed,
            "skipped": self.skipped,
            "failed": self.failed,
            "completed_order_ids": self.completed_order_ids,
        }


class ConfirmationExpiryService:
    """
    Stateless sweep over persisted delivered_at timestamps.

    Nothing is kept in memory between runs, so a restarted worker simply
    finds whatever expired while it was down. Several workers may sweep at
    once: the completion itself is a compare-and-set, extra attempts are
    no-ops.
    """

    @staticmethod
    def is_eligible(order: Order, now: datetime) -> bool:
        return (
            order.status == OrderStatus.DELIVERED.value
            and order.resolution == Resolution.PENDING.value
            and OrderStateMachine.is_expired(order, now)
        )

    @staticmethod
    def find_expired_order_ids(db: Session, now: datetime, limit: Optional[int] = None) -> List:
        """Ids of delivered, unresolved orders past their deadline, oldest first"""
        cutoff = as_utc(now) - confirmation_window()
        query = db.query(Order.id).filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.resolution == Resolution.PENDING.value,
            Order.delivered_at <= cutoff,
        ).order_by(Order.delivered_at.asc())
        if limit:
            query = query.limit(limit)
        return [row[0] for row in query.all()]

    @staticmethod
    def sweep(db: Session, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> SweepResult:
        """Complete every expired order found in one batch"""
        now = as_utc(now or utcnow())
        batch_size = batch_size or get_settings().CONFIRMATION_SWEEP_BATCH_SIZE
        result = SweepResult()

        for order_id in ConfirmationExpiryService.find_expired_order_ids(db, now, batch_size):
            result.examined += 1
            try:
                if OrderStateMachine.auto_complete(db, order_id, now):
                    result.completed += 1
                    result.completed_order_ids.append(str(order_id))
                else:
                    result.skipped += 1
            except Exception as e:
                db.rollback()
                result.failed += 1
                logger.error(f"❌ Auto-completion failed for order {order_id}: {e}")

        if result.examined:
            logger.info(f"📊 Confirmation sweep summary: {result.to_dict()}")
        else:
            logger.debug("ℹ️ No expired confirmations")
        return result
