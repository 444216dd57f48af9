# ============================================================================
# app/services/dispute/dispute_service.py
# ============================================================================
"""Service for buyer delivery disputes"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.errors import ConfirmationWindowExpired, OrderNotDisputable, ValidationFailed
from app.models.order import Actor, DisputeCategory, Order, OrderDispute, OrderStatus, Resolution
from app.services.order.order_lifecycle_service import OrderStateMachine
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class DisputeService:
    """Records disputes; filing one is itself the terminal transition"""

    @staticmethod
    def validate_payload(issue_category: str, description: str, photos: Optional[List[str]]) -> List[str]:
        settings = get_settings()
        if issue_category not in {c.value for c in DisputeCategory}:
            raise ValidationFailed(
                f"Unknown issue category '{issue_category}'",
                field="issueCategory",
                allowed=[c.value for c in DisputeCategory],
            )

        description = (description or "").strip()
        if not description:
            raise ValidationFailed("Please describe the issue", field="description")
        if len(description) > settings.DISPUTE_DESCRIPTION_MAX_LENGTH:
            raise ValidationFailed(
                f"Description must be at most {settings.DISPUTE_DESCRIPTION_MAX_LENGTH} characters",
                field="description",
            )

        photos = [p for p in (photos or []) if p]
        if len(photos) > settings.DISPUTE_MAX_PHOTOS:
            raise ValidationFailed(
                f"Maximum {settings.DISPUTE_MAX_PHOTOS} photos allowed",
                field="photos", max_photos=settings.DISPUTE_MAX_PHOTOS,
            )
        return photos

    @staticmethod
    def file_dispute(
            db: Session,
            order: Order,
            caller_phone: Optional[str],
            issue_category: str,
            description: str,
            photos: Optional[List[str]] = None,
            now: Optional[datetime] = None
    ) -> OrderDispute:
        """
        Dispute a delivered order before its confirmation deadline.

        Pre-empts both buyer confirmation and auto-completion. Raises
        OrderNotDisputable when the order is not awaiting confirmation (or
        already resolved), ConfirmationWindowExpired when the deadline has
        passed.
        """
        OrderStateMachine.ensure_buyer(order, caller_phone)
        photos = DisputeService.validate_payload(issue_category, description, photos)
        now = as_utc(now or utcnow())

        OrderStateMachine.expire_if_due(db, order, now)
        DisputeService._ensure_disputable(order)

        dispute = OrderDispute(
            order_id=order.id,
            buyer_phone=order.buyer_phone,
            issue_category=issue_category,
            description=description.strip(),
            photos=photos,
            created_at=now,
        )
        if not OrderStateMachine.record_dispute(db, order, dispute, now):
            # Another actor resolved the order between our read and our write
            DisputeService._ensure_disputable(order)
            raise OrderNotDisputable(order_id=str(order.id), status=order.status)

        logger.warning(
            f"⚠️ Order {order.order_number} disputed ({issue_category}, {len(photos)} photos)"
        )
        return dispute

    @staticmethod
    def _ensure_disputable(order: Order) -> None:
        if order.status == OrderStatus.COMPLETED.value and order.completed_by == Actor.SYSTEM.value:
            raise ConfirmationWindowExpired(
                order_id=str(order.id),
                completed_at=as_utc(order.completed_at).isoformat() if order.completed_at else None,
            )
        if order.status != OrderStatus.DELIVERED.value or order.resolution != Resolution.PENDING.value:
            raise OrderNotDisputable(order_id=str(order.id), status=order.status)
