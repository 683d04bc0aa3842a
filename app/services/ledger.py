"""
Ledger Store - Payment orders and their lifecycle.

Status transitions are conditional UPDATEs on status = 'pending', so a
terminal order can never regress and a transition is observed exactly once.
"""

from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Order, utc_now
from app.exceptions import DataIntegrityError
from app.models.api import OrderKind, OrderStatus
from app.models.domain import OrderData, OrderIntent

logger = get_logger(__name__)


class LedgerStore:
    """Order records backed by the orders table. Flushes only; callers commit."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger store with database session."""
        self.session = session

    async def create(self, intent: OrderIntent) -> OrderData:
        """
        Persist a new pending order.

        Raises:
            DataIntegrityError: external_order_id already recorded
        """
        order = Order(
            owner=intent.owner,
            kind=intent.kind.value,
            amount=intent.amount,
            currency=intent.currency,
            status=OrderStatus.PENDING.value,
            external_order_id=intent.external_order_id,
            package_id=intent.package_id,
            credits_granted=intent.credits_granted,
            model=intent.model,
        )
        self.session.add(order)

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise DataIntegrityError(
                f"Duplicate external order id: {intent.external_order_id}"
            ) from e

        logger.info(
            "order_recorded",
            external_order_id=intent.external_order_id,
            owner=intent.owner,
            kind=intent.kind.value,
            amount=intent.amount,
        )
        return self._order_to_domain(order)

    async def get_by_external_id(self, external_order_id: str) -> OrderData | None:
        """Get order by gateway order id."""
        order = await self._find_order(external_order_id)
        if order is None:
            return None
        return self._order_to_domain(order)

    async def mark_success(
        self, external_order_id: str, external_payment_id: str, external_signature: str | None
    ) -> bool:
        """
        Transition pending -> success.

        Returns:
            True if this call performed the transition, False if the order was
            missing or already terminal
        """
        return await self._transition(
            external_order_id,
            OrderStatus.SUCCESS,
            external_payment_id=external_payment_id,
            external_signature=external_signature,
        )

    async def mark_failed(
        self,
        external_order_id: str,
        external_payment_id: str | None = None,
        external_signature: str | None = None,
    ) -> bool:
        """Transition pending -> failed. Returns whether the transition happened."""
        return await self._transition(
            external_order_id,
            OrderStatus.FAILED,
            external_payment_id=external_payment_id,
            external_signature=external_signature,
        )

    async def list_for_owner(self, owner: str, limit: int = 50) -> list[OrderData]:
        """Most recent orders first."""
        stmt = (
            select(Order)
            .where(Order.owner == owner)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._order_to_domain(order) for order in result.scalars().all()]

    async def list_pending(self, older_than_seconds: int, limit: int = 100) -> list[OrderData]:
        """Pending orders created before the cutoff, oldest first."""
        cutoff = utc_now() - timedelta(seconds=older_than_seconds)
        stmt = (
            select(Order)
            .where(Order.status == OrderStatus.PENDING.value, Order.created_at < cutoff)
            .order_by(Order.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._order_to_domain(order) for order in result.scalars().all()]

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _find_order(self, external_order_id: str) -> Order | None:
        stmt = (
            select(Order)
            .where(Order.external_order_id == external_order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _transition(
        self,
        external_order_id: str,
        target: OrderStatus,
        external_payment_id: str | None,
        external_signature: str | None,
    ) -> bool:
        values: dict[str, object] = {"status": target.value, "updated_at": utc_now()}
        if external_payment_id is not None:
            values["external_payment_id"] = external_payment_id
        if external_signature is not None:
            values["external_signature"] = external_signature

        stmt = (
            update(Order)
            .where(
                Order.external_order_id == external_order_id,
                Order.status == OrderStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        transitioned = result.rowcount > 0

        if transitioned:
            await self.session.flush()
            logger.info(
                "order_status_changed",
                external_order_id=external_order_id,
                status=target.value,
            )
        else:
            logger.warning(
                "order_transition_skipped",
                external_order_id=external_order_id,
                target=target.value,
            )
        return transitioned

    def _order_to_domain(self, order: Order) -> OrderData:
        """Convert ORM order to domain model."""
        return OrderData(
            owner=order.owner,
            kind=OrderKind(order.kind),
            amount=order.amount,
            currency=order.currency,
            status=OrderStatus(order.status),
            external_order_id=order.external_order_id,
            external_payment_id=order.external_payment_id,
            external_signature=order.external_signature,
            package_id=order.package_id,
            credits_granted=order.credits_granted,
            model=order.model,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
