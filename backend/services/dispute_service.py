"""
Dispute Service - customer disputes against delivered orders.

A dispute's status is derived from `resolution` (domain.disputes), never
stored. One dispute per order, enforced by a unique constraint as well as
the pre-check below.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import unit_of_work
from db_models import Dispute, Order
from domain.disputes import DEFAULT_RESOLUTION, REJECTED_RESOLUTION, derive_dispute_status
from domain.enums import DisputeStatus, OrderStatus
from domain.errors import (
    ConflictError, InvalidStateError, NotFoundError, PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DISPUTABLE_ORDER_STATUS = OrderStatus.DELIVERED.value


async def create_dispute(
    db: AsyncSession,
    *,
    customer_id: int,
    order_id: int,
    reason: str,
    description: str,
) -> Dispute:
    """
    Open a dispute on a delivered order owned by the customer.

    Checks run in order: order exists, caller owns it, order was delivered,
    no dispute exists yet.
    """
    if not reason or not reason.strip():
        raise ValidationError("Reason is required", field="reason")
    if not description or not description.strip():
        raise ValidationError("Description is required", field="description")

    order = await db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    if order.customer_id != customer_id:
        raise PermissionDeniedError("You can only dispute your own orders")
    if order.status != DISPUTABLE_ORDER_STATUS:
        raise InvalidStateError(
            "Only delivered orders can be disputed",
            details={"orderId": order.id, "status": order.status},
            code="ORDER_NOT_DELIVERED",
        )

    await _ensure_no_dispute(db, order_id)

    try:
        async with unit_of_work(db):
            dispute = Dispute(
                order_id=order_id,
                customer_id=customer_id,
                reason=reason.strip(),
                description=description.strip(),
                created_at=datetime.utcnow(),
            )
            db.add(dispute)
    except IntegrityError:
        logger.warning(f"Dispute race lost on order {order_id}")
        raise _dispute_exists(order_id)

    logger.info(f"Dispute {dispute.id} opened on order {order_id} by customer {customer_id}")
    return dispute


def _dispute_exists(order_id: int) -> ConflictError:
    return ConflictError(
        "A dispute already exists for this order",
        details={"orderId": order_id},
        code="DISPUTE_EXISTS",
    )


async def _ensure_no_dispute(db: AsyncSession, order_id: int) -> None:
    existing = await db.execute(select(Dispute.id).where(Dispute.order_id == order_id))
    if existing.scalar_one_or_none() is not None:
        raise _dispute_exists(order_id)


async def list_my_disputes(db: AsyncSession, *, customer_id: int) -> list[Dispute]:
    """Newest first."""
    res = await db.execute(
        select(Dispute)
        .where(Dispute.customer_id == customer_id)
        .order_by(Dispute.created_at.desc(), Dispute.id.desc())
    )
    return res.scalars().all()


async def list_disputes(
    db: AsyncSession,
    *,
    status: Optional[DisputeStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Dispute], int]:
    """Admin listing, optionally filtered by derived status. Returns (page, total)."""
    conditions = []
    if status is not None:
        status = DisputeStatus(status)
        if status == DisputeStatus.OPEN:
            conditions.append(Dispute.resolution.is_(None))
        elif status == DisputeStatus.REJECTED:
            conditions.append(Dispute.resolution == REJECTED_RESOLUTION)
        else:
            conditions += [Dispute.resolution.is_not(None), Dispute.resolution != REJECTED_RESOLUTION]

    total = await db.scalar(select(func.count()).select_from(Dispute).where(*conditions))
    res = await db.execute(
        select(Dispute)
        .where(*conditions)
        .order_by(Dispute.created_at.desc(), Dispute.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all(), total


async def resolve_dispute(db: AsyncSession, *, dispute_id: int, notes: Optional[str] = None) -> Dispute:
    return await _close(db, dispute_id, (notes or "").strip() or DEFAULT_RESOLUTION)


async def reject_dispute(db: AsyncSession, *, dispute_id: int) -> Dispute:
    return await _close(db, dispute_id, REJECTED_RESOLUTION)


def _already_closed(dispute_id: int, status: DisputeStatus) -> InvalidStateError:
    return InvalidStateError(
        f"Dispute is already {status.value.lower()}",
        details={"disputeId": dispute_id, "status": status.value},
        code="DISPUTE_CLOSED",
    )


async def _close(db: AsyncSession, dispute_id: int, resolution: str) -> Dispute:
    async with unit_of_work(db):
        dispute = await db.get(Dispute, dispute_id)
        if not dispute:
            raise NotFoundError("Dispute", dispute_id)
        if dispute.status != DisputeStatus.OPEN:
            raise _already_closed(dispute_id, dispute.status)

        # Only an unresolved row may be closed; a concurrent close wins first
        res = await db.execute(
            update(Dispute)
            .where(Dispute.id == dispute_id, Dispute.resolution.is_(None))
            .values(resolution=resolution, resolved_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            stored = await db.scalar(select(Dispute.resolution).where(Dispute.id == dispute_id))
            logger.warning(f"Dispute {dispute_id}: lost close race (stored resolution {stored!r})")
            raise _already_closed(dispute_id, derive_dispute_status(stored))

    await db.refresh(dispute)
    logger.info(f"Dispute {dispute_id} closed as {dispute.status.value}")
    return dispute


def dispute_to_dict(dispute: Dispute) -> dict:
    return {
        "id": dispute.id,
        "order_id": dispute.order_id,
        "customer_id": dispute.customer_id,
        "reason": dispute.reason,
        "description": dispute.description,
        "status": dispute.status.value,
        "resolution": dispute.resolution,
        "resolved_at": dispute.resolved_at.isoformat() if dispute.resolved_at else None,
        "created_at": dispute.created_at.isoformat() if dispute.created_at else None,
    }
