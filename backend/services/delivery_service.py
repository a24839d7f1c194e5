"""
Delivery Status Service - courier-facing delivery state machine.

A courier (rider or delivery agency user) accepts an open delivery, then
advances it PICKED_UP → ON_THE_WAY → DELIVERED. Reaching DELIVERED also
moves the parent order to DELIVERED in the same transaction; if the order
cannot follow, nothing is written and the delivery stays ON_THE_WAY.
"""
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import unit_of_work
from db_models import DeliveryAgency, Delivery, Order, User
from domain.actors import Actor
from domain.enums import ActorKind, DeliveryStatus, OrderStatus
from domain.errors import (
    ConflictError, InvalidStateError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError,
)
from domain.policy import ADVANCEABLE_DELIVERY_STATUSES, DELIVERY_ROLES, LifecyclePolicy
from services.order_service import OrderLifecycleService

logger = logging.getLogger(__name__)


class DeliveryStatusService:
    def __init__(self, policy: LifecyclePolicy, orders: OrderLifecycleService | None = None):
        self.policy = policy
        self.orders = orders or OrderLifecycleService(policy)

    async def list_available(self, db: AsyncSession, *, limit: int = 50, offset: int = 0) -> list[Delivery]:
        """Open jobs: searching for a courier and not yet taken."""
        res = await db.execute(
            select(Delivery)
            .where(
                Delivery.status == DeliveryStatus.SEARCHING_RIDER.value,
                Delivery.assigned_actor_id.is_(None),
            )
            .order_by(Delivery.created_at.asc(), Delivery.id.asc())
            .limit(limit)
            .offset(offset)
        )
        return res.scalars().all()

    async def list_assigned(self, db: AsyncSession, actor_id: int) -> list[Delivery]:
        res = await db.execute(
            select(Delivery)
            .where(Delivery.assigned_actor_id == actor_id)
            .order_by(Delivery.created_at.desc(), Delivery.id.desc())
        )
        return res.scalars().all()

    async def accept(self, db: AsyncSession, delivery_id: int, actor: Actor) -> Delivery:
        """
        Take an open delivery. Of two concurrent accepts, one wins; the other
        gets ConflictError(JOB_ALREADY_ASSIGNED).
        """
        if actor.role not in DELIVERY_ROLES:
            raise PermissionDeniedError(
                "Only riders and delivery agencies can accept deliveries",
                code="NOT_DELIVERY_ACTOR",
            )

        async with unit_of_work(db):
            await self._ensure_active_courier(db, actor.user_id)
            delivery = await self._load(db, delivery_id)
            self._ensure_open(delivery)

            res = await db.execute(
                update(Delivery)
                .where(
                    Delivery.id == delivery.id,
                    Delivery.status == DeliveryStatus.SEARCHING_RIDER.value,
                    Delivery.assigned_actor_id.is_(None),
                )
                .values(
                    status=DeliveryStatus.ASSIGNED.value,
                    assigned_actor_id=actor.user_id,
                    assigned_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                logger.warning(f"Delivery {delivery.id}: accept race lost by user {actor.user_id}")
                raise ConflictError(
                    "This delivery has already been accepted by another courier",
                    details={"deliveryId": delivery.id},
                    code="JOB_ALREADY_ASSIGNED",
                )

        await db.refresh(delivery)
        logger.info(f"Delivery {delivery.id} accepted by user {actor.user_id}")
        return delivery

    async def advance(
        self,
        db: AsyncSession,
        delivery_id: int,
        actor_id: int,
        target_status: DeliveryStatus,
    ) -> Delivery:
        """
        Move an assigned delivery one step forward.

        Raises:
            NotFoundError: unknown delivery
            PermissionDeniedError: delivery is not assigned to actor_id, or the agency is inactive
            InvalidTransitionError: target outside {PICKED_UP, ON_THE_WAY, DELIVERED},
                not adjacent to the current status, or (for DELIVERED) the
                parent order cannot become DELIVERED
        """
        async with unit_of_work(db):
            delivery = await self._load(db, delivery_id)
            if delivery.assigned_actor_id != actor_id:
                raise PermissionDeniedError(
                    "This delivery is not assigned to you",
                    details={"deliveryId": delivery.id},
                    code="NOT_ASSIGNED_AGENCY",
                )
            await self._ensure_active_courier(db, actor_id)

            current = DeliveryStatus(delivery.status)
            target = self._parse_target(current, target_status)
            if not self.policy.is_delivery_allowed(current, target):
                raise InvalidTransitionError(
                    "delivery",
                    current,
                    target,
                    allowed=sorted(self.policy.delivery_targets(current), key=lambda s: s.value),
                    code="INVALID_DELIVERY_TRANSITION",
                )

            now = datetime.utcnow()
            values = {"status": target.value}
            if target == DeliveryStatus.PICKED_UP:
                values["picked_up_at"] = now
            elif target == DeliveryStatus.DELIVERED:
                values["delivered_at"] = now

            res = await db.execute(
                update(Delivery)
                .where(Delivery.id == delivery.id, Delivery.status == current.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                stored = await db.scalar(select(Delivery.status).where(Delivery.id == delivery.id))
                raise InvalidTransitionError(
                    "delivery", stored or current, target, code="INVALID_DELIVERY_TRANSITION"
                )

            if target == DeliveryStatus.DELIVERED:
                order = await db.get(Order, delivery.order_id)
                if not order:
                    raise NotFoundError("Order", delivery.order_id)
                await self.orders.apply_transition(
                    db, order, ActorKind.COURIER, OrderStatus.DELIVERED, actor_id=actor_id
                )

        await db.refresh(delivery)
        logger.info(f"Delivery {delivery.id}: {current.value} -> {target.value} by user {actor_id}")
        return delivery

    # ── Internals ───────────────────────────────────────────────────

    async def _load(self, db: AsyncSession, delivery_id: int) -> Delivery:
        delivery = await db.get(Delivery, delivery_id)
        if not delivery:
            raise NotFoundError("Delivery", delivery_id)
        return delivery

    async def _ensure_active_courier(self, db: AsyncSession, user_id: int) -> None:
        user = await db.get(User, user_id)
        if not user or not user.is_active:
            raise PermissionDeniedError("Account is inactive", code="ACCOUNT_INACTIVE")
        res = await db.execute(select(DeliveryAgency.is_active).where(DeliveryAgency.user_id == user_id))
        agency_active = res.scalar_one_or_none()
        if agency_active is False:
            raise PermissionDeniedError(
                "Your delivery agency is inactive",
                code="AGENCY_INACTIVE",
            )

    def _ensure_open(self, delivery: Delivery) -> None:
        if delivery.assigned_actor_id is not None:
            raise ConflictError(
                "This delivery has already been accepted by another courier",
                details={"deliveryId": delivery.id},
                code="JOB_ALREADY_ASSIGNED",
            )
        if delivery.status != DeliveryStatus.SEARCHING_RIDER.value:
            raise InvalidStateError(
                f"Delivery is not open for acceptance (status: {delivery.status})",
                details={"deliveryId": delivery.id, "status": delivery.status},
                code="JOB_NOT_OPEN",
            )

    def _parse_target(self, current: DeliveryStatus, target_status) -> DeliveryStatus:
        try:
            target = DeliveryStatus(target_status)
        except ValueError:
            target = None
        if target not in ADVANCEABLE_DELIVERY_STATUSES:
            raise InvalidTransitionError(
                "delivery",
                current,
                getattr(target_status, "value", target_status),
                allowed=sorted(ADVANCEABLE_DELIVERY_STATUSES, key=lambda s: s.value),
                code="INVALID_DELIVERY_TRANSITION",
            )
        return target


def delivery_to_dict(delivery: Delivery) -> dict:
    return {
        "id": delivery.id,
        "order_id": delivery.order_id,
        "assigned_actor_id": delivery.assigned_actor_id,
        "status": delivery.status,
        "assigned_at": delivery.assigned_at.isoformat() if delivery.assigned_at else None,
        "picked_up_at": delivery.picked_up_at.isoformat() if delivery.picked_up_at else None,
        "delivered_at": delivery.delivered_at.isoformat() if delivery.delivered_at else None,
        "created_at": delivery.created_at.isoformat() if delivery.created_at else None,
    }
