"""
Order Lifecycle Service - order placement and the order status state machine.

Every status change goes through apply_transition(), which:
  - checks the policy (global table + the actor's slice of the matrix)
  - writes conditionally: UPDATE ... WHERE status = <expected prior status>,
    so of two concurrent attempts exactly one wins and the other gets
    InvalidTransitionError
  - runs the side effects of the target state in the caller's transaction

Cancellation is idempotent: replaying a CANCELLED request against an order
that is already CANCELLED returns the order untouched (no second restock,
no second refund flag).
"""
import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import unit_of_work
from db_models import Delivery, Order, OrderItem, Product, VendorProfile
from domain.actors import Actor
from domain.enums import (
    ActorKind, DeliveryMethod, DeliveryStatus, OrderStatus, PaymentMethod,
    PaymentStatus, UserRole,
)
from domain.errors import (
    InvalidStateError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError, ValidationError,
)
from domain.policy import LifecyclePolicy, PRE_DISPATCH_STATUSES

logger = logging.getLogger(__name__)

MAX_ITEMS_PER_ORDER = 50


class OrderLifecycleService:
    """Owns Order.status. Built with the LifecyclePolicy it enforces."""

    def __init__(self, policy: LifecyclePolicy):
        self.policy = policy

    # ── Reads ───────────────────────────────────────────────────────

    async def get_order(self, db: AsyncSession, order_id: int) -> Order:
        order = await db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    async def list_customer_orders(
        self,
        db: AsyncSession,
        *,
        customer_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """Newest first. Returns (page, total)."""
        total = await db.scalar(
            select(func.count()).select_from(Order).where(Order.customer_id == customer_id)
        )
        res = await db.execute(
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return res.scalars().all(), total or 0

    # ── Checkout ────────────────────────────────────────────────────

    async def place_order(
        self,
        db: AsyncSession,
        *,
        customer_id: int,
        items: list[dict],
        payment_method: PaymentMethod,
        delivery_method: DeliveryMethod = DeliveryMethod.VENDOR_DELIVERY,
        delivery_address: str | None = None,
        delivery_city: str | None = None,
    ) -> Order:
        """
        Create a PENDING order and take its items out of stock.

        items: [{product_id:int, quantity:int}]
        """
        if not items:
            raise ValidationError("Order must contain at least one item", field="items")
        if len(items) > MAX_ITEMS_PER_ORDER:
            raise ValidationError(f"At most {MAX_ITEMS_PER_ORDER} lines per order", field="items")

        payment_method = PaymentMethod(payment_method)
        delivery_method = DeliveryMethod(delivery_method)

        async with unit_of_work(db):
            product_ids = [int(i["product_id"]) for i in items]
            res = await db.execute(select(Product).where(Product.id.in_(product_ids)))
            products = {p.id: p for p in res.scalars().all()}

            total = 0.0
            lines = []
            for i in items:
                pid = int(i["product_id"])
                qty = int(i.get("quantity", 1))
                if qty <= 0:
                    raise ValidationError("Quantity must be positive", field="quantity")
                product = products.get(pid)
                if not product:
                    raise NotFoundError("Product", pid)

                # Conditional decrement: never drives stock negative under concurrency
                taken = await db.execute(
                    update(Product)
                    .where(Product.id == pid, Product.stock >= qty)
                    .values(stock=Product.stock - qty)
                    .execution_options(synchronize_session="fetch")
                )
                if taken.rowcount == 0:
                    raise InvalidStateError(
                        f"Insufficient stock for product: {product.name}",
                        details={"productId": pid, "requested": qty},
                        code="INSUFFICIENT_STOCK",
                    )
                total += product.price * qty
                lines.append((pid, qty, product.price))

            order = Order(
                customer_id=customer_id,
                status=OrderStatus.PENDING.value,
                payment_method=payment_method.value,
                payment_status=PaymentStatus.INITIATED.value,
                delivery_method=delivery_method.value,
                total_amount=round(total, 2),
                delivery_address=delivery_address,
                delivery_city=delivery_city,
                created_at=datetime.utcnow(),
            )
            db.add(order)
            await db.flush()

            for pid, qty, unit_price in lines:
                db.add(OrderItem(order_id=order.id, product_id=pid, quantity=qty, unit_price=unit_price))

        logger.info(
            f"[Order Created] id={order.id}, customer={customer_id}, "
            f"paymentMethod={payment_method.value}, deliveryMethod={delivery_method.value}, "
            f"total={order.total_amount}"
        )
        return order

    async def record_payment(self, db: AsyncSession, order_id: int, actor: Actor) -> Order:
        """Attach a confirmed online payment to the order (tag only, no gateway)."""
        async with unit_of_work(db):
            order = await self.get_order(db, order_id)
            if order.customer_id != actor.user_id and not actor.is_admin:
                raise PermissionDeniedError("You can only pay for your own orders")
            if order.payment_method == PaymentMethod.COD.value:
                raise InvalidStateError(
                    "Cash-on-delivery orders are settled when the order is completed",
                    code="COD_SETTLED_ON_COMPLETION",
                )
            if order.status == OrderStatus.CANCELLED.value:
                raise InvalidStateError("Cannot pay for a cancelled order", code="ORDER_ALREADY_CANCELLED")

            res = await db.execute(
                update(Order)
                .where(Order.id == order.id, Order.payment_status == PaymentStatus.INITIATED.value)
                .values(payment_status=PaymentStatus.PAID.value)
                .execution_options(synchronize_session="fetch")
            )
            if res.rowcount == 0:
                logger.info(f"Order {order.id}: payment already recorded")

        await db.refresh(order)
        return order

    # ── State machine ───────────────────────────────────────────────

    async def transition(
        self,
        db: AsyncSession,
        order_id: int,
        actor: Actor,
        target_status: OrderStatus,
        *,
        reason: str | None = None,
    ) -> Order:
        """
        Move an order to `target_status` on behalf of `actor`.

        Raises:
            NotFoundError: unknown order
            PermissionDeniedError: actor has no rights over this order
            InvalidTransitionError: (from, to) is not allowed for this actor
        """
        target = OrderStatus(target_status)

        async with unit_of_work(db):
            order = await self.get_order(db, order_id)
            kinds = await self._actor_kinds(db, order, actor)
            kind = self._pick_kind(order, kinds, target)
            order = await self.apply_transition(
                db, order, kind, target, actor_id=actor.user_id, reason=reason
            )

        return order

    async def apply_transition(
        self,
        db: AsyncSession,
        order: Order,
        kind: ActorKind,
        target: OrderStatus,
        *,
        actor_id: int | None = None,
        reason: str | None = None,
    ) -> Order:
        """
        Transition core shared with the delivery saga.

        Runs inside the caller's transaction; does not commit.
        """
        target = OrderStatus(target)
        current = OrderStatus(order.status)

        if current == OrderStatus.CANCELLED and target == OrderStatus.CANCELLED:
            logger.info(f"Order {order.id}: cancellation replay ignored")
            return order

        if not self._may(order, kind, current, target):
            logger.warning(
                f"Order {order.id}: rejected {current.value} -> {target.value} by {kind.value} {actor_id}"
            )
            raise InvalidTransitionError(
                "order",
                current,
                target,
                allowed=sorted(self._targets(order, kind, current), key=lambda s: s.value),
                actor=kind,
                code="INVALID_ORDER_TRANSITION",
            )

        res = await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current.value)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            stored = await db.scalar(select(Order.status).where(Order.id == order.id))
            if stored == OrderStatus.CANCELLED.value and target == OrderStatus.CANCELLED:
                await db.refresh(order)
                logger.info(f"Order {order.id}: concurrent cancellation already applied")
                return order
            logger.warning(
                f"Order {order.id}: lost update race ({current.value} -> {target.value}, stored {stored})"
            )
            raise InvalidTransitionError(
                "order", stored or current, target, actor=kind, code="INVALID_ORDER_TRANSITION"
            )
        order.status = target.value

        await self._on_enter(db, order, current, target, reason)
        logger.info(f"Order {order.id}: {current.value} -> {target.value} by {kind.value} {actor_id}")
        return order

    # ── Internals ───────────────────────────────────────────────────

    async def _actor_kinds(self, db: AsyncSession, order: Order, actor: Actor) -> list[ActorKind]:
        """Every capacity in which `actor` may act on this particular order."""
        if actor.is_admin:
            return [ActorKind.ADMIN]

        kinds = []
        if order.customer_id == actor.user_id:
            kinds.append(ActorKind.CUSTOMER)
        if actor.role == UserRole.VENDOR and await self._sells_in(db, order, actor.user_id):
            kinds.append(ActorKind.VENDOR)

        if not kinds:
            raise PermissionDeniedError(
                "You do not have access to this order",
                details={"orderId": order.id},
            )
        return kinds

    def _pick_kind(self, order: Order, kinds: list[ActorKind], target: OrderStatus) -> ActorKind:
        current = OrderStatus(order.status)
        for kind in kinds:
            if self._may(order, kind, current, target):
                return kind
        return kinds[0]

    def _targets(self, order: Order, kind: ActorKind, current: OrderStatus) -> frozenset:
        targets = self.policy.allowed_targets(kind, current)
        # Platform couriers, not vendors, confirm delivery of platform-delivered orders
        if kind == ActorKind.VENDOR and order.delivery_method == DeliveryMethod.PLATFORM_DELIVERY.value:
            targets = targets - {OrderStatus.DELIVERED}
        return targets

    def _may(self, order: Order, kind: ActorKind, current: OrderStatus, target: OrderStatus) -> bool:
        return self.policy.is_allowed(current, target) and target in self._targets(order, kind, current)

    async def _sells_in(self, db: AsyncSession, order: Order, user_id: int) -> bool:
        res = await db.execute(
            select(OrderItem.id)
            .join(Product, OrderItem.product_id == Product.id)
            .join(VendorProfile, Product.vendor_profile_id == VendorProfile.id)
            .where(OrderItem.order_id == order.id, VendorProfile.user_id == user_id)
            .limit(1)
        )
        return res.scalar_one_or_none() is not None

    async def _on_enter(
        self,
        db: AsyncSession,
        order: Order,
        previous: OrderStatus,
        target: OrderStatus,
        reason: str | None,
    ) -> None:
        now = datetime.utcnow()

        if target == OrderStatus.CONFIRMED:
            order.confirmed_at = now

        elif target == OrderStatus.OUT_FOR_DELIVERY:
            if order.delivery_method == DeliveryMethod.PLATFORM_DELIVERY.value:
                await self._open_delivery(db, order)

        elif target == OrderStatus.DELIVERED:
            order.delivered_at = now

        elif target == OrderStatus.COMPLETED:
            order.completed_at = now
            if order.payment_method == PaymentMethod.COD.value:
                order.payment_status = PaymentStatus.PAID.value

        elif target == OrderStatus.CANCELLED:
            order.cancelled_at = now
            order.cancel_reason = reason
            if previous in PRE_DISPATCH_STATUSES:
                await self._restock(db, order)
            if order.payment_status == PaymentStatus.PAID.value:
                order.payment_status = PaymentStatus.REFUND_PENDING.value
            else:
                order.payment_status = PaymentStatus.VOIDED.value
            await db.execute(
                update(Delivery)
                .where(
                    Delivery.order_id == order.id,
                    Delivery.status.not_in([DeliveryStatus.DELIVERED.value, DeliveryStatus.CANCELLED.value]),
                )
                .values(status=DeliveryStatus.CANCELLED.value)
                .execution_options(synchronize_session="fetch")
            )

        await db.flush()

    async def _open_delivery(self, db: AsyncSession, order: Order) -> None:
        existing = await db.execute(select(Delivery.id).where(Delivery.order_id == order.id))
        if existing.scalar_one_or_none() is not None:
            return
        db.add(
            Delivery(
                order_id=order.id,
                status=DeliveryStatus.SEARCHING_RIDER.value,
                created_at=datetime.utcnow(),
            )
        )
        logger.info(f"Order {order.id}: delivery opened, searching for a courier")

    async def _restock(self, db: AsyncSession, order: Order) -> None:
        res = await db.execute(select(OrderItem).where(OrderItem.order_id == order.id))
        for item in res.scalars().all():
            await db.execute(
                update(Product)
                .where(Product.id == item.product_id)
                .values(stock=Product.stock + item.quantity)
                .execution_options(synchronize_session="fetch")
            )


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "customer_id": order.customer_id,
        "status": order.status,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "delivery_method": order.delivery_method,
        "total_amount": order.total_amount,
        "delivery_address": order.delivery_address,
        "delivery_city": order.delivery_city,
        "cancel_reason": order.cancel_reason,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "confirmed_at": order.confirmed_at.isoformat() if order.confirmed_at else None,
        "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
        "completed_at": order.completed_at.isoformat() if order.completed_at else None,
        "cancelled_at": order.cancelled_at.isoformat() if order.cancelled_at else None,
    }
