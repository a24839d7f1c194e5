"""
Order endpoints - checkout, customer listing, status changes, payment tag.
"""

import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, get_order_service, pagination_params, require_actor, require_customer
from domain.actors import Actor
from domain.enums import DeliveryMethod, OrderStatus, PaymentMethod
from domain.responses import paginated_response, success_response
from services.order_service import OrderLifecycleService, order_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


class OrderLine(BaseModel):
    product_id: int = Field(..., gt=0, alias="productId")
    quantity: int = Field(1, ge=1, le=100)


class OrderCreateRequest(BaseModel):
    items: list[OrderLine] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    delivery_method: DeliveryMethod = Field(DeliveryMethod.VENDOR_DELIVERY, alias="deliveryMethod")
    delivery_address: str | None = Field(default=None, alias="deliveryAddress", max_length=500)
    delivery_city: str | None = Field(default=None, alias="deliveryCity", max_length=100)


class OrderStatusRequest(BaseModel):
    status: OrderStatus
    reason: str | None = Field(default=None, max_length=500)


@router.post("")
async def place_order(
    body: OrderCreateRequest,
    actor: Actor = Depends(require_customer),
    service: OrderLifecycleService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.place_order(
        db,
        customer_id=actor.user_id,
        items=[line.model_dump() for line in body.items],
        payment_method=body.payment_method,
        delivery_method=body.delivery_method,
        delivery_address=body.delivery_address,
        delivery_city=body.delivery_city,
    )
    return success_response(order_to_dict(order))


@router.get("")
async def list_my_orders(
    actor: Actor = Depends(require_actor),
    page: Pagination = Depends(pagination_params),
    service: OrderLifecycleService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await service.list_customer_orders(
        db, customer_id=actor.user_id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [order_to_dict(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.patch("/{order_id}/status")
async def change_order_status(
    order_id: int,
    body: OrderStatusRequest,
    actor: Actor = Depends(require_actor),
    service: OrderLifecycleService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.transition(db, order_id, actor, body.status, reason=body.reason)
    return success_response(order_to_dict(order))


@router.post("/{order_id}/payment")
async def record_payment(
    order_id: int,
    actor: Actor = Depends(require_actor),
    service: OrderLifecycleService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.record_payment(db, order_id, actor)
    return success_response(order_to_dict(order))
