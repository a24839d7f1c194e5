"""
Courier endpoints - open jobs, accepted jobs, accept, advance.
"""

import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, get_delivery_service, pagination_params, require_courier
from domain.actors import Actor
from domain.responses import paginated_response, success_response
from services.delivery_service import DeliveryStatusService, delivery_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/deliveries", tags=["deliveries"])


class DeliveryStatusRequest(BaseModel):
    # Unknown targets are refused by the service as invalid transitions
    status: str = Field(..., min_length=1, max_length=30)


@router.get("/available")
async def list_available_jobs(
    actor: Actor = Depends(require_courier),
    page: Pagination = Depends(pagination_params),
    service: DeliveryStatusService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db),
):
    jobs = await service.list_available(db, limit=page["limit"], offset=page["offset"])
    return paginated_response(
        [delivery_to_dict(d) for d in jobs],
        limit=page["limit"],
        offset=page["offset"],
    )


@router.get("/mine")
async def list_my_jobs(
    actor: Actor = Depends(require_courier),
    service: DeliveryStatusService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db),
):
    jobs = await service.list_assigned(db, actor.user_id)
    return success_response([delivery_to_dict(d) for d in jobs])


@router.post("/{delivery_id}/accept")
async def accept_job(
    delivery_id: int,
    actor: Actor = Depends(require_courier),
    service: DeliveryStatusService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db),
):
    delivery = await service.accept(db, delivery_id, actor)
    return success_response(delivery_to_dict(delivery))


@router.patch("/{delivery_id}/status")
async def advance_delivery(
    delivery_id: int,
    body: DeliveryStatusRequest,
    actor: Actor = Depends(require_courier),
    service: DeliveryStatusService = Depends(get_delivery_service),
    db: AsyncSession = Depends(get_db),
):
    delivery = await service.advance(db, delivery_id, actor.user_id, body.status.upper())
    return success_response(delivery_to_dict(delivery))
