"""
Customer dispute endpoints.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import require_actor
from domain.actors import Actor
from domain.responses import success_response
from services import dispute_service

router = APIRouter(prefix="/disputes", tags=["disputes"])


class DisputeCreateRequest(BaseModel):
    order_id: int = Field(..., gt=0, alias="orderId")
    reason: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)


@router.post("")
async def open_dispute(
    body: DisputeCreateRequest,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.create_dispute(
        db,
        customer_id=actor.user_id,
        order_id=body.order_id,
        reason=body.reason,
        description=body.description,
    )
    return success_response(dispute_service.dispute_to_dict(dispute))


@router.get("/mine")
async def list_my_disputes(
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    disputes = await dispute_service.list_my_disputes(db, customer_id=actor.user_id)
    return success_response([dispute_service.dispute_to_dict(d) for d in disputes])
