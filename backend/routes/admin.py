"""
Administrator endpoints - delivery agency provisioning and dispute handling.
"""

import logging
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, get_promotion_service, pagination_params, require_admin
from domain.actors import Actor
from domain.enums import DisputeStatus
from domain.responses import paginated_response, success_response
from services import dispute_service
from services.promotion_service import RolePromotionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


class AgencyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=5, max_length=20)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = Field(default=None, max_length=500)
    cities_covered: list[str] = Field(default_factory=list, alias="citiesCovered")
    contact_name: str | None = Field(default=None, alias="contactName", max_length=120)


class AgencyStatusRequest(BaseModel):
    is_active: bool = Field(..., alias="isActive")


class ResolveDisputeRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


def _agency_dict(agency) -> dict:
    return {
        "id": agency.id,
        "user_id": agency.user_id,
        "name": agency.name,
        "phone": agency.phone,
        "email": agency.email,
        "address": agency.address,
        "cities_covered": agency.cities_covered or [],
        "is_active": agency.is_active,
    }


@router.post("/delivery-agencies")
async def create_delivery_agency(
    body: AgencyCreateRequest,
    admin: Actor = Depends(require_admin),
    service: RolePromotionService = Depends(get_promotion_service),
    db: AsyncSession = Depends(get_db),
):
    agency = await service.provision_delivery_agency(
        db,
        admin,
        name=body.name,
        phone=body.phone,
        email=body.email,
        address=body.address,
        cities_covered=body.cities_covered,
        contact_name=body.contact_name,
    )
    return success_response(_agency_dict(agency))


@router.patch("/delivery-agencies/{agency_id}")
async def update_delivery_agency(
    agency_id: int,
    body: AgencyStatusRequest,
    admin: Actor = Depends(require_admin),
    service: RolePromotionService = Depends(get_promotion_service),
    db: AsyncSession = Depends(get_db),
):
    agency = await service.set_agency_active(db, admin, agency_id, body.is_active)
    return success_response(_agency_dict(agency))


@router.get("/disputes")
async def list_disputes(
    status: DisputeStatus | None = Query(None),
    admin: Actor = Depends(require_admin),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    disputes, total = await dispute_service.list_disputes(
        db, status=status, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [dispute_service.dispute_to_dict(d) for d in disputes],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.post("/disputes/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: int,
    body: ResolveDisputeRequest | None = None,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.resolve_dispute(
        db, dispute_id=dispute_id, notes=body.notes if body else None
    )
    logger.info(f"Admin {admin.user_id} resolved dispute {dispute_id}")
    return success_response(dispute_service.dispute_to_dict(dispute))


@router.post("/disputes/{dispute_id}/reject")
async def reject_dispute(
    dispute_id: int,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.reject_dispute(db, dispute_id=dispute_id)
    logger.info(f"Admin {admin.user_id} rejected dispute {dispute_id}")
    return success_response(dispute_service.dispute_to_dict(dispute))
