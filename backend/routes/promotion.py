"""
Self-service role promotion endpoints.

POST /me/promotion  - generic: {role, ...profile fields}
POST /vendor/apply  - vendor application (always available while VENDOR is self-service)
POST /rider/apply   - rider application; answers with a redirect notice when
                      riders are onboarded by administrators instead
"""

import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import get_promotion_service, require_actor
from domain.actors import Actor
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from services.promotion_service import PromotionResult, RolePromotionService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["promotion"])

_promotion_limit = rate_limit(settings.promotion_rate_limit, settings.promotion_rate_window_seconds)


class VendorApplyRequest(BaseModel):
    business_name: str = Field(..., alias="businessName", min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    address: str | None = Field(default=None, max_length=500)
    description: str | None = Field(default=None, max_length=2000)


class RiderApplyRequest(BaseModel):
    vehicle_type: str | None = Field(default=None, alias="vehicleType", max_length=40)
    plate_number: str | None = Field(default=None, alias="plateNumber", max_length=40)


class PromotionRequest(BaseModel):
    role: str = Field(..., min_length=1, max_length=20)
    business_name: str | None = Field(default=None, alias="businessName", max_length=200)
    city: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=500)
    description: str | None = Field(default=None, max_length=2000)
    vehicle_type: str | None = Field(default=None, alias="vehicleType", max_length=40)
    plate_number: str | None = Field(default=None, alias="plateNumber", max_length=40)


def _profile_data(body) -> dict:
    data = body.model_dump(exclude_none=True)
    if "plate_number" in data:
        data["license_plate"] = data.pop("plate_number")
    data.pop("role", None)
    return data


def _result_dict(result: PromotionResult) -> dict:
    user = result.user
    profile = result.profile
    profile_out = {"id": profile.id, "user_id": profile.user_id}
    for attr in ("business_name", "business_address", "description", "vehicle_type", "license_plate"):
        if hasattr(profile, attr):
            profile_out[attr] = getattr(profile, attr)
    return {
        "user": {"id": user.id, "name": user.name, "role": user.role},
        "profile": profile_out,
    }


@router.post("/me/promotion", dependencies=[Depends(_promotion_limit)])
async def request_promotion(
    body: PromotionRequest,
    actor: Actor = Depends(require_actor),
    service: RolePromotionService = Depends(get_promotion_service),
    db: AsyncSession = Depends(get_db),
):
    result = await service.promote(db, actor.user_id, body.role.upper(), _profile_data(body))
    return success_response(_result_dict(result))


@router.post("/vendor/apply", dependencies=[Depends(_promotion_limit)])
async def apply_as_vendor(
    body: VendorApplyRequest,
    actor: Actor = Depends(require_actor),
    service: RolePromotionService = Depends(get_promotion_service),
    db: AsyncSession = Depends(get_db),
):
    result = await service.promote(db, actor.user_id, "VENDOR", _profile_data(body))
    return success_response(_result_dict(result))


@router.post("/rider/apply", dependencies=[Depends(_promotion_limit)])
async def apply_as_rider(
    body: RiderApplyRequest,
    actor: Actor = Depends(require_actor),
    service: RolePromotionService = Depends(get_promotion_service),
    db: AsyncSession = Depends(get_db),
):
    result = await service.apply_as_rider(db, actor.user_id, _profile_data(body))
    return success_response(_result_dict(result))
