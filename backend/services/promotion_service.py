"""
Role Promotion Service - moves a CUSTOMER to a new role and creates the
matching profile in one atomic unit.

Only roles in the policy's self-service set can be requested here.
DELIVERY_AGENCY accounts are provisioned by an administrator through
provision_delivery_agency(); ADMIN is never reachable.

Atomicity:
    The profile INSERT and the conditional role UPDATE share one transaction
    (database.unit_of_work). If either fails, including a request cancelled
    mid-flight, both are rolled back. The unique user_id constraint on the
    profile tables turns a concurrent duplicate into ConflictError.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import unit_of_work
from db_models import DeliveryAgency, RiderProfile, User, VendorProfile
from domain.actors import Actor
from domain.enums import UserRole
from domain.errors import (
    ConflictError, InvalidStateError, NotFoundError, PermissionDeniedError,
    PolicyDisabledError, ValidationError,
)
from domain.policy import ADMIN_PROVISIONED_ROLES, LifecyclePolicy

logger = logging.getLogger(__name__)

PROFILE_MODELS = {
    UserRole.VENDOR: VendorProfile,
    UserRole.RIDER: RiderProfile,
}


@dataclass
class PromotionResult:
    user: User
    profile: Union[VendorProfile, RiderProfile]


class RolePromotionService:
    def __init__(self, policy: LifecyclePolicy, app_settings=None):
        self.policy = policy
        self.settings = app_settings or settings

    async def promote(
        self,
        db: AsyncSession,
        user_id: int,
        requested_role: UserRole,
        profile_data: Optional[dict] = None,
    ) -> PromotionResult:
        """
        Promote a CUSTOMER to `requested_role` and create its profile.

        Raises:
            NotFoundError: unknown user
            PolicyDisabledError: role is administrator-provisioned or not self-service
            ValidationError: role is not a promotion target, or profile data is incomplete
            InvalidStateError: user is no longer a CUSTOMER
            ConflictError: a profile of that kind already exists
        """
        try:
            target = UserRole(requested_role)
        except ValueError:
            raise ValidationError(f"Unknown role: {requested_role}", field="role")

        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User", user_id)

        if target in ADMIN_PROVISIONED_ROLES:
            raise self._disabled(target)
        if not self.policy.can_promote(UserRole.CUSTOMER, target):
            raise ValidationError(
                f"{target.value} is not a role a customer can request",
                field="role",
                code="NOT_A_PROMOTION_TARGET",
            )
        if not self.policy.is_self_service(target):
            raise self._disabled(target)

        if user.role != UserRole.CUSTOMER.value:
            raise InvalidStateError(
                f"Only customers can request a role change (current role: {user.role})",
                details={"role": user.role},
                code="ROLE_NOT_CUSTOMER",
            )

        await _ensure_no_profile(db, user_id, target)
        fields = _profile_fields(target, profile_data or {})

        try:
            async with unit_of_work(db):
                profile = PROFILE_MODELS[target](user_id=user_id, **fields)
                db.add(profile)
                await db.flush()
                await _set_role(db, user_id, target)
        except IntegrityError:
            logger.warning(f"Promotion race lost: user={user_id}, role={target.value}")
            raise ConflictError(
                f"User {user_id} already has a {target.value.lower()} profile",
                code="PROFILE_EXISTS",
            )

        await db.refresh(user)
        logger.info(f"User {user.id} promoted CUSTOMER -> {target.value} (profile {profile.id})")
        return PromotionResult(user=user, profile=profile)

    async def apply_as_rider(
        self, db: AsyncSession, user_id: int, profile_data: Optional[dict] = None
    ) -> PromotionResult:
        """Legacy rider application entry point. Refused outright when riders are not self-service."""
        if not self.policy.is_self_service(UserRole.RIDER):
            raise PolicyDisabledError(
                self.settings.rider_application_notice,
                code="RIDER_APPLICATION_DISABLED",
            )
        return await self.promote(db, user_id, UserRole.RIDER, profile_data)

    async def provision_delivery_agency(
        self,
        db: AsyncSession,
        admin: Actor,
        *,
        name: str,
        phone: str,
        email: Optional[str] = None,
        address: Optional[str] = None,
        cities_covered: Optional[list] = None,
        contact_name: Optional[str] = None,
    ) -> DeliveryAgency:
        """Create a DELIVERY_AGENCY user and its agency record. Admin only."""
        if not admin.is_admin:
            raise PermissionDeniedError("Only administrators can create delivery agencies")
        if not name or not name.strip():
            raise ValidationError("Agency name is required", field="name")
        if not phone or not phone.strip():
            raise ValidationError("Agency phone is required", field="phone")

        clauses = [User.phone == phone]
        if email:
            clauses.append(User.email == email)
        existing = await db.execute(select(User.id).where(or_(*clauses)).limit(1))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                "A user with this phone or email already exists",
                code="USER_EXISTS",
            )

        cities = [normalize_city(c) for c in (cities_covered or []) if c and c.strip()]

        try:
            async with unit_of_work(db):
                user = User(
                    name=contact_name or name,
                    phone=phone,
                    email=email,
                    role=UserRole.DELIVERY_AGENCY.value,
                    created_at=datetime.utcnow(),
                )
                db.add(user)
                await db.flush()

                agency = DeliveryAgency(
                    user_id=user.id,
                    name=name.strip(),
                    phone=phone,
                    email=email,
                    address=address,
                    cities_covered=cities,
                    is_active=True,
                    created_by_admin_id=admin.user_id,
                )
                db.add(agency)
        except IntegrityError:
            raise ConflictError(
                "A user with this phone or email already exists",
                code="USER_EXISTS",
            )

        logger.info(f"Delivery agency {agency.id} provisioned by admin {admin.user_id} (user {user.id})")
        return agency

    async def set_agency_active(
        self, db: AsyncSession, admin: Actor, agency_id: int, is_active: bool
    ) -> DeliveryAgency:
        if not admin.is_admin:
            raise PermissionDeniedError("Only administrators can change agency status")

        async with unit_of_work(db):
            agency = await db.get(DeliveryAgency, agency_id)
            if not agency:
                raise NotFoundError("DeliveryAgency", agency_id)
            agency.is_active = bool(is_active)

        logger.info(f"Delivery agency {agency_id} {'activated' if is_active else 'deactivated'} by admin {admin.user_id}")
        return agency

    def _disabled(self, role: UserRole) -> PolicyDisabledError:
        if role in ADMIN_PROVISIONED_ROLES:
            return PolicyDisabledError(
                self.settings.agency_provisioning_notice,
                details={"role": role.value},
                code="ADMIN_PROVISIONED_ROLE",
            )
        if role == UserRole.RIDER:
            return PolicyDisabledError(
                self.settings.rider_application_notice,
                details={"role": role.value},
                code="RIDER_APPLICATION_DISABLED",
            )
        return PolicyDisabledError(
            f"Self-service {role.value.lower()} registration is currently disabled; "
            "please contact an administrator.",
            details={"role": role.value},
        )


async def _ensure_no_profile(db: AsyncSession, user_id: int, role: UserRole) -> None:
    model = PROFILE_MODELS[role]
    res = await db.execute(select(model.id).where(model.user_id == user_id))
    if res.scalar_one_or_none() is not None:
        raise ConflictError(
            f"User {user_id} already has a {role.value.lower()} profile",
            code="PROFILE_EXISTS",
        )


async def _set_role(db: AsyncSession, user_id: int, role: UserRole) -> None:
    """Conditional role write: only a user still holding CUSTOMER is promoted."""
    res = await db.execute(
        update(User)
        .where(User.id == user_id, User.role == UserRole.CUSTOMER.value)
        .values(role=role.value)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise ConflictError(
            f"User {user_id} changed role during promotion",
            code="ROLE_CHANGED",
        )


def _profile_fields(role: UserRole, data: dict) -> dict:
    if role == UserRole.VENDOR:
        business_name = (data.get("business_name") or "").strip()
        city = (data.get("city") or "").strip()
        if not business_name:
            raise ValidationError("Business name is required", field="business_name")
        if not city:
            raise ValidationError("City is required", field="city")
        street = (data.get("address") or "").strip()
        return {
            "business_name": business_name,
            "business_address": f"{street}, {city}" if street else city,
            "description": data.get("description"),
        }

    return {
        "vehicle_type": (data.get("vehicle_type") or "Bike").strip(),
        "license_plate": data.get("license_plate"),
    }


def normalize_city(city: str) -> str:
    """'  nairobi ' -> 'Nairobi'"""
    return " ".join(part.capitalize() for part in city.strip().split())
