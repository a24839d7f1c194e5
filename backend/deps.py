"""
Shared FastAPI dependencies.

Centralizes the DB session, the authenticated Actor, role guards, pagination
and the lifecycle services (all built from one configured LifecyclePolicy).
"""

from __future__ import annotations

from functools import lru_cache
from typing import TypedDict

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from domain.actors import Actor
from domain.enums import UserRole
from domain.errors import PermissionDeniedError, UnauthorizedError
from domain.policy import LifecyclePolicy, policy_from_settings
from middleware.auth import require_user_id
from services.delivery_service import DeliveryStatusService
from services.order_service import OrderLifecycleService
from services.promotion_service import RolePromotionService


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


# ── Policy & services ───────────────────────────────────────────────

@lru_cache(maxsize=1)
def get_policy() -> LifecyclePolicy:
    return policy_from_settings()


def get_promotion_service(policy: LifecyclePolicy = Depends(get_policy)) -> RolePromotionService:
    return RolePromotionService(policy)


def get_order_service(policy: LifecyclePolicy = Depends(get_policy)) -> OrderLifecycleService:
    return OrderLifecycleService(policy)


def get_delivery_service(
    policy: LifecyclePolicy = Depends(get_policy),
    orders: OrderLifecycleService = Depends(get_order_service),
) -> DeliveryStatusService:
    return DeliveryStatusService(policy, orders)


# ── Auth guards ─────────────────────────────────────────────────────

async def require_actor(
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """
    Resolve the token subject to a live Actor.

    The role comes from the database, not the token, so a promotion takes
    effect on the next request without re-issuing tokens.
    """
    user = await db.get(User, user_id)
    if not user:
        raise UnauthorizedError("Account not found for access token.")
    if not user.is_active:
        raise PermissionDeniedError("Account is inactive.", code="ACCOUNT_INACTIVE")
    return Actor(user_id=user.id, role=UserRole(user.role))


def require_role(*roles: UserRole):
    """Dependency factory: the actor must hold one of `roles`."""
    allowed = frozenset(UserRole(r) for r in roles)

    async def _guard(actor: Actor = Depends(require_actor)) -> Actor:
        if actor.role not in allowed:
            names = " or ".join(sorted(r.value for r in allowed))
            raise PermissionDeniedError(f"{names} role required for this endpoint.")
        return actor

    return _guard


require_admin = require_role(UserRole.ADMIN)
require_customer = require_role(UserRole.CUSTOMER)
require_courier = require_role(UserRole.RIDER, UserRole.DELIVERY_AGENCY)
