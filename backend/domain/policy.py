"""
Policy Registry - the static tables of legal state transitions and
role-promotion eligibility.

A LifecyclePolicy is immutable and side-effect free; services receive one at
construction and never consult module-level literals directly. Changing
business policy (e.g. withdrawing rider self-registration) means building a
policy with a different `self_service_roles`, nothing else.

Order flow:
    PENDING → CONFIRMED → PROCESSING → OUT_FOR_DELIVERY → DELIVERED → COMPLETED
    CANCELLED is reachable from every non-terminal state.

Delivery flow:
    SEARCHING_RIDER → (accept) → ASSIGNED → PICKED_UP → ON_THE_WAY → DELIVERED
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from domain.enums import ActorKind, DeliveryStatus, OrderStatus, UserRole


def _freeze(table: dict) -> Mapping:
    return MappingProxyType({key: frozenset(values) for key, values in table.items()})


# ── Order ───────────────────────────────────────────────────────────

ORDER_TRANSITIONS = _freeze({
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
})

ORDER_ACTOR_TRANSITIONS = MappingProxyType({
    ActorKind.CUSTOMER: _freeze({
        OrderStatus.PENDING: {OrderStatus.CANCELLED},
        OrderStatus.CONFIRMED: {OrderStatus.CANCELLED},
        OrderStatus.DELIVERED: {OrderStatus.COMPLETED},  # mark as received
    }),
    ActorKind.VENDOR: _freeze({
        OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
        OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
        OrderStatus.PROCESSING: {OrderStatus.OUT_FOR_DELIVERY},
        OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},  # self-delivery only
    }),
    ActorKind.COURIER: _freeze({
        OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    }),
    ActorKind.ADMIN: ORDER_TRANSITIONS,
})

# Cancelling from these states puts stock back on the shelf.
PRE_DISPATCH_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
})

# ── Delivery ────────────────────────────────────────────────────────

DELIVERY_TRANSITIONS = _freeze({
    DeliveryStatus.SEARCHING_RIDER: set(),  # leaves only through accept()
    DeliveryStatus.ASSIGNED: {DeliveryStatus.PICKED_UP},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.ON_THE_WAY},
    DeliveryStatus.ON_THE_WAY: {DeliveryStatus.DELIVERED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELLED: set(),
})

ADVANCEABLE_DELIVERY_STATUSES = frozenset({
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.ON_THE_WAY,
    DeliveryStatus.DELIVERED,
})

# ── Roles ───────────────────────────────────────────────────────────

PROMOTION_PATHS = _freeze({
    UserRole.CUSTOMER: {UserRole.VENDOR, UserRole.RIDER, UserRole.DELIVERY_AGENCY},
    UserRole.VENDOR: set(),
    UserRole.RIDER: set(),
    UserRole.DELIVERY_AGENCY: set(),
    UserRole.ADMIN: set(),
})

ADMIN_PROVISIONED_ROLES = frozenset({UserRole.DELIVERY_AGENCY, UserRole.ADMIN})

DELIVERY_ROLES = frozenset({UserRole.RIDER, UserRole.DELIVERY_AGENCY})

# Observed configurations of the self-service set.
PERMISSIVE_SELF_SERVICE = frozenset({UserRole.VENDOR, UserRole.RIDER})
STRICT_SELF_SERVICE = frozenset({UserRole.VENDOR})


def _parse_roles(roles: Iterable) -> frozenset:
    parsed = frozenset(UserRole(getattr(r, "value", r)) for r in roles)
    leaked = parsed & ADMIN_PROVISIONED_ROLES
    if leaked:
        names = ", ".join(sorted(r.value for r in leaked))
        raise ValueError(f"Roles {names} are administrator-provisioned and cannot be self-service")
    return parsed


@dataclass(frozen=True)
class LifecyclePolicy:
    """Immutable bundle of every lifecycle table a service needs."""

    self_service_roles: frozenset = STRICT_SELF_SERVICE
    order_transitions: Mapping = field(default_factory=lambda: ORDER_TRANSITIONS)
    order_actor_transitions: Mapping = field(default_factory=lambda: ORDER_ACTOR_TRANSITIONS)
    delivery_transitions: Mapping = field(default_factory=lambda: DELIVERY_TRANSITIONS)
    promotion_paths: Mapping = field(default_factory=lambda: PROMOTION_PATHS)

    def __post_init__(self):
        object.__setattr__(self, "self_service_roles", _parse_roles(self.self_service_roles))

    # Order

    def is_allowed(self, current: OrderStatus, target: OrderStatus) -> bool:
        return OrderStatus(target) in self.order_transitions.get(OrderStatus(current), frozenset())

    def allowed_targets(self, actor: ActorKind, current: OrderStatus) -> frozenset:
        table = self.order_actor_transitions.get(ActorKind(actor), MappingProxyType({}))
        return table.get(OrderStatus(current), frozenset())

    def actor_may(self, actor: ActorKind, current: OrderStatus, target: OrderStatus) -> bool:
        """Globally legal *and* inside the actor's slice of the matrix."""
        return (
            self.is_allowed(current, target)
            and OrderStatus(target) in self.allowed_targets(actor, current)
        )

    # Delivery

    def is_delivery_allowed(self, current: DeliveryStatus, target: DeliveryStatus) -> bool:
        return DeliveryStatus(target) in self.delivery_transitions.get(DeliveryStatus(current), frozenset())

    def delivery_targets(self, current: DeliveryStatus) -> frozenset:
        return self.delivery_transitions.get(DeliveryStatus(current), frozenset())

    # Roles

    def can_promote(self, current: UserRole, target: UserRole) -> bool:
        return UserRole(target) in self.promotion_paths.get(UserRole(current), frozenset())

    def is_self_service(self, role: UserRole) -> bool:
        return UserRole(role) in self.self_service_roles


def is_terminal_order_status(status: OrderStatus) -> bool:
    return not ORDER_TRANSITIONS.get(OrderStatus(status))


def is_terminal_delivery_status(status: DeliveryStatus) -> bool:
    return status in (DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED)


def policy_from_settings(app_settings=None) -> LifecyclePolicy:
    """Build the policy from SELF_SERVICE_ROLES."""
    if app_settings is None:
        from config import settings as app_settings
    return LifecyclePolicy(self_service_roles=app_settings.self_service_roles_list)
