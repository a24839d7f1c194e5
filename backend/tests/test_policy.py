"""
Tests for the Policy Registry (domain/policy.py).
"""
import pytest

from domain.enums import ActorKind, DeliveryStatus, OrderStatus, UserRole
from domain.policy import (
    ADVANCEABLE_DELIVERY_STATUSES,
    LifecyclePolicy,
    ORDER_TRANSITIONS,
    PERMISSIVE_SELF_SERVICE,
    STRICT_SELF_SERVICE,
    is_terminal_delivery_status,
    is_terminal_order_status,
    policy_from_settings,
)


@pytest.fixture
def strict():
    return LifecyclePolicy()


class TestOrderTable:

    @pytest.mark.unit
    @pytest.mark.parametrize("current,target", [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
        (OrderStatus.PROCESSING, OrderStatus.OUT_FOR_DELIVERY),
        (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
        (OrderStatus.DELIVERED, OrderStatus.COMPLETED),
    ])
    def test_forward_edges_allowed(self, strict, current, target):
        assert strict.is_allowed(current, target)

    @pytest.mark.unit
    def test_cancel_reachable_from_every_non_terminal_state(self, strict):
        for status in OrderStatus:
            if is_terminal_order_status(status):
                continue
            assert strict.is_allowed(status, OrderStatus.CANCELLED), status

    @pytest.mark.unit
    def test_no_skipping_or_reversal(self, strict):
        assert not strict.is_allowed(OrderStatus.PENDING, OrderStatus.DELIVERED)
        assert not strict.is_allowed(OrderStatus.DELIVERED, OrderStatus.PENDING)
        assert not strict.is_allowed(OrderStatus.CONFIRMED, OrderStatus.CONFIRMED)

    @pytest.mark.unit
    def test_terminal_states_have_no_exits(self, strict):
        for status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
            assert is_terminal_order_status(status)
            for target in OrderStatus:
                assert not strict.is_allowed(status, target)

    @pytest.mark.unit
    def test_accepts_raw_string_values(self, strict):
        assert strict.is_allowed("PENDING", "CONFIRMED")

    @pytest.mark.unit
    def test_every_status_has_a_row(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)


class TestActorMatrix:

    @pytest.mark.unit
    def test_customer_may_cancel_before_processing_only(self, strict):
        assert strict.actor_may(ActorKind.CUSTOMER, OrderStatus.PENDING, OrderStatus.CANCELLED)
        assert strict.actor_may(ActorKind.CUSTOMER, OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
        assert not strict.actor_may(ActorKind.CUSTOMER, OrderStatus.PROCESSING, OrderStatus.CANCELLED)

    @pytest.mark.unit
    def test_customer_cannot_drive_fulfillment(self, strict):
        assert not strict.actor_may(ActorKind.CUSTOMER, OrderStatus.PENDING, OrderStatus.CONFIRMED)
        assert strict.actor_may(ActorKind.CUSTOMER, OrderStatus.DELIVERED, OrderStatus.COMPLETED)

    @pytest.mark.unit
    def test_vendor_drives_fulfillment(self, strict):
        assert strict.allowed_targets(ActorKind.VENDOR, OrderStatus.PENDING) == {
            OrderStatus.CONFIRMED, OrderStatus.CANCELLED,
        }
        assert not strict.actor_may(ActorKind.VENDOR, OrderStatus.DELIVERED, OrderStatus.COMPLETED)

    @pytest.mark.unit
    def test_courier_only_delivers(self, strict):
        assert strict.allowed_targets(ActorKind.COURIER, OrderStatus.OUT_FOR_DELIVERY) == {OrderStatus.DELIVERED}
        assert strict.allowed_targets(ActorKind.COURIER, OrderStatus.PENDING) == frozenset()

    @pytest.mark.unit
    def test_admin_slice_is_the_full_table(self, strict):
        for current, targets in ORDER_TRANSITIONS.items():
            assert strict.allowed_targets(ActorKind.ADMIN, current) == targets


class TestDeliveryTable:

    @pytest.mark.unit
    def test_strict_forward_chain(self, strict):
        assert strict.is_delivery_allowed(DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP)
        assert strict.is_delivery_allowed(DeliveryStatus.PICKED_UP, DeliveryStatus.ON_THE_WAY)
        assert strict.is_delivery_allowed(DeliveryStatus.ON_THE_WAY, DeliveryStatus.DELIVERED)

    @pytest.mark.unit
    def test_no_skip_no_reverse(self, strict):
        assert not strict.is_delivery_allowed(DeliveryStatus.PICKED_UP, DeliveryStatus.DELIVERED)
        assert not strict.is_delivery_allowed(DeliveryStatus.ON_THE_WAY, DeliveryStatus.PICKED_UP)
        assert not strict.is_delivery_allowed(DeliveryStatus.DELIVERED, DeliveryStatus.ON_THE_WAY)

    @pytest.mark.unit
    def test_advanceable_set_is_closed(self):
        assert ADVANCEABLE_DELIVERY_STATUSES == {
            DeliveryStatus.PICKED_UP, DeliveryStatus.ON_THE_WAY, DeliveryStatus.DELIVERED,
        }

    @pytest.mark.unit
    def test_terminal_helpers(self):
        assert is_terminal_delivery_status(DeliveryStatus.DELIVERED)
        assert is_terminal_delivery_status(DeliveryStatus.CANCELLED)
        assert not is_terminal_delivery_status(DeliveryStatus.ON_THE_WAY)


class TestRolePolicy:

    @pytest.mark.unit
    def test_promotion_paths_start_at_customer(self, strict):
        assert strict.can_promote(UserRole.CUSTOMER, UserRole.VENDOR)
        assert strict.can_promote(UserRole.CUSTOMER, UserRole.RIDER)
        assert not strict.can_promote(UserRole.VENDOR, UserRole.RIDER)
        assert not strict.can_promote(UserRole.CUSTOMER, UserRole.ADMIN)

    @pytest.mark.unit
    def test_strict_and_permissive_self_service(self):
        assert LifecyclePolicy(self_service_roles=STRICT_SELF_SERVICE).is_self_service(UserRole.VENDOR)
        assert not LifecyclePolicy(self_service_roles=STRICT_SELF_SERVICE).is_self_service(UserRole.RIDER)
        assert LifecyclePolicy(self_service_roles=PERMISSIVE_SELF_SERVICE).is_self_service(UserRole.RIDER)

    @pytest.mark.unit
    @pytest.mark.parametrize("role", ["ADMIN", "DELIVERY_AGENCY"])
    def test_admin_provisioned_roles_never_self_service(self, role):
        with pytest.raises(ValueError, match="administrator-provisioned"):
            LifecyclePolicy(self_service_roles={"VENDOR", role})

    @pytest.mark.unit
    def test_policy_is_immutable(self, strict):
        with pytest.raises(AttributeError):
            strict.self_service_roles = frozenset()

    @pytest.mark.unit
    def test_policy_from_settings(self):
        class FakeSettings:
            self_service_roles_list = ["VENDOR", "RIDER"]

        policy = policy_from_settings(FakeSettings())
        assert policy.self_service_roles == {UserRole.VENDOR, UserRole.RIDER}
