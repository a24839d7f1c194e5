"""
Tests for the Delivery Status Service.

Covers job acceptance, the PICKED_UP → ON_THE_WAY → DELIVERED chain,
assignment checks, and the all-or-nothing hand-off to the parent order.
"""
import pytest
from sqlalchemy import select, update

from db_models import Delivery, DeliveryAgency, Order
from domain.enums import DeliveryMethod, DeliveryStatus, OrderStatus
from domain.errors import (
    ConflictError, InvalidStateError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError,
)
from services.delivery_service import DeliveryStatusService, delivery_to_dict
from tests.factories import actor_for, create_delivery, create_order


async def _delivery_status(db, delivery_id):
    return await db.scalar(select(Delivery.status).where(Delivery.id == delivery_id))


async def _order_status(db, order_id):
    return await db.scalar(select(Order.status).where(Order.id == order_id))


@pytest.fixture
async def platform_order(db_session, customer, product):
    return await create_order(
        db_session, customer, product,
        status=OrderStatus.OUT_FOR_DELIVERY,
        delivery_method=DeliveryMethod.PLATFORM_DELIVERY,
    )


@pytest.fixture
async def open_job(db_session, platform_order):
    return await create_delivery(db_session, platform_order)


class TestAccept:

    @pytest.mark.asyncio
    async def test_agency_accepts_open_job(self, db_session, open_job, agency_user, policy):
        delivery = await DeliveryStatusService(policy).accept(db_session, open_job.id, actor_for(agency_user))

        assert delivery.status == DeliveryStatus.ASSIGNED.value
        assert delivery.assigned_actor_id == agency_user.id
        assert delivery.assigned_at is not None

    @pytest.mark.asyncio
    async def test_second_courier_gets_conflict(self, db_session, open_job, agency_user, rider, policy):
        service = DeliveryStatusService(policy)
        job_id, rider_actor = open_job.id, actor_for(rider)
        await service.accept(db_session, job_id, actor_for(agency_user))

        with pytest.raises(ConflictError) as exc_info:
            await service.accept(db_session, job_id, rider_actor)
        assert exc_info.value.code == "JOB_ALREADY_ASSIGNED"

    @pytest.mark.asyncio
    async def test_cancelled_job_is_not_open(self, db_session, platform_order, rider, policy):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.CANCELLED)
        with pytest.raises(InvalidStateError) as exc_info:
            await DeliveryStatusService(policy).accept(db_session, job.id, actor_for(rider))
        assert exc_info.value.code == "JOB_NOT_OPEN"

    @pytest.mark.asyncio
    async def test_customer_cannot_accept(self, db_session, open_job, customer, policy):
        with pytest.raises(PermissionDeniedError):
            await DeliveryStatusService(policy).accept(db_session, open_job.id, actor_for(customer))

    @pytest.mark.asyncio
    async def test_inactive_agency_cannot_accept(self, db_session, open_job, agency_user, policy):
        await db_session.execute(
            update(DeliveryAgency).where(DeliveryAgency.user_id == agency_user.id).values(is_active=False)
        )
        await db_session.commit()

        with pytest.raises(PermissionDeniedError) as exc_info:
            await DeliveryStatusService(policy).accept(db_session, open_job.id, actor_for(agency_user))
        assert exc_info.value.code == "AGENCY_INACTIVE"

    @pytest.mark.asyncio
    async def test_listings(self, db_session, open_job, agency_user, policy):
        service = DeliveryStatusService(policy)
        job_id, agency_id = open_job.id, agency_user.id

        assert [d.id for d in await service.list_available(db_session)] == [job_id]
        await service.accept(db_session, job_id, actor_for(agency_user))

        assert await service.list_available(db_session) == []
        assert [d.id for d in await service.list_assigned(db_session, agency_id)] == [job_id]


class TestAdvance:

    @pytest.mark.asyncio
    async def test_full_chain_delivers_the_order(self, db_session, platform_order, agency_user, policy):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.ASSIGNED, assigned_to=agency_user)
        service = DeliveryStatusService(policy)

        await service.advance(db_session, job.id, agency_user.id, DeliveryStatus.PICKED_UP)
        await service.advance(db_session, job.id, agency_user.id, DeliveryStatus.ON_THE_WAY)
        delivered = await service.advance(db_session, job.id, agency_user.id, DeliveryStatus.DELIVERED)

        assert delivered.status == DeliveryStatus.DELIVERED.value
        assert delivered.picked_up_at is not None
        assert delivered.delivered_at is not None
        assert await _order_status(db_session, platform_order.id) == OrderStatus.DELIVERED.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["ASSIGNED", "SEARCHING_RIDER", "CANCELLED", "TELEPORTED"])
    async def test_targets_outside_the_chain_are_rejected(self, db_session, platform_order, rider, policy, target):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.PICKED_UP, assigned_to=rider)
        job_id, rider_id = job.id, rider.id

        with pytest.raises(InvalidTransitionError) as exc_info:
            await DeliveryStatusService(policy).advance(db_session, job_id, rider_id, target)

        assert exc_info.value.code == "INVALID_DELIVERY_TRANSITION"
        assert await _delivery_status(db_session, job_id) == DeliveryStatus.PICKED_UP.value

    @pytest.mark.asyncio
    async def test_no_skipping(self, db_session, platform_order, rider, policy):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.PICKED_UP, assigned_to=rider)
        job_id, rider_id, order_id = job.id, rider.id, platform_order.id

        with pytest.raises(InvalidTransitionError) as exc_info:
            await DeliveryStatusService(policy).advance(db_session, job_id, rider_id, DeliveryStatus.DELIVERED)

        assert exc_info.value.details == {
            "from": "PICKED_UP",
            "to": "DELIVERED",
            "allowedTransitions": ["ON_THE_WAY"],
        }
        assert await _delivery_status(db_session, job_id) == DeliveryStatus.PICKED_UP.value
        assert await _order_status(db_session, order_id) == OrderStatus.OUT_FOR_DELIVERY.value

    @pytest.mark.asyncio
    async def test_no_reversal(self, db_session, platform_order, rider, policy):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.ON_THE_WAY, assigned_to=rider)
        job_id, rider_id = job.id, rider.id

        with pytest.raises(InvalidTransitionError):
            await DeliveryStatusService(policy).advance(db_session, job_id, rider_id, DeliveryStatus.PICKED_UP)
        assert await _delivery_status(db_session, job_id) == DeliveryStatus.ON_THE_WAY.value

    @pytest.mark.asyncio
    async def test_foreign_delivery_is_forbidden(self, db_session, platform_order, rider, agency_user, policy):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.ASSIGNED, assigned_to=agency_user)
        job_id, rider_id = job.id, rider.id

        with pytest.raises(PermissionDeniedError) as exc_info:
            await DeliveryStatusService(policy).advance(db_session, job_id, rider_id, DeliveryStatus.PICKED_UP)
        assert exc_info.value.code == "NOT_ASSIGNED_AGENCY"

    @pytest.mark.asyncio
    async def test_unassigned_delivery_is_forbidden(self, db_session, open_job, rider, policy):
        with pytest.raises(PermissionDeniedError) as exc_info:
            await DeliveryStatusService(policy).advance(db_session, open_job.id, rider.id, DeliveryStatus.PICKED_UP)
        assert exc_info.value.code == "NOT_ASSIGNED_AGENCY"

    @pytest.mark.asyncio
    async def test_unknown_delivery(self, db_session, rider, policy):
        with pytest.raises(NotFoundError):
            await DeliveryStatusService(policy).advance(db_session, 777, rider.id, DeliveryStatus.PICKED_UP)


class TestOrderHandOff:

    @pytest.mark.asyncio
    async def test_cancelled_order_blocks_delivery_completion(self, db_session, platform_order, rider, policy):
        job = await create_delivery(db_session, platform_order, status=DeliveryStatus.ON_THE_WAY, assigned_to=rider)
        job_id, rider_id, order_id = job.id, rider.id, platform_order.id
        # cancelled out-of-band, bypassing the service
        await db_session.execute(
            update(Order).where(Order.id == order_id).values(status=OrderStatus.CANCELLED.value)
        )
        await db_session.commit()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await DeliveryStatusService(policy).advance(db_session, job_id, rider_id, DeliveryStatus.DELIVERED)

        assert exc_info.value.code == "INVALID_ORDER_TRANSITION"
        assert await _delivery_status(db_session, job_id) == DeliveryStatus.ON_THE_WAY.value
        assert await _order_status(db_session, order_id) == OrderStatus.CANCELLED.value


@pytest.mark.unit
def test_delivery_to_dict():
    data = delivery_to_dict(Delivery(id=3, order_id=9, status="ASSIGNED", assigned_actor_id=4))
    assert data["status"] == "ASSIGNED"
    assert data["assigned_actor_id"] == 4
    assert data["picked_up_at"] is None
