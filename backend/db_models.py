"""
SQLAlchemy ORM models for the Marketplace Lifecycle API.

Tables:
    users              - identities with a single role (customer, vendor, ...)
    vendor_profiles    - 1:1 with a VENDOR user (unique user_id)
    rider_profiles     - 1:1 with a RIDER user (unique user_id)
    delivery_agencies  - 1:1 with a DELIVERY_AGENCY user, admin-created
    products           - vendor catalogue rows carrying stock
    orders             - customer orders and their fulfillment status
    order_items        - order lines (product, quantity, unit price)
    deliveries         - platform delivery of an order (unique order_id)
    disputes           - customer disputes (unique order_id)

Statuses are stored as plain strings holding the enum values from
domain.enums; derived fields (Dispute.status) are properties, not columns.
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey, JSON,
    Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.disputes import derive_dispute_status
from domain.enums import (
    UserRole, OrderStatus, DeliveryStatus, PaymentStatus, DeliveryMethod,
)


class User(Base):
    """Marketplace identities. `role` only moves along the promotion paths."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=True)  # owned by the auth collaborator
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    vendor_profile = relationship("VendorProfile", back_populates="user", uselist=False, lazy="select")
    rider_profile = relationship("RiderProfile", back_populates="user", uselist=False, lazy="select")
    delivery_agency = relationship(
        "DeliveryAgency",
        back_populates="user",
        uselist=False,
        lazy="select",
        foreign_keys="DeliveryAgency.user_id",
    )


class VendorProfile(Base):
    """Business details of a vendor. Exactly one per VENDOR user."""
    __tablename__ = "vendor_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    business_name = Column(String(200), nullable=False)
    business_address = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="vendor_profile")
    products = relationship("Product", back_populates="vendor_profile", lazy="select")


class RiderProfile(Base):
    """Independent rider details; only created when RIDER is self-service."""
    __tablename__ = "rider_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    vehicle_type = Column(String(40), nullable=False, default="Bike")
    license_plate = Column(String(40), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="rider_profile")


class DeliveryAgency(Base):
    """Delivery agency operated by a DELIVERY_AGENCY user. Admin-provisioned."""
    __tablename__ = "delivery_agencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    cities_covered = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by_admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="delivery_agency", foreign_keys=[user_id])


class Product(Base):
    """Vendor product. `stock` is decremented on order and restored on cancel."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_profile_id = Column(Integer, ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Float, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    vendor_profile = relationship("VendorProfile", back_populates="products")


class Order(Base):
    """Customer order. `status` follows the policy's order transition table."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.INITIATED.value)
    delivery_method = Column(String(20), nullable=False, default=DeliveryMethod.VENDOR_DELIVERY.value)
    total_amount = Column(Float, nullable=False, default=0.0)
    delivery_address = Column(Text, nullable=True)
    delivery_city = Column(String(100), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    confirmed_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="select")
    delivery = relationship("Delivery", back_populates="order", uselist=False, lazy="select")

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_id", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class Delivery(Base):
    """
    Platform delivery of one order.

    Owned for mutation purposes by `assigned_actor_id` (rider or agency user);
    NULL until a courier accepts it.
    """
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    assigned_actor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=DeliveryStatus.SEARCHING_RIDER.value)
    assigned_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    order = relationship("Order", back_populates="delivery")


class Dispute(Base):
    """
    Customer dispute against a delivered order. At most one per order.

    There is no status column: see `status` below.
    """
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reason = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    resolution = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    @property
    def status(self):
        return derive_dispute_status(self.resolution)
