"""
Domain enums. Stored as their string values in the database.
"""

from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"
    RIDER = "RIDER"
    DELIVERY_AGENCY = "DELIVERY_AGENCY"
    ADMIN = "ADMIN"


class ActorKind(str, Enum):
    """Who is driving an order transition; keys the actor matrix."""
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"
    COURIER = "COURIER"
    ADMIN = "ADMIN"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DeliveryStatus(str, Enum):
    SEARCHING_RIDER = "SEARCHING_RIDER"
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    ON_THE_WAY = "ON_THE_WAY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    COD = "COD"
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    INITIATED = "INITIATED"
    PAID = "PAID"
    REFUND_PENDING = "REFUND_PENDING"
    VOIDED = "VOIDED"


class DeliveryMethod(str, Enum):
    VENDOR_DELIVERY = "VENDOR_DELIVERY"
    PLATFORM_DELIVERY = "PLATFORM_DELIVERY"
