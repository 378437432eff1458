"""
Purpose: Package entry + stable exports.
What it does:

Marks orders as a Python package and re-exports the models, so other modules can do:

from orders import Order, OrderStatus, Actor, Role

The service (orders.service.OrderService) is imported from its module directly.
Should not contain business logic.
"""
from .inventory import Inventory, Product
from .models import (
    Actor,
    Address,
    DeliveryPartnerStatus,
    LineItem,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    ProducerProfile,
    Role,
)
from .policy import PricingPolicy, default_pricing_policy

__all__ = [
    "Inventory",
    "Product",
    "Actor",
    "Address",
    "DeliveryPartnerStatus",
    "LineItem",
    "Order",
    "OrderPaymentStatus",
    "OrderStatus",
    "PaymentMethod",
    "ProducerProfile",
    "Role",
    "PricingPolicy",
    "default_pricing_policy",
]
