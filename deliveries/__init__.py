from .models import (
    Delivery,
    DeliveryConfirmation,
    DeliveryPerformance,
    DeliveryStatus,
    RoutePoint,
)
from .tracker import DeliveryTracker, follow_order, open_delivery

__all__ = [
    "Delivery",
    "DeliveryConfirmation",
    "DeliveryPerformance",
    "DeliveryStatus",
    "RoutePoint",
    "DeliveryTracker",
    "follow_order",
    "open_delivery",
]
