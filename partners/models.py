"""
Purpose: Core data models for the delivery partners domain.
What it does:
Defines the structure of a DeliveryPartner and their availability without relying on Django ORM constraints.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class DeliveryPartner:
    """
    A stateless snapshot of a delivery partner at a point in time.
    `is_online` is the partner's own toggle; `is_available` is cleared while they carry an order.
    """
    id: str
    name: str = ""
    location: Optional[LatLon] = None
    is_online: bool = False
    is_available: bool = False
    vehicle_type: Optional[str] = None
    active_order_id: Optional[str] = None
    last_ping_at: Optional[datetime] = None

    @property
    def is_eligible(self) -> bool:
        return self.is_online and self.is_available

    @classmethod
    def new(
        cls,
        partner_id: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        is_online: bool = True,
        is_available: bool = True,
        name: str = "",
        vehicle_type: Optional[str] = None,
        last_ping_at: Optional[datetime] = None,
    ) -> DeliveryPartner:
        location = (lat, lon) if lat is not None and lon is not None else None
        return cls(
            id=partner_id,
            name=name,
            location=location,
            is_online=is_online,
            is_available=is_available,
            vehicle_type=vehicle_type,
            last_ping_at=last_ping_at,
        )
