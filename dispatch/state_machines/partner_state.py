from dataclasses import replace
from datetime import datetime
from typing import Optional

from partners.models import DeliveryPartner


def handle_partner_acceptance(partner: DeliveryPartner, order_id: str) -> DeliveryPartner:
    """
    Called when a partner wins an order.
    Takes them out of the offer pool until the order is delivered, cancelled or declined.
    """
    # Because DeliveryPartner is a frozen dataclass, we must return a new instance via replace
    return replace(partner, is_available=False, active_order_id=order_id)


def handle_partner_release(partner: DeliveryPartner, order_id: str) -> Optional[DeliveryPartner]:
    """
    Called when the partner's order ends (delivered, cancelled, declined).
    Only releases if that order is still the one they carry, so a late or
    replayed release never frees a partner who already took a newer order.
    Returns None when there is nothing to change.
    """
    if partner.active_order_id != order_id:
        return None
    return replace(partner, is_available=True, active_order_id=None)


def handle_partner_ping(
    partner: DeliveryPartner,
    lat: float,
    lon: float,
    at: datetime,
) -> DeliveryPartner:
    return replace(partner, location=(lat, lon), last_ping_at=at)


def handle_partner_availability(
    partner: DeliveryPartner,
    is_online: bool,
    is_available: Optional[bool] = None,
) -> DeliveryPartner:
    """
    Partner toggles their own availability. Going offline always clears availability;
    a partner carrying an order stays unavailable until it ends.
    """
    if is_available is None:
        is_available = is_online
    if not is_online or partner.active_order_id is not None:
        is_available = False
    return replace(partner, is_online=is_online, is_available=is_available)
