"""
Purpose: Persistence for delivery partner snapshots.
What it does:
Registers partners, lists the eligible pool, and applies partner state
functions (dispatch/state_machines/partner_state.py) through the store's
compare-and-set loop.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from storage.base import PARTNERS, UNCHANGED, Store

from .models import DeliveryPartner

logger = logging.getLogger(__name__)


class PartnerRegistry:
    def __init__(self, store: Store):
        self.store = store

    def register(self, partner: DeliveryPartner) -> DeliveryPartner:
        return self.store.insert_if_missing(PARTNERS, partner.id, partner).record

    def get(self, partner_id: str) -> Optional[DeliveryPartner]:
        current = self.store.get(PARTNERS, partner_id)
        return current.record if current else None

    def eligible(self) -> List[DeliveryPartner]:
        return [entry.record for entry in self.store.find(PARTNERS, is_online=True, is_available=True)]

    def apply(
        self,
        partner_id: str,
        change: Callable[[DeliveryPartner], Optional[DeliveryPartner]],
    ) -> Optional[DeliveryPartner]:
        """
        Runs `change` under compare-and-set. `change` returns the new snapshot or None for no-op.
        Unknown partners are ignored with a warning; partner bookkeeping never blocks an order.
        """
        if self.store.get(PARTNERS, partner_id) is None:
            logger.warning("Partner %s is not registered; skipping state change", partner_id)
            return None

        def mutate(partner: DeliveryPartner):
            updated = change(partner)
            return UNCHANGED if updated is None else updated

        return self.store.update(PARTNERS, partner_id, mutate).record
