#Marks partners as a package.
#Delivery partner snapshots, matching policy, selection and the registry.

from .models import DeliveryPartner
from .policy import DispatchPolicy, default_dispatch_policy
from .registry import PartnerRegistry
from .selection import filter_eligible_partners, find_nearby_partners

__all__ = [
    "DeliveryPartner",
    "DispatchPolicy",
    "default_dispatch_policy",
    "PartnerRegistry",
    "filter_eligible_partners",
    "find_nearby_partners",
]
