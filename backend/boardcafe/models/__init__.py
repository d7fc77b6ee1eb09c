from .customers import Customer, PointsTransaction, PointsSettings
from .memberships import MembershipPlan, CustomerMembership, MembershipUsage
from .seating import SeatSession

__all__ = [
    'Customer', 'PointsTransaction', 'PointsSettings',
    'MembershipPlan', 'CustomerMembership', 'MembershipUsage',
    'SeatSession',
]
