from .facilities import Facility, FacilityType
from .auth import User, SessionToken
from .boxes import Order, Product, OrderBoxSequence, Box, BoxEvent, BoxStatus, BoxEventType

__all__ = [
    'Facility', 'FacilityType',
    'User', 'SessionToken',
    'Order', 'Product', 'OrderBoxSequence', 'Box', 'BoxEvent',
    'BoxStatus', 'BoxEventType',
]
