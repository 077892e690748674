from kijumbe.models.delivery_record import DeliveryRecord
from kijumbe.models.group import Group, Membership
from kijumbe.models.transaction import Transaction
from kijumbe.models.user import User

__all__ = [
    "User",
    "Group",
    "Membership",
    "Transaction",
    "DeliveryRecord",
]
