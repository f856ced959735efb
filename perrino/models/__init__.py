from .base import Base
from .user import User
from .client import Client
from .order import Order
from .status_history import StatusHistoryEntry, StatusPhoto
from .payment import Payment, PaymentPhoto
from .expense import Expense
from .folio_counter import FolioCounter

__all__ = [
    "Base",
    "User",
    "Client",
    "Order",
    "StatusHistoryEntry",
    "StatusPhoto",
    "Payment",
    "PaymentPhoto",
    "Expense",
    "FolioCounter",
]
