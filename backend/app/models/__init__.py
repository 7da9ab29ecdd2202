from .branch import Base, Branch
from .user import User
from .folio_counter import FolioCounter
from .order import Order, OrderItem
from .cash_express import CashExpressConfig, BankAccount, CashExpressRequest, BalanceHistory
from .notification import Notification

__all__ = [
    "Base",
    "Branch",
    "User",
    "FolioCounter",
    "Order",
    "OrderItem",
    "CashExpressConfig",
    "BankAccount",
    "CashExpressRequest",
    "BalanceHistory",
    "Notification",
]
