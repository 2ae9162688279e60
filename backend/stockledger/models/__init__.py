from .auth import User
from .inventory import Product, StockAdjustment
from .sales import Sale
from .purchases import Purchase
from .expenses import Expense
from .audit import AuditEntry
from .communications import Notification
