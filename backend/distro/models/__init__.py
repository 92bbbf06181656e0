from .catalog import SKU, PriceTier, PriceTierItem
from .accounts import Store, Distributor
from .schemes import Scheme
from .stock import StockItem, StockLedgerEntry, StockTransfer, StockTransferItem
from .orders import Order, OrderItem, OrderReturn, OrderReturnItem
from .wallet import WalletTransaction
from .notifications import Notification

__all__ = [
    'SKU', 'PriceTier', 'PriceTierItem',
    'Store', 'Distributor',
    'Scheme',
    'StockItem', 'StockLedgerEntry', 'StockTransfer', 'StockTransferItem',
    'Order', 'OrderItem', 'OrderReturn', 'OrderReturnItem',
    'WalletTransaction',
    'Notification',
]
