# Overview: Model registry for the stock ledger and stock opname tables.

from .inventory import Category, InventoryItem, StockMovement
from .opname import OpnameSessionRecord, OpnameHistory, OpnameMonitoringRecord

__all__ = [
    'Category', 'InventoryItem', 'StockMovement',
    'OpnameSessionRecord', 'OpnameHistory', 'OpnameMonitoringRecord',
]
