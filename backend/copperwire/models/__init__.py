from .ledger import StockEntry, LedgerTransaction
from .khata import KhataSale, KhataSaleLine, KhataPayment

__all__ = [
    'StockEntry', 'LedgerTransaction',
    'KhataSale', 'KhataSaleLine', 'KhataPayment',
]
