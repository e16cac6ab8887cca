from .branches import Branch
from .accounts import Account, SessionToken
from .inventory import InventoryItem, Loan
from .ledger import CapitalLedgerEntry
from .logistics import DeliveryAssignment, SettlementIssue

__all__ = [
    'Branch',
    'Account', 'SessionToken',
    'InventoryItem', 'Loan',
    'CapitalLedgerEntry',
    'DeliveryAssignment', 'SettlementIssue',
]
