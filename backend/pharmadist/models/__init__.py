from pharmadist.models.party import Account, Customer, Salesman, Supplier, User
from pharmadist.models.invoice import Invoice, InvoiceLine
from pharmadist.models.ledger import LedgerEntry
from pharmadist.models.cash import CashPayment, CashReceipt, PaymentAllocation
from pharmadist.models.reconciliation import (
    BankReconciliation,
    BankStatementLine,
    ImportLog,
    ReconciliationItem,
)
from pharmadist.models.recovery import RecoveryAccount, RecoverySummary

__all__ = [
    "Account",
    "Customer",
    "Salesman",
    "Supplier",
    "User",
    "Invoice",
    "InvoiceLine",
    "LedgerEntry",
    "CashPayment",
    "CashReceipt",
    "PaymentAllocation",
    "BankReconciliation",
    "BankStatementLine",
    "ImportLog",
    "ReconciliationItem",
    "RecoveryAccount",
    "RecoverySummary",
]
