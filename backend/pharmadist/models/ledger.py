"""SQLModel model for double-entry ledger postings."""
from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field

ACCOUNT_TYPES = ("Customer", "Supplier", "Account")
TRANSACTION_TYPES = ("debit", "credit")
REFERENCE_TYPES = (
    "invoice",
    "payment",
    "adjustment",
    "opening_balance",
    "cash_receipt",
    "cash_payment",
)
# Reference types that always point at a document
DOCUMENT_REFERENCE_TYPES = ("invoice", "payment", "cash_receipt", "cash_payment")


class LedgerEntry(SQLModel, table=True):
    """
    One side of a posting. Entries are append-only: a reversal is a new
    entry with the opposite transaction_type pointing at the original.
    """

    __tablename__ = "ledger_entries"

    id: Optional[int] = Field(default=None, primary_key=True)

    account_type: str = Field(index=True)  # Customer | Supplier | Account
    account_id: int = Field(index=True)

    transaction_type: str  # debit | credit
    amount: float
    description: str

    reference_type: str = Field(index=True)
    reference_id: Optional[int] = Field(default=None, index=True)

    transaction_date: date = Field(index=True)
    currency: str = Field(default="PKR")
    exchange_rate: float = Field(default=1.0)

    is_reversal: bool = Field(default=False)
    reversal_reason: Optional[str] = None
    reversed_entry_id: Optional[int] = Field(
        default=None, foreign_key="ledger_entries.id", index=True
    )

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def signed_amount(self) -> float:
        return self.amount if self.transaction_type == "debit" else -self.amount
