"""SQLModel models for bank reconciliation, imported statement lines and the import log."""
from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field


class BankReconciliation(SQLModel, table=True):
    __tablename__ = "bank_reconciliations"

    id: Optional[int] = Field(default=None, primary_key=True)
    reconciliation_number: str = Field(index=True, unique=True)  # BR{yyyy}{mm}{nnnn}

    bank_account_name: str
    bank_account_number: str = Field(index=True)
    bank_name: str

    reconciliation_date: date = Field(default_factory=date.today)
    statement_start_date: date
    statement_end_date: date

    opening_book_balance: float = Field(default=0.0)
    opening_bank_balance: float = Field(default=0.0)
    closing_book_balance: float = Field(default=0.0)
    closing_bank_balance: float = Field(default=0.0)

    # Summary – refreshed whenever items change
    total_receipts: float = Field(default=0.0)
    total_payments: float = Field(default=0.0)
    matched_count: int = Field(default=0)
    unmatched_count: int = Field(default=0)
    discrepancy_count: int = Field(default=0)
    total_discrepancy_amount: float = Field(default=0.0)

    status: str = Field(default="draft", index=True)  # draft | completed | approved
    notes: Optional[str] = None

    created_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_reconciled(self) -> bool:
        return self.unmatched_count == 0 and self.discrepancy_count == 0


class ReconciliationItem(SQLModel, table=True):
    __tablename__ = "reconciliation_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    reconciliation_id: int = Field(foreign_key="bank_reconciliations.id", index=True)
    order: int = Field(default=0)

    transaction_type: str  # receipt | payment

    # Book side (null when the line only exists on the statement)
    transaction_id: Optional[int] = None
    transaction_number: Optional[str] = None
    transaction_date: Optional[date] = None
    amount: float = Field(default=0.0)

    # Statement side (null when the book transaction is missing from the statement)
    bank_statement_date: Optional[date] = None
    bank_statement_amount: Optional[float] = None
    bank_statement_reference: Optional[str] = None
    bank_statement_description: Optional[str] = None

    status: str = Field(default="unmatched", index=True)  # matched | unmatched | discrepancy
    discrepancy_reason: Optional[str] = None
    discrepancy_amount: Optional[float] = None  # statement − book
    notes: Optional[str] = None


class BankStatementLine(SQLModel, table=True):
    """A line imported from a bank statement export."""

    __tablename__ = "bank_statement_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    bank_account_number: str = Field(index=True)
    statement_date: date = Field(index=True)
    transaction_type: str  # credit | debit
    amount: float
    reference: Optional[str] = None
    description: Optional[str] = None

    # Deduplication key: account|date|type|amount|reference
    dedup_key: str = Field(index=True, unique=True)
    import_log_id: Optional[int] = Field(default=None, foreign_key="import_logs.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ImportLog(SQLModel, table=True):
    """Audit log of every statement import attempt."""

    __tablename__ = "import_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    file_path: str
    file_name: str
    bank_account_number: Optional[str] = None
    status: str  # "success", "partial", "error"
    lines_processed: int = Field(default=0)
    lines_inserted: int = Field(default=0)
    lines_skipped: int = Field(default=0)
    error_message: Optional[str] = None
    warnings: Optional[str] = None  # JSON list of warning messages
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
