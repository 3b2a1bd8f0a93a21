"""SQLModel models for salesman recovery summaries."""
from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field


class RecoverySummary(SQLModel, table=True):
    """
    Per-salesman, per-town recovery sheet. The total_* columns are derived
    from the account lines and rewritten on every save.
    """

    __tablename__ = "recovery_summaries"

    id: Optional[int] = Field(default=None, primary_key=True)
    summary_date: date = Field(index=True)
    salesman_id: int = Field(foreign_key="salesmen.id", index=True)
    town: str = Field(index=True)
    notes: Optional[str] = None

    total_invoice_amount: float = Field(default=0.0)
    total_balance: float = Field(default=0.0)
    total_recovery: float = Field(default=0.0)

    is_deleted: bool = Field(default=False, index=True)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def recovery_percentage(self) -> float:
        if not self.total_invoice_amount:
            return 0.0
        return round(self.total_recovery / self.total_invoice_amount * 100, 2)

    @property
    def outstanding_amount(self) -> float:
        return round(self.total_invoice_amount - self.total_recovery, 2)


class RecoveryAccount(SQLModel, table=True):
    __tablename__ = "recovery_accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    summary_id: int = Field(foreign_key="recovery_summaries.id", index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    order: int = Field(default=0)
    invoice_amount: float = Field(default=0.0)
    balance: float = Field(default=0.0)
    recovery_amount: float = Field(default=0.0)
