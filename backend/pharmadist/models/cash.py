"""SQLModel models for cash receipts (from customers) and cash payments (to suppliers)."""
from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field

PAYMENT_METHODS = ("cash", "cheque", "bank_transfer", "credit_card", "debit_card")


class CashReceipt(SQLModel, table=True):
    __tablename__ = "cash_receipts"

    id: Optional[int] = Field(default=None, primary_key=True)
    receipt_number: str = Field(index=True, unique=True)
    receipt_date: date = Field(index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    # Attribution for collections commission
    salesman_id: Optional[int] = Field(default=None, foreign_key="salesmen.id", index=True)

    amount: float
    payment_method: str = Field(default="cash")
    reference_number: Optional[str] = None
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None

    # Post-dated cheques are not posted to the ledger until cleared
    post_dated_cheque: bool = Field(default=False)
    cheque_status: Optional[str] = None  # pending | cleared | bounced

    status: str = Field(default="pending", index=True)  # pending | cleared | cancelled | bounced
    cleared_date: Optional[date] = None
    bounce_reason: Optional[str] = None
    description: Optional[str] = None

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CashPayment(SQLModel, table=True):
    __tablename__ = "cash_payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    payment_number: str = Field(index=True, unique=True)
    payment_date: date = Field(index=True)
    supplier_id: int = Field(foreign_key="suppliers.id", index=True)

    amount: float
    payment_method: str = Field(default="cash")
    reference_number: Optional[str] = None
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None

    status: str = Field(default="pending", index=True)  # pending | cleared | cancelled
    cleared_date: Optional[date] = None
    description: Optional[str] = None

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PaymentAllocation(SQLModel, table=True):
    """Portion of a receipt/payment applied against one invoice."""

    __tablename__ = "payment_allocations"

    id: Optional[int] = Field(default=None, primary_key=True)
    source_type: str = Field(index=True)  # cash_receipt | cash_payment
    source_id: int = Field(index=True)
    invoice_id: int = Field(foreign_key="invoices.id", index=True)
    amount: float
    created_at: datetime = Field(default_factory=datetime.utcnow)
