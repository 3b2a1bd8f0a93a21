"""SQLModel models for sales / purchase invoices and their lines."""
from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field


class Invoice(SQLModel, table=True):
    """Sales (SI…) or purchase (PI…) invoice header with derived totals."""

    __tablename__ = "invoices"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_number: str = Field(index=True, unique=True)
    invoice_type: str = Field(index=True)  # sales | purchase
    invoice_date: date = Field(index=True)
    due_date: Optional[date] = None

    customer_id: Optional[int] = Field(default=None, foreign_key="customers.id", index=True)
    supplier_id: Optional[int] = Field(default=None, foreign_key="suppliers.id", index=True)
    salesman_id: Optional[int] = Field(default=None, foreign_key="salesmen.id", index=True)
    supplier_bill_number: Optional[str] = None

    status: str = Field(default="draft", index=True)  # draft | confirmed | paid | cancelled
    payment_status: str = Field(default="pending")  # pending | partial | paid

    # Totals – recomputed from lines on every mutation
    subtotal: float = Field(default=0.0)
    total_discount: float = Field(default=0.0)
    total_tax: float = Field(default=0.0)
    grand_total: float = Field(default=0.0)
    paid_amount: float = Field(default=0.0)

    # Tax options applied to every line
    advance_tax_rate: float = Field(default=0.0)
    is_non_filer: bool = Field(default=False)

    # Trade offers (percent of taxable total) posted against an adjustment account
    to1_percent: float = Field(default=0.0)
    to1_amount: float = Field(default=0.0)
    to2_percent: float = Field(default=0.0)
    to2_amount: float = Field(default=0.0)
    adjustment_account_id: Optional[int] = Field(default=None, foreign_key="accounts.id")

    notes: Optional[str] = None
    created_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def party_type(self) -> str:
        return "Customer" if self.invoice_type == "sales" else "Supplier"

    @property
    def party_id(self) -> Optional[int]:
        return self.customer_id if self.invoice_type == "sales" else self.supplier_id

    @property
    def balance_due(self) -> float:
        return round(self.grand_total - self.paid_amount, 2)


class InvoiceLine(SQLModel, table=True):
    __tablename__ = "invoice_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_id: int = Field(foreign_key="invoices.id", index=True)
    order: int = Field(default=0)

    item_code: Optional[str] = None
    item_name: str
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None

    quantity: float
    scheme_quantity: float = Field(default=0.0)  # free goods, not billed
    unit_price: float
    discount_percent: float = Field(default=0.0)
    gst_rate: float = Field(default=18.0)

    gross_amount: float = Field(default=0.0)
    discount_amount: float = Field(default=0.0)
    taxable_amount: float = Field(default=0.0)
    gst_amount: float = Field(default=0.0)
    advance_tax_amount: float = Field(default=0.0)
    non_filer_amount: float = Field(default=0.0)
    tax_amount: float = Field(default=0.0)
    line_total: float = Field(default=0.0)
