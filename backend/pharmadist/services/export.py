"""
Report rendering: tabular rows → CSV / Excel / PDF bytes, plus the printed
invoice and recovery-sheet PDFs.

Rows are plain dicts; ``columns`` is an ordered list of (key, header) pairs.
"""
from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any, Iterable, Optional

import openpyxl
from fastapi.responses import StreamingResponse
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from pharmadist.core.config import settings
from pharmadist.core.errors import ValidationError

Columns = list[tuple[str, str]]

EXPORT_FORMATS = ("json", "csv", "excel", "pdf")

MEDIA_TYPES = {
    "csv": "text/csv",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}
EXTENSIONS = {"csv": "csv", "excel": "xlsx", "pdf": "pdf"}

NAVY = HexColor("#1F3864")
SLATE = HexColor("#64748B")
ROW_SHADE = HexColor("#F1F5F9")
WHITE = HexColor("#FFFFFF")
CHARCOAL = HexColor("#2D3748")

MARGIN = 15 * mm


def _cell(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if value is None:
        return ""
    return value


def _text(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(_cell(value))


# ── CSV ───────────────────────────────────────────────────────────────────────


def to_csv(rows: Iterable[dict], columns: Columns) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([header for _, header in columns])
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key, _ in columns])
    # utf-8-sig so Excel opens Urdu / accented names correctly
    return output.getvalue().encode("utf-8-sig")


# ── Excel ─────────────────────────────────────────────────────────────────────


def to_excel(rows: Iterable[dict], columns: Columns, title: str = "Report") -> bytes:
    rows = list(rows)
    wb = openpyxl.Workbook()
    ws = wb.active
    # sheet titles are limited to 31 chars and may not contain []:*?/\
    ws.title = "".join(ch for ch in title if ch not in "[]:*?/\\")[:31] or "Report"

    header_fill = PatternFill(start_color="1F3864", end_color="1F3864", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF", size=10)
    row_font = Font(size=10)
    center = Alignment(horizontal="center", vertical="center")

    for col_idx, (_, header) in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = center

    for row_idx, row in enumerate(rows, 2):
        for col_idx, (key, _) in enumerate(columns, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=_cell(row.get(key)))
            cell.font = row_font
            if isinstance(row.get(key), float):
                cell.number_format = "#,##0.00"

    for col_idx in range(1, len(columns) + 1):
        max_len = max(
            len(str(ws.cell(row=r, column=col_idx).value or ""))
            for r in range(1, len(rows) + 2)
        )
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max_len + 4, 45)
    ws.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ── PDF ───────────────────────────────────────────────────────────────────────


def _fit(text: str, width: float, font: str, size: float) -> str:
    if stringWidth(text, font, size) <= width:
        return text
    while text and stringWidth(text + "…", font, size) > width:
        text = text[:-1]
    return text + "…"


class _PdfTable:
    """Minimal paginated table on a reportlab canvas."""

    ROW_H = 6 * mm

    def __init__(self, title: str, subtitle: Optional[str], columns: Columns, wide: bool):
        self.buf = io.BytesIO()
        self.pagesize = landscape(A4) if wide else A4
        self.width, self.height = self.pagesize
        self.c = canvas.Canvas(self.buf, pagesize=self.pagesize)
        self.c.setTitle(title)
        self.c.setAuthor(settings.COMPANY_NAME)
        self.title = title
        self.subtitle = subtitle
        self.columns = columns
        self.col_w = (self.width - 2 * MARGIN) / max(len(columns), 1)
        self.page = 0
        self.y = 0.0

    def _page_header(self, table_header: bool = True) -> None:
        self.page += 1
        top = self.height - MARGIN
        self.c.setFillColor(NAVY)
        self.c.setFont("Helvetica-Bold", 14)
        self.c.drawString(MARGIN, top - 5 * mm, settings.COMPANY_NAME)
        self.c.setFont("Helvetica-Bold", 11)
        self.c.setFillColor(CHARCOAL)
        self.c.drawString(MARGIN, top - 11 * mm, self.title)
        self.c.setFont("Helvetica", 8)
        self.c.setFillColor(SLATE)
        if self.subtitle:
            self.c.drawString(MARGIN, top - 16 * mm, self.subtitle)
        self.c.drawRightString(
            self.width - MARGIN, top - 5 * mm, f"Generated {datetime.now():%Y-%m-%d %H:%M}"
        )
        self.c.drawRightString(self.width - MARGIN, MARGIN - 6 * mm, f"Page {self.page}")
        self.y = top - 22 * mm
        if table_header:
            self._header_row()

    def _header_row(self) -> None:
        self.c.setFillColor(NAVY)
        self.c.rect(MARGIN, self.y - self.ROW_H, self.width - 2 * MARGIN, self.ROW_H, fill=1, stroke=0)
        self.c.setFillColor(WHITE)
        self.c.setFont("Helvetica-Bold", 8)
        for i, (_, header) in enumerate(self.columns):
            x = MARGIN + i * self.col_w + 1.5 * mm
            self.c.drawString(x, self.y - self.ROW_H + 2 * mm, _fit(header, self.col_w - 3 * mm, "Helvetica-Bold", 8))
        self.y -= self.ROW_H

    def row(self, values: list[Any], shade: bool = False, bold: bool = False) -> None:
        if self.page == 0 or self.y - self.ROW_H < MARGIN:
            if self.page:
                self.c.showPage()
            self._page_header()
        if shade:
            self.c.setFillColor(ROW_SHADE)
            self.c.rect(MARGIN, self.y - self.ROW_H, self.width - 2 * MARGIN, self.ROW_H, fill=1, stroke=0)
        font = "Helvetica-Bold" if bold else "Helvetica"
        self.c.setFont(font, 8)
        self.c.setFillColor(CHARCOAL)
        for i, value in enumerate(values):
            text = _fit(_text(value), self.col_w - 3 * mm, font, 8)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                self.c.drawRightString(MARGIN + (i + 1) * self.col_w - 1.5 * mm, self.y - self.ROW_H + 2 * mm, text)
            else:
                self.c.drawString(MARGIN + i * self.col_w + 1.5 * mm, self.y - self.ROW_H + 2 * mm, text)
        self.y -= self.ROW_H

    def finish(self) -> bytes:
        if self.page == 0:
            self._page_header()
            self.c.setFont("Helvetica-Oblique", 9)
            self.c.setFillColor(SLATE)
            self.c.drawString(MARGIN, self.y - 8 * mm, "No records for the selected period.")
        self.c.showPage()
        self.c.save()
        return self.buf.getvalue()


def to_pdf(
    rows: Iterable[dict],
    columns: Columns,
    title: str,
    subtitle: Optional[str] = None,
    totals: Optional[dict] = None,
) -> bytes:
    table = _PdfTable(title, subtitle, columns, wide=len(columns) > 6)
    for i, row in enumerate(rows):
        table.row([row.get(key) for key, _ in columns], shade=bool(i % 2))
    if totals:
        table.row([totals.get(key, "") for key, _ in columns], bold=True)
    return table.finish()


def render(
    fmt: str,
    rows: list[dict],
    columns: Columns,
    title: str,
    filename: str,
    subtitle: Optional[str] = None,
    totals: Optional[dict] = None,
) -> StreamingResponse:
    """Render rows in ``fmt`` (csv | excel | pdf) as a download."""
    if fmt == "csv":
        content = to_csv(rows, columns)
    elif fmt == "excel":
        content = to_excel(rows, columns, title)
    elif fmt == "pdf":
        content = to_pdf(rows, columns, title, subtitle, totals)
    else:
        raise ValidationError(f"Unsupported export format: {fmt}")
    return file_response(content, f"{filename}.{EXTENSIONS[fmt]}", MEDIA_TYPES[fmt])


def file_response(content: bytes, filename: str, media_type: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ── Printed documents ─────────────────────────────────────────────────────────


def _labelled(c: canvas.Canvas, x: float, y: float, label: str, value: Any) -> None:
    c.setFont("Helvetica-Bold", 9)
    c.drawString(x, y, f"{label}:")
    c.setFont("Helvetica", 9)
    c.drawString(x + 32 * mm, y, _text(value))


def invoice_pdf(invoice, lines: list, party: dict, salesman_name: Optional[str] = None) -> bytes:
    """Printable sales / purchase invoice."""
    title = "Sales Invoice" if invoice.invoice_type == "sales" else "Purchase Invoice"
    columns: Columns = [
        ("item_name", "Item"),
        ("batch_number", "Batch"),
        ("quantity", "Qty"),
        ("scheme_quantity", "Bonus"),
        ("unit_price", "Rate"),
        ("discount_amount", "Discount"),
        ("tax_amount", "Tax"),
        ("line_total", "Amount"),
    ]
    table = _PdfTable(title, f"{invoice.invoice_number} · {invoice.invoice_date}", columns, wide=True)
    table._page_header(table_header=False)

    c = table.c
    c.setFillColor(CHARCOAL)
    y = table.y
    _labelled(c, MARGIN, y, "Party", f"{party.get('code') or ''} {party.get('name') or ''}".strip())
    _labelled(c, MARGIN, y - 5 * mm, "Due date", invoice.due_date)
    _labelled(c, table.width / 2, y, "Status", invoice.status)
    _labelled(c, table.width / 2, y - 5 * mm, "Salesman", salesman_name or "-")
    table.y = y - 10 * mm
    table._header_row()

    for i, line in enumerate(lines):
        table.row(
            [
                line.item_name,
                line.batch_number,
                line.quantity,
                line.scheme_quantity,
                line.unit_price,
                line.discount_amount,
                line.tax_amount,
                line.line_total,
            ],
            shade=bool(i % 2),
        )

    for label, value in (
        ("Subtotal", invoice.subtotal),
        ("Discount", invoice.total_discount),
        ("Tax", invoice.total_tax),
        ("Grand total", invoice.grand_total),
        ("Paid", invoice.paid_amount),
        ("Balance due", invoice.balance_due),
    ):
        table.row(["", "", "", "", "", "", label, value], bold=label in ("Grand total", "Balance due"))
    return table.finish()


def recovery_pdf(data: dict) -> bytes:
    """Printable recovery sheet from ``recovery.summary_print_data``."""
    summary = data["summary"]
    salesman = summary["salesman"]
    columns: Columns = [
        ("customer_code", "Code"),
        ("customer_name", "Customer"),
        ("invoice_amount", "Invoice Amount"),
        ("balance", "Balance"),
        ("recovery_amount", "Recovery"),
        ("remaining_balance", "Remaining"),
    ]
    subtitle = (
        f"{summary['date']} · {salesman.get('code') or ''} {salesman.get('name') or ''} · "
        f"{summary['town']}"
    )
    fin = data["financials"]
    totals = {
        "customer_name": "Total",
        "invoice_amount": fin["total_invoice_amount"],
        "balance": fin["total_balance"],
        "recovery_amount": fin["total_recovery"],
        "remaining_balance": fin["net_outstanding"],
    }
    table = _PdfTable(data["title"], subtitle, columns, wide=False)
    for i, row in enumerate(data["accounts"]):
        table.row([row.get(key) for key, _ in columns], shade=bool(i % 2))
    table.row([totals.get(key, "") for key, _ in columns], bold=True)
    table.row(["", "Recovery %", "", "", "", f"{fin['recovery_percentage']:.2f}%"])
    return table.finish()
