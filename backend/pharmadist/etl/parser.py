"""
Bank statement CSV parser.

Accepted layouts (header names are matched case-insensitively, with the
usual bank-portal aliases):

  date, description, reference, debit, credit     two amount columns
  date, type, amount, reference[, description]    explicit credit/debit type
  date, description, reference, amount            signed amount (+ credit, − debit)

Rows above the header are treated as preamble; an ``Account Number`` /
``Account No`` line there supplies the bank account number. Delimiters
``,`` ``;`` ``\\t`` and ``|`` are tried in turn.
"""
from __future__ import annotations

import csv
import io
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dateutil import parser as date_parser

from pharmadist.core.money import round_money

# canonical name → accepted header spellings
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date", "transaction date", "txn date", "value date", "posting date", "tran date"),
    "description": ("description", "narration", "particulars", "details", "remarks", "transaction details"),
    "reference": ("reference", "ref", "ref no", "reference no", "cheque no", "cheque number", "chq no", "instrument no"),
    "debit": ("debit", "withdrawal", "withdrawals", "dr", "debit amount", "paid out"),
    "credit": ("credit", "deposit", "deposits", "cr", "credit amount", "paid in"),
    "amount": ("amount", "transaction amount"),
    "type": ("type", "dr/cr", "cr/dr", "transaction type"),
}

DELIMITERS = (",", ";", "\t", "|")

CREDIT_WORDS = {"credit", "cr", "c", "deposit", "in", "receipt"}
DEBIT_WORDS = {"debit", "dr", "d", "withdrawal", "out", "payment"}

_ACCOUNT_RE = re.compile(r"account\s*(?:number|no\.?|#)", re.IGNORECASE)
_FILENAME_ACCOUNT_RE = re.compile(r"^([0-9][0-9\-]{5,})")
_AMOUNT_JUNK_RE = re.compile(r"[,\s]|PKR|Rs\.?", re.IGNORECASE)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().strip('"').strip().lower()


def _canonical(header: str) -> Optional[str]:
    h = _norm(header).rstrip(".:")
    for name, aliases in HEADER_ALIASES.items():
        if h in aliases:
            return name
    return None


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """'1,250.50' → 1250.50; '(300)' → -300; '' → None."""
    text = (value or "").strip()
    if not text or text in ("-", "--"):
        return None
    negative = text.startswith("(") and text.endswith(")")
    text = _AMOUNT_JUNK_RE.sub("", text.strip("()"))
    if text.endswith("-"):
        negative, text = True, text[:-1]
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")
    return -amount if negative else amount


def parse_date(value: Optional[str]) -> date:
    """ISO dates first, then day-first parsing (local bank convention)."""
    text = (value or "").strip()
    if not text:
        raise ValueError("Missing date")
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError):
        raise ValueError(f"Invalid date: {value!r}")


def _type_from_word(value: str) -> Optional[str]:
    word = _norm(value)
    if word in CREDIT_WORDS:
        return "credit"
    if word in DEBIT_WORDS:
        return "debit"
    return None


def account_from_filename(file_name: str) -> Optional[str]:
    """``0123456789_2024-03.csv`` → ``0123456789``."""
    m = _FILENAME_ACCOUNT_RE.match(Path(file_name).stem)
    return m.group(1).rstrip("-") if m else None


def _find_header(rows: list[list[str]]) -> Optional[tuple[int, dict[str, int], Optional[str]]]:
    """Locate the header row; returns (index, column map, account from preamble)."""
    account: Optional[str] = None
    for idx, row in enumerate(rows):
        columns: dict[str, int] = {}
        for pos, cell in enumerate(row):
            name = _canonical(cell)
            if name and name not in columns:
                columns[name] = pos
        has_amounts = ("debit" in columns and "credit" in columns) or "amount" in columns
        if "date" in columns and has_amounts:
            return idx, columns, account

        cells = [c.strip() for c in row if c and c.strip()]
        if cells and _ACCOUNT_RE.search(cells[0]):
            inline = cells[0].split(":", 1)
            if len(inline) == 2 and inline[1].strip():
                account = inline[1].strip()
            elif len(cells) > 1:
                account = cells[1]
    return None


def _read_rows(text: str) -> tuple[list[list[str]], tuple[int, dict[str, int], Optional[str]]]:
    """Split with the first delimiter that yields a recognisable header."""
    for delimiter in DELIMITERS:
        rows = list(csv.reader(io.StringIO(text), delimiter=delimiter))
        found = _find_header(rows)
        if found:
            return rows, found
    raise ValueError(
        "No statement header found (need a date column and debit/credit or amount columns)"
    )


def _cell(row: list[str], columns: dict[str, int], name: str) -> Optional[str]:
    pos = columns.get(name)
    if pos is None or pos >= len(row):
        return None
    value = row[pos].strip()
    return value or None


def parse_statement(text: str, *, file_name: str = "") -> dict:
    """
    Parse sanitized statement text.

    Returns ``{"bank_account_number", "layout", "lines", "warnings"}`` where
    each line is ``{"statement_date", "transaction_type", "amount",
    "reference", "description"}`` with a positive amount.
    """
    rows, (header_idx, columns, account) = _read_rows(text)
    if "debit" in columns and "credit" in columns:
        layout = "debit_credit"
    elif "type" in columns:
        layout = "typed_amount"
    else:
        layout = "signed_amount"

    lines: list[dict] = []
    warnings: list[str] = []

    for offset, row in enumerate(rows[header_idx + 1:], start=header_idx + 2):
        if not any(c.strip() for c in row):
            continue
        raw_date = _cell(row, columns, "date")
        # footer rows such as "Closing balance" carry no date
        if raw_date is None:
            continue
        try:
            statement_date = parse_date(raw_date)
            if layout == "debit_credit":
                debit = parse_amount(_cell(row, columns, "debit")) or Decimal(0)
                credit = parse_amount(_cell(row, columns, "credit")) or Decimal(0)
                entries = [("debit", abs(debit))] if debit else []
                if credit:
                    entries.append(("credit", abs(credit)))
            else:
                amount = parse_amount(_cell(row, columns, "amount"))
                if amount is None:
                    raise ValueError("Missing amount")
                if layout == "typed_amount":
                    tx_type = _type_from_word(_cell(row, columns, "type") or "")
                    if tx_type is None:
                        raise ValueError(f"Unknown transaction type: {_cell(row, columns, 'type')!r}")
                else:
                    tx_type = "credit" if amount > 0 else "debit"
                entries = [(tx_type, abs(amount))] if amount else []
        except ValueError as exc:
            warnings.append(f"Row {offset}: {exc}")
            continue

        if not entries:
            warnings.append(f"Row {offset}: no amount, skipped")
            continue
        for tx_type, amount in entries:
            lines.append(
                {
                    "statement_date": statement_date,
                    "transaction_type": tx_type,
                    "amount": round_money(amount),
                    "reference": _cell(row, columns, "reference"),
                    "description": _cell(row, columns, "description"),
                }
            )

    return {
        "bank_account_number": account or (account_from_filename(file_name) if file_name else None),
        "layout": layout,
        "lines": lines,
        "warnings": warnings,
    }


def dedup_key(bank_account_number: str, line: dict) -> str:
    """account|date|type|amount|reference"""
    return "|".join(
        [
            bank_account_number,
            line["statement_date"].isoformat(),
            line["transaction_type"],
            f"{line['amount']:.2f}",
            (line.get("reference") or "").strip().upper(),
        ]
    )


def parse_statement_file(path: str | Path) -> dict:
    """Convenience for already-clean UTF-8 files (tests, scripts)."""
    path = Path(path)
    return parse_statement(path.read_text(encoding="utf-8"), file_name=path.name)
