"""Sequential document numbers: SI2025000001, CR2025000042, BR2025030007 …"""
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlmodel import Session, col, select


def next_number(
    session: Session,
    field,
    prefix: str,
    on: Optional[date] = None,
    width: int = 6,
    with_month: bool = False,
) -> str:
    """
    Next free number for ``prefix`` + year (+ month) in the column ``field``.
    Uses the highest existing suffix so deleted drafts never cause a clash.
    """
    on = on or date.today()
    stem = f"{prefix}{on.year}"
    if with_month:
        stem += f"{on.month:02d}"

    numbers = session.exec(select(field).where(col(field).startswith(stem))).all()
    highest = 0
    for number in numbers:
        suffix = number[len(stem):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{stem}{highest + 1:0{width}d}"
