"""
Tax engine.

GST at 18 % or 4 %, advance income tax at 0 / 0.5 / 2.5 % depending on the
buyer's registration, and a 0.1 % surcharge for non-filers. All taxes are a
plain percentage of the taxable base; figures are rounded half-up to 2
decimals when they leave this module.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pharmadist.core.errors import ValidationError
from pharmadist.core.money import percent_of, round_money, to_decimal

GST_RATES = (0.0, 4.0, 18.0)
ADVANCE_TAX_RATES = (0.0, 0.5, 2.5)
NON_FILER_RATE = 0.1

ADVANCE_TAX_BY_REGISTRATION = {
    "registered": 0.5,
    "unregistered": 2.5,
    "exempt": 0.0,
}


def _check_amount(amount: float) -> None:
    if amount is None or amount < 0:
        raise ValidationError("Amount cannot be negative", details={"amount": amount})


def _check_gst_rate(rate: float) -> None:
    if rate not in GST_RATES:
        raise ValidationError(
            "GST rate must be 0, 4 or 18", details={"gst_rate": rate}
        )


def _check_advance_rate(rate: float) -> None:
    if rate not in ADVANCE_TAX_RATES:
        raise ValidationError(
            "Advance tax rate must be 0, 0.5 or 2.5", details={"advance_tax_rate": rate}
        )


def gst(amount: float, rate: float = 18.0) -> dict:
    _check_amount(amount)
    _check_gst_rate(rate)
    gst_amount = percent_of(amount, rate)
    return {
        "taxable_amount": round_money(amount),
        "gst_rate": rate,
        "gst_amount": round_money(gst_amount),
        "total_amount": round_money(to_decimal(amount) + gst_amount),
    }


def gst_18(amount: float) -> dict:
    return gst(amount, 18.0)


def gst_4(amount: float) -> dict:
    return gst(amount, 4.0)


def advance_tax(amount: float, rate: float) -> dict:
    _check_amount(amount)
    _check_advance_rate(rate)
    return {
        "taxable_amount": round_money(amount),
        "advance_tax_rate": rate,
        "tax_amount": round_money(percent_of(amount, rate)),
    }


def non_filer_gst(amount: float) -> dict:
    _check_amount(amount)
    return {
        "taxable_amount": round_money(amount),
        "non_filer_rate": NON_FILER_RATE,
        "non_filer_amount": round_money(percent_of(amount, NON_FILER_RATE)),
    }


def advance_tax_rate_for(registration_type: Optional[str]) -> float:
    """registered → 0.5, unregistered → 2.5, exempt/unknown → 0."""
    return ADVANCE_TAX_BY_REGISTRATION.get((registration_type or "").lower(), 0.0)


def invoice_taxes(
    subtotal: float,
    gst_rate: float = 18.0,
    advance_tax_rate: float = 0.0,
    is_non_filer: bool = False,
) -> dict:
    """Invoice-level tax breakdown against a single taxable subtotal."""
    _check_amount(subtotal)
    _check_gst_rate(gst_rate)
    _check_advance_rate(advance_tax_rate)

    gst18 = percent_of(subtotal, 18) if gst_rate == 18 else Decimal(0)
    gst4 = percent_of(subtotal, 4) if gst_rate == 4 else Decimal(0)
    adv = percent_of(subtotal, advance_tax_rate)
    nf = percent_of(subtotal, NON_FILER_RATE) if is_non_filer else Decimal(0)
    total_tax = gst18 + gst4 + adv + nf

    return {
        "subtotal": round_money(subtotal),
        "taxes": {
            "gst18_total": round_money(gst18),
            "gst4_total": round_money(gst4),
            "advance_tax_total": round_money(adv),
            "non_filer_gst_total": round_money(nf),
            "total_tax": round_money(total_tax),
        },
        "grand_total": round_money(to_decimal(subtotal) + total_tax),
    }


def line_taxes(
    quantity: float,
    unit_price: float,
    *,
    discount_percent: float = 0.0,
    gst_rate: float = 18.0,
    advance_tax_rate: float = 0.0,
    is_non_filer: bool = False,
) -> dict:
    """Per-line breakdown of quantity × unit_price after discount and taxes."""
    _check_gst_rate(gst_rate)
    _check_advance_rate(advance_tax_rate)
    if not 0 <= discount_percent <= 100:
        raise ValidationError(
            "Discount must be between 0 and 100 percent",
            details={"discount_percent": discount_percent},
        )

    gross = to_decimal(quantity) * to_decimal(unit_price)
    _check_amount(float(gross))

    discount = percent_of(gross, discount_percent)
    taxable = gross - discount
    gst_amount = percent_of(taxable, gst_rate)
    adv = percent_of(taxable, advance_tax_rate)
    nf = percent_of(taxable, NON_FILER_RATE) if is_non_filer else Decimal(0)
    total_tax = gst_amount + adv + nf

    return {
        "gross_amount": round_money(gross),
        "discount_amount": round_money(discount),
        "taxable_amount": round_money(taxable),
        "gst_amount": round_money(gst_amount),
        "advance_tax_amount": round_money(adv),
        "non_filer_amount": round_money(nf),
        "tax_amount": round_money(total_tax),
        "line_total": round_money(taxable + total_tax),
    }


def validate_tax_data(
    gst_rate: Optional[float] = None,
    advance_tax_rate: Optional[float] = None,
    taxable_amount: Optional[float] = None,
) -> dict:
    errors: list[str] = []
    if gst_rate is not None and gst_rate not in GST_RATES:
        errors.append("GST rate must be 0, 4, or 18")
    if advance_tax_rate is not None and advance_tax_rate not in ADVANCE_TAX_RATES:
        errors.append("Advance tax rate must be 0, 0.5, or 2.5")
    if taxable_amount is not None and taxable_amount < 0:
        errors.append("Taxable amount cannot be negative")
    return {"valid": not errors, "errors": errors}
