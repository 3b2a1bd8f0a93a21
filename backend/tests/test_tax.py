"""Unit tests for the GST / advance tax engine."""
import pytest

from pharmadist.core.errors import ValidationError
from pharmadist.services.tax import (
    advance_tax,
    advance_tax_rate_for,
    gst_4,
    gst_18,
    invoice_taxes,
    line_taxes,
    non_filer_gst,
    validate_tax_data,
)


class TestSingleTaxes:
    def test_gst_18(self):
        result = gst_18(1000)
        assert result["gst_amount"] == 180.0
        assert result["total_amount"] == 1180.0

    def test_gst_4(self):
        result = gst_4(2500)
        assert result["gst_amount"] == 100.0
        assert result["total_amount"] == 2600.0

    def test_gst_rounds_half_up(self):
        # 18 % of 0.25 is 0.045
        assert gst_18(0.25)["gst_amount"] == 0.05

    def test_advance_tax_registered(self):
        assert advance_tax(10000, 0.5)["tax_amount"] == 50.0

    def test_advance_tax_unregistered(self):
        assert advance_tax(10000, 2.5)["tax_amount"] == 250.0

    def test_advance_tax_bad_rate(self):
        with pytest.raises(ValidationError):
            advance_tax(1000, 1.0)

    def test_non_filer(self):
        result = non_filer_gst(5000)
        assert result["non_filer_rate"] == 0.1
        assert result["non_filer_amount"] == 5.0

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError) as exc:
            gst_18(-1)
        assert exc.value.status_code == 400


class TestAdvanceRateFor:
    def test_registration_types(self):
        assert advance_tax_rate_for("registered") == 0.5
        assert advance_tax_rate_for("Unregistered") == 2.5
        assert advance_tax_rate_for("exempt") == 0.0
        assert advance_tax_rate_for(None) == 0.0


class TestInvoiceTaxes:
    def test_standard_invoice(self):
        result = invoice_taxes(10000, gst_rate=18, advance_tax_rate=0.5)
        assert result["taxes"] == {
            "gst18_total": 1800.0,
            "gst4_total": 0.0,
            "advance_tax_total": 50.0,
            "non_filer_gst_total": 0.0,
            "total_tax": 1850.0,
        }
        assert result["grand_total"] == 11850.0

    def test_reduced_rate_non_filer(self):
        result = invoice_taxes(2000, gst_rate=4, advance_tax_rate=2.5, is_non_filer=True)
        taxes = result["taxes"]
        assert taxes["gst18_total"] == 0.0
        assert taxes["gst4_total"] == 80.0
        assert taxes["advance_tax_total"] == 50.0
        assert taxes["non_filer_gst_total"] == 2.0
        assert result["grand_total"] == 2132.0

    def test_zero_subtotal(self):
        result = invoice_taxes(0)
        assert result["taxes"]["total_tax"] == 0.0
        assert result["grand_total"] == 0.0

    def test_invalid_gst_rate(self):
        with pytest.raises(ValidationError, match="GST rate"):
            invoice_taxes(100, gst_rate=12)


class TestLineTaxes:
    def test_quantity_times_price_with_discount(self):
        result = line_taxes(10, 150, discount_percent=10, gst_rate=18)
        assert result["gross_amount"] == 1500.0
        assert result["discount_amount"] == 150.0
        assert result["taxable_amount"] == 1350.0
        assert result["gst_amount"] == 243.0
        assert result["line_total"] == 1593.0

    def test_all_taxes_on_line(self):
        result = line_taxes(1, 1000, gst_rate=18, advance_tax_rate=2.5, is_non_filer=True)
        assert result["gst_amount"] == 180.0
        assert result["advance_tax_amount"] == 25.0
        assert result["non_filer_amount"] == 1.0
        assert result["tax_amount"] == 206.0

    def test_discount_out_of_range(self):
        with pytest.raises(ValidationError, match="Discount"):
            line_taxes(1, 100, discount_percent=120)


class TestValidateTaxData:
    def test_valid(self):
        assert validate_tax_data(18, 0.5, 100) == {"valid": True, "errors": []}

    def test_collects_errors(self):
        result = validate_tax_data(12, 1.0, -5)
        assert result["valid"] is False
        assert len(result["errors"]) == 3
