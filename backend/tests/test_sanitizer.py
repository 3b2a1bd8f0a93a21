"""Unit tests for the statement CSV sanitiser."""
from pharmadist.etl.sanitizer import _fix_encoding, _strip_invalid_chars, sanitize_csv


class TestStripInvalidChars:
    def test_clean_csv_unchanged(self):
        text = "Date,Description,Debit,Credit\n2024-03-01,Deposit,,1500.00\n"
        clean, warnings = _strip_invalid_chars(text)
        assert clean == text
        assert warnings == []

    def test_null_byte_removed(self):
        text = "2024-03-01,Dep\x00osit,,1500.00"
        clean, warnings = _strip_invalid_chars(text)
        assert "\x00" not in clean
        assert "Deposit" in clean
        assert len(warnings) == 1
        assert "invalid control character" in warnings[0]

    def test_multiple_control_chars_single_warning(self):
        text = "\x07\x08\x0bDate\x0c\x1f,Amount\x7f"
        clean, warnings = _strip_invalid_chars(text)
        for char in ["\x07", "\x08", "\x0b", "\x0c", "\x1f", "\x7f"]:
            assert char not in clean
        assert clean == "Date,Amount"
        assert len(warnings) == 1
        assert warnings[0].startswith("Removed 6 ")

    def test_tab_newline_carriage_return_preserved(self):
        text = "Date\tAmount\r\n2024-03-01\t10\n"
        clean, warnings = _strip_invalid_chars(text)
        assert clean == text
        assert warnings == []

    def test_stray_bom_removed(self):
        clean, warnings = _strip_invalid_chars("Date,\ufeffAmount")
        assert clean == "Date,Amount"
        assert len(warnings) == 1


class TestFixEncoding:
    def test_utf8_passthrough(self):
        text, enc = _fix_encoding("Date,Narration\n2024-03-01,Café".encode("utf-8"))
        assert "Café" in text
        assert enc == "utf-8"

    def test_utf8_bom_stripped(self):
        text, enc = _fix_encoding(b"\xef\xbb\xbfDate,Amount")
        assert text == "Date,Amount"
        assert enc == "utf-8-sig"

    def test_windows1252_converted(self):
        # 0x93 / 0x94 are curly quotes in Windows-1252 and invalid UTF-8
        text, enc = _fix_encoding(b"\x93Cheque\x94,100")
        assert enc == "windows-1252"
        assert "Cheque" in text
        assert "“" in text

    def test_utf16_le_with_bom(self):
        raw = b"\xff\xfe" + "Date,Amount".encode("utf-16-le")
        text, enc = _fix_encoding(raw)
        assert text == "Date,Amount"
        assert enc == "utf-16-le"


class TestSanitizeCsv:
    def test_clean_input_no_warnings(self):
        text, warnings = sanitize_csv(b"Date,Amount\n2024-03-01,10\n", source_path="s.csv")
        assert text == "Date,Amount\n2024-03-01,10\n"
        assert warnings == []

    def test_line_endings_normalised(self):
        text, _ = sanitize_csv(b"Date,Amount\r\n2024-03-01,10\r2024-03-02,20\r\n")
        assert "\r" not in text
        assert text.count("\n") == 3

    def test_reencoding_reported(self):
        _, warnings = sanitize_csv(b"Date,Narration\n2024-03-01,\x93Deposit\x94\n")
        assert any("Re-encoded from windows-1252" in w for w in warnings)

    def test_control_chars_reported(self):
        text, warnings = sanitize_csv(b"Date,Amount\n2024-03-01,1\x01100\n")
        assert "1100" in text
        assert any("control character" in w for w in warnings)

    def test_raw_backup_written(self, tmp_path):
        raw = b"Date,Amount\n2024-03-01,10\n"
        sanitize_csv(raw, source_path="0123456789_march.csv", backup_dir=tmp_path)
        backups = list(tmp_path.glob("0123456789_march_*.csv.bak"))
        assert len(backups) == 1
        assert backups[0].read_bytes() == raw

    def test_empty_input_handled(self):
        text, warnings = sanitize_csv(b"", source_path="empty.csv")
        assert text == ""
        assert warnings == []
