"""Tests for the statement import pipeline (sanitise → parse → store)."""
import json

from sqlmodel import select

from pharmadist.etl.importer import import_bytes, import_file
from pharmadist.etl.watcher import InboxWatcher, StatementFileHandler
from pharmadist.models.reconciliation import BankStatementLine

STATEMENT = (
    "Account Number: 0123456789\r\n"
    "Date,Description,Reference,Debit,Credit\r\n"
    "2024-03-01,Deposit,DEP001,,1500.00\r\n"
    "2024-03-04,Cheque 4411,CHQ4411,800.00,\r\n"
).encode("utf-8")


class TestImportBytes:
    def test_clean_import(self, session):
        log = import_bytes(STATEMENT, "march.csv")
        assert log.status == "success"
        assert log.bank_account_number == "0123456789"
        assert log.lines_processed == 2
        assert log.lines_inserted == 2
        assert log.lines_skipped == 0
        assert log.warnings is None

        lines = session.exec(select(BankStatementLine).order_by(BankStatementLine.id)).all()
        assert [l.transaction_type for l in lines] == ["credit", "debit"]
        assert all(l.import_log_id == log.id for l in lines)

    def test_reimport_skips_duplicates(self, session):
        import_bytes(STATEMENT, "march.csv")
        again = import_bytes(STATEMENT, "march_copy.csv")
        assert again.status == "success"
        assert again.lines_inserted == 0
        assert again.lines_skipped == 2
        assert len(session.exec(select(BankStatementLine)).all()) == 2

    def test_duplicate_rows_within_file(self, session):
        raw = b"Date,Type,Amount,Reference\n2024-03-01,CR,100,R1\n2024-03-01,CR,100,R1\n"
        log = import_bytes(raw, "dup.csv", bank_account_number="555")
        assert log.lines_inserted == 1
        assert log.lines_skipped == 1

    def test_explicit_account_wins(self, session):
        log = import_bytes(STATEMENT, "9999999999_march.csv", bank_account_number="ACC-1")
        assert log.bank_account_number == "ACC-1"

    def test_account_from_file_name(self, session):
        raw = b"Date,Amount\n2024-03-01,250\n"
        log = import_bytes(raw, "7766554433_march.csv")
        assert log.bank_account_number == "7766554433"
        assert log.lines_inserted == 1

    def test_warnings_make_partial(self, session):
        raw = b"Date,Amount\n2024-03-01,250\n2024-03-02,abc\n"
        log = import_bytes(raw, "x.csv", bank_account_number="1")
        assert log.status == "partial"
        assert log.lines_inserted == 1
        assert json.loads(log.warnings)[0].startswith("Row 3:")

    def test_unknown_account_is_error(self, session):
        log = import_bytes(b"Date,Amount\n2024-03-01,250\n", "statement.csv")
        assert log.status == "error"
        assert "Bank account number unknown" in log.error_message
        assert log.lines_inserted == 0
        assert session.exec(select(BankStatementLine)).all() == []

    def test_unparseable_file_is_error(self, session):
        log = import_bytes(b"hello world\n", "notes.csv", bank_account_number="1")
        assert log.status == "error"
        assert "No statement header" in log.error_message


class TestImportFile:
    def test_reads_from_disk(self, session, tmp_path):
        path = tmp_path / "0123456789_april.csv"
        path.write_bytes(b"Date,Amount\n2024-04-01,10\n")
        log = import_file(path)
        assert log.status == "success"
        assert log.file_path == str(path)
        assert log.file_name == "0123456789_april.csv"

    def test_missing_file(self, session, tmp_path):
        log = import_file(tmp_path / "gone.csv")
        assert log.status == "error"
        assert log.error_message


class TestInboxWatcher:
    def test_scan_existing_imports_statements(self, session, tmp_path):
        (tmp_path / "0123456789_may.csv").write_bytes(b"Date,Amount\n2024-05-02,75\n")
        (tmp_path / "readme.pdf").write_bytes(b"%PDF-1.4")
        watcher = InboxWatcher(str(tmp_path))
        assert watcher.scan_existing() == 1
        assert not watcher.is_active
        assert len(session.exec(select(BankStatementLine)).all()) == 1

        log = watcher.recent[0]
        assert log.status == "success"
        assert not (tmp_path / "0123456789_may.csv").exists()
        assert (tmp_path / "processed" / f"{log.id}_0123456789_may.csv").exists()
        assert (tmp_path / "readme.pdf").exists()

    def test_failed_files_are_set_aside(self, session, tmp_path):
        (tmp_path / "notes.csv").write_bytes(b"hello world\n")
        watcher = InboxWatcher(str(tmp_path))
        assert watcher.scan_existing() == 1
        assert watcher.recent[0].status == "error"
        assert [p.name for p in (tmp_path / "failed").iterdir()] == [f"{watcher.recent[0].id}_notes.csv"]
        assert watcher.scan_existing() == 0

    def test_handler_filters_suffix(self, tmp_path):
        handler = StatementFileHandler()
        csv_file = tmp_path / "a.CSV"
        csv_file.write_text("x")
        other = tmp_path / "a.xlsx"
        other.write_text("x")
        assert handler._should_process(str(csv_file))
        assert not handler._should_process(str(other))
        assert not handler._should_process(str(tmp_path / "missing.csv"))

    def test_handler_ignores_archived_files(self, tmp_path):
        handler = StatementFileHandler(inbox=tmp_path)
        (tmp_path / "processed").mkdir()
        archived = tmp_path / "processed" / "1_march.csv"
        archived.write_text("x")
        fresh = tmp_path / "april.csv"
        fresh.write_text("x")
        assert handler._should_process(str(fresh))
        assert not handler._should_process(str(archived))
