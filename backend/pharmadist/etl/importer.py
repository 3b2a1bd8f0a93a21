"""
Statement importer: orchestrates sanitise → parse → insert into the database.

Idempotency strategy:
  - every line gets a dedup key (account|date|type|amount|reference);
  - lines whose key already exists, in the database or earlier in the same
    file, are skipped and counted, never updated.
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger
from sqlmodel import Session, col, select

from pharmadist.core.config import settings
from pharmadist.core.database import engine
from pharmadist.etl.parser import dedup_key, parse_statement
from pharmadist.etl.sanitizer import sanitize_csv
from pharmadist.models.reconciliation import BankStatementLine, ImportLog


def _existing_keys(session: Session, keys: list[str]) -> set[str]:
    if not keys:
        return set()
    rows = session.exec(
        select(BankStatementLine.dedup_key).where(col(BankStatementLine.dedup_key).in_(keys))
    ).all()
    return set(rows)


def import_bytes(
    raw: bytes,
    file_name: str,
    *,
    bank_account_number: Optional[str] = None,
    file_path: Optional[str] = None,
) -> ImportLog:
    """
    Full ETL pipeline for one statement.

    1. Sanitise (with raw backup).
    2. Parse.
    3. Insert new lines under the resolved account number.
    4. Persist and return the ImportLog record.
    """
    log = ImportLog(
        file_path=file_path or file_name,
        file_name=file_name,
        bank_account_number=bank_account_number,
        status="error",
        started_at=datetime.utcnow(),
    )

    with Session(engine) as session:
        session.add(log)
        session.commit()
        session.refresh(log)

    warnings: list[str] = []
    try:
        logger.info(f"Importing statement {file_name} ({len(raw):,} bytes)")

        text, san_warnings = sanitize_csv(
            raw,
            source_path=file_path or file_name,
            backup_dir=settings.RAW_BACKUP_DIR,
        )
        warnings.extend(san_warnings)

        parsed = parse_statement(text, file_name=file_name)
        warnings.extend(parsed["warnings"])

        account = bank_account_number or parsed["bank_account_number"]
        if not account:
            raise ValueError(
                "Bank account number unknown: pass it explicitly, add an "
                "'Account Number' line, or prefix the file name with it"
            )
        log.bank_account_number = account

        with Session(engine) as session:
            keyed = [(dedup_key(account, line), line) for line in parsed["lines"]]
            seen = _existing_keys(session, [k for k, _ in keyed])

            for key, line in keyed:
                log.lines_processed += 1
                if key in seen:
                    log.lines_skipped += 1
                    continue
                seen.add(key)
                session.add(
                    BankStatementLine(
                        bank_account_number=account,
                        dedup_key=key,
                        import_log_id=log.id,
                        **line,
                    )
                )
                log.lines_inserted += 1

            session.commit()

        log.status = "success" if not warnings else "partial"
        logger.info(
            f"{file_name}: {log.lines_inserted} inserted, "
            f"{log.lines_skipped} duplicate(s) skipped for account {account}"
        )
    except Exception as exc:
        log.status = "error"
        log.error_message = str(exc)
        log.lines_inserted = 0
        logger.error(f"Import failed for {file_name}: {exc}")

    finally:
        log.warnings = json.dumps(warnings[:100]) if warnings else None
        log.finished_at = datetime.utcnow()

        with Session(engine) as session:
            session.add(log)
            session.commit()
            session.refresh(log)

    return log


def import_file(file_path: str | Path, bank_account_number: Optional[str] = None) -> ImportLog:
    """Import a statement file from disk (inbox watcher, manual path import)."""
    file_path = Path(file_path)
    try:
        raw = file_path.read_bytes()
    except OSError as exc:
        log = ImportLog(
            file_path=str(file_path),
            file_name=file_path.name,
            bank_account_number=bank_account_number,
            status="error",
            error_message=str(exc),
            finished_at=datetime.utcnow(),
        )
        logger.error(f"Cannot read {file_path}: {exc}")
        with Session(engine) as session:
            session.add(log)
            session.commit()
            session.refresh(log)
        return log
    return import_bytes(
        raw,
        file_path.name,
        bank_account_number=bank_account_number,
        file_path=str(file_path),
    )
