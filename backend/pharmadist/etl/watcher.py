"""
Statement inbox watcher.

Bank statement exports dropped into STATEMENT_INBOX are imported as soon as
the writer has finished with them, then moved to ``processed/`` or
``failed/`` under the inbox according to the import log status. The native
Watchdog observer is tried first; shared folders that do not deliver events
fall back to polling every WATCHER_POLL_INTERVAL seconds.
"""
from __future__ import annotations

import shutil
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from pharmadist.core.config import settings
from pharmadist.etl.importer import import_file
from pharmadist.models.reconciliation import ImportLog

STATEMENT_SUFFIXES = {".csv", ".txt"}
PROCESSED_DIR = "processed"
FAILED_DIR = "failed"


def is_statement_file(path: Path) -> bool:
    return path.suffix.lower() in STATEMENT_SUFFIXES and path.is_file()


def wait_until_stable(path: Path, checks: int = 3, interval: float = 0.2) -> bool:
    """Block until the file size stops changing; False if it disappears."""
    last = -1
    steady = 0
    while steady < checks:
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return False
        steady = steady + 1 if size == last else 0
        last = size
        time.sleep(interval)
    return True


def archive(path: Path, log: ImportLog) -> Optional[Path]:
    """Move an imported file out of the inbox so it is not picked up twice."""
    folder = FAILED_DIR if log.status == "error" else PROCESSED_DIR
    target_dir = path.parent / folder
    target_dir.mkdir(exist_ok=True)
    target = target_dir / f"{log.id}_{path.name}"
    try:
        shutil.move(str(path), target)
    except OSError as exc:
        logger.warning(f"Could not archive {path.name}: {exc}")
        return None
    return target


def import_and_archive(path: Path) -> ImportLog:
    log = import_file(path)
    moved = archive(path, log)
    logger.info(
        f"Inbox: {path.name} → {log.status} "
        f"({log.lines_inserted} new, {log.lines_skipped} skipped)"
        + (f", archived to {moved.parent.name}/" if moved else "")
    )
    return log


class StatementFileHandler(FileSystemEventHandler):
    """Imports each statement file once, after its writer is done."""

    def __init__(
        self,
        on_imported: Optional[Callable[[ImportLog], None]] = None,
        inbox: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self.inbox = inbox
        self.on_imported = on_imported
        self._busy: set[str] = set()
        self._lock = threading.Lock()

    def _should_process(self, path: str) -> bool:
        p = Path(path)
        # archived files land in subfolders of the inbox
        if self.inbox is not None and p.parent.resolve() != self.inbox.resolve():
            return False
        return is_statement_file(p)

    def _claim(self, path: str) -> bool:
        with self._lock:
            if path in self._busy:
                return False
            self._busy.add(path)
            return True

    def _run(self, path: str) -> None:
        try:
            if not wait_until_stable(Path(path)):
                return
            log = import_and_archive(Path(path))
            if self.on_imported:
                self.on_imported(log)
        except Exception:
            logger.exception(f"Inbox import crashed for {path}")
        finally:
            with self._lock:
                self._busy.discard(path)

    def _handle(self, path: str) -> None:
        if self._should_process(path) and self._claim(path):
            threading.Thread(target=self._run, args=(path,), daemon=True).start()

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # files renamed into place after a temp-file download
        if not event.is_directory:
            self._handle(event.dest_path)


class InboxWatcher:
    def __init__(self, inbox_path: Optional[str] = None) -> None:
        self.inbox = Path(inbox_path or settings.STATEMENT_INBOX)
        self.inbox.mkdir(parents=True, exist_ok=True)
        self.recent: list[ImportLog] = []
        self._observer = None

    @property
    def is_active(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def _remember(self, log: ImportLog) -> None:
        self.recent = ([log] + self.recent)[:20]

    def _observe(self, observer) -> None:
        handler = StatementFileHandler(self._remember, self.inbox)
        observer.schedule(handler, str(self.inbox), recursive=False)
        observer.start()
        self._observer = observer

    def start(self) -> None:
        if self.is_active:
            return
        try:
            self._observe(Observer())
            mode = "native"
        except OSError as exc:
            logger.warning(f"Native file events unavailable ({exc}); polling instead")
            self._observe(PollingObserver(timeout=settings.WATCHER_POLL_INTERVAL))
            mode = f"polling every {settings.WATCHER_POLL_INTERVAL}s"
        logger.info(f"Watching {self.inbox} for bank statements ({mode})")

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("Statement inbox watcher stopped")

    def scan_existing(self) -> int:
        """Import files that arrived while the service was down; returns how many."""
        waiting = sorted(p for p in self.inbox.iterdir() if is_statement_file(p))
        for path in waiting:
            self._remember(import_and_archive(path))
        if waiting:
            logger.info(f"Imported {len(waiting)} statement file(s) left in {self.inbox}")
        return len(waiting)


_watcher: Optional[InboxWatcher] = None


def get_watcher() -> InboxWatcher:
    global _watcher
    if _watcher is None:
        _watcher = InboxWatcher()
    return _watcher


def start_watcher() -> None:
    watcher = get_watcher()
    watcher.scan_existing()
    watcher.start()


def stop_watcher() -> None:
    if _watcher is not None:
        _watcher.stop()
