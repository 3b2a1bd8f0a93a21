"""
Pre-sanitizer for bank statement CSV exports.

Bank portals and spreadsheet tools produce statements that often contain:
- UTF-16 (with BOM) or Windows-1252 bytes instead of UTF-8
- a UTF-8 BOM glued to the first header
- stray C0 control characters and NUL padding
- mixed CR / CRLF / LF line endings

This module normalises the raw bytes BEFORE they reach the CSV parser and
returns the clean text together with a list of warning messages.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Tuple

from loguru import logger

# C0 controls except TAB / LF / CR, plus DEL and stray BOM characters
_INVALID_CHAR_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F\uFEFF]")

_LINE_END_RE = re.compile(r"\r\n?")


def _fix_encoding(raw: bytes) -> Tuple[str, str]:
    """
    Decode the byte stream, auto-detecting the encoding.

    Returns (text, detected_encoding).
    """
    if raw.startswith(b"\xff\xfe"):
        try:
            return raw[2:].decode("utf-16-le"), "utf-16-le"
        except UnicodeDecodeError:
            pass
    elif raw.startswith(b"\xfe\xff"):
        try:
            return raw[2:].decode("utf-16-be"), "utf-16-be"
        except UnicodeDecodeError:
            pass

    for enc in ("utf-8-sig", "utf-8", "windows-1252", "latin-1"):
        try:
            text = raw.decode(enc)
            if enc == "utf-8-sig" and not raw.startswith(b"\xef\xbb\xbf"):
                enc = "utf-8"
            return text, enc
        except (UnicodeDecodeError, LookupError):
            continue
    # Last resort: decode with replacement
    return raw.decode("utf-8", errors="replace"), "utf-8(replaced)"


def _strip_invalid_chars(text: str) -> Tuple[str, list[str]]:
    """
    Remove control characters that have no place in a CSV statement.

    Returns (clean_text, list_of_warning_strings).
    """
    warnings: list[str] = []
    positions = [m.start() for m in _INVALID_CHAR_RE.finditer(text)]
    if positions:
        warnings.append(
            f"Removed {len(positions)} invalid control character(s) "
            f"at offsets: {positions[:20]}"
        )
    return _INVALID_CHAR_RE.sub("", text), warnings


def backup_raw(raw: bytes, source_path: str, backup_dir: Path) -> Path:
    """Save the untouched bytes as ``<stem>_<stamp><suffix>.bak``."""
    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S")
    src = Path(source_path)
    backup_path = backup_dir / f"{src.stem}_{stamp}{src.suffix}.bak"
    backup_path.write_bytes(raw)
    logger.debug(f"Raw backup saved to {backup_path}")
    return backup_path


def sanitize_csv(
    raw: bytes,
    *,
    source_path: str = "<unknown>",
    backup_dir: Path | None = None,
) -> Tuple[str, list[str]]:
    """
    Full sanitisation pipeline.

    1. Save raw backup copy (when ``backup_dir`` is given).
    2. Decode (auto-detect encoding), drop BOM.
    3. Strip control characters.
    4. Normalise line endings to ``\\n``.

    Returns
    -------
    (clean_text, warnings)
    """
    warnings: list[str] = []

    if backup_dir:
        try:
            backup_raw(raw, source_path, backup_dir)
        except OSError as e:
            warnings.append(f"Could not write raw backup: {e}")

    text, detected_enc = _fix_encoding(raw)
    if detected_enc not in ("utf-8", "utf-8-sig"):
        warnings.append(f"Re-encoded from {detected_enc} to UTF-8")
        logger.info(f"{source_path}: Re-encoded from {detected_enc}")

    text, char_warnings = _strip_invalid_chars(text)
    warnings.extend(char_warnings)
    if char_warnings:
        logger.warning(f"{source_path}: {char_warnings[0]}")

    text = _LINE_END_RE.sub("\n", text)
    return text, warnings
