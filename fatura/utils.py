# File: fatura/utils.py
"""Shared helpers: safe file names, date and NIF normalization."""
from __future__ import annotations

from datetime import date, datetime
import re

from fatura.constants import DEFAULT_NIF


def sanitize_folder_name(name: str) -> str:
    """Return a Windows- and Linux-safe file or folder name.

    Forbidden characters and control characters are replaced with ``_`` and
    trailing dots or spaces are removed.  Reserved Windows names (``CON``,
    ``PRN`` ...) get a ``_`` suffix.  An empty result becomes ``"unknown"``.
    """

    if not isinstance(name, str):
        raise TypeError(
            f"sanitize_folder_name expects a string, got {type(name)}"
        )
    cleaned = re.sub(r'[\\/*?:"<>|]', "_", name)
    cleaned = re.sub(r"[\x00-\x1f]", "_", cleaned)
    cleaned = re.sub(r"[\s.]+$", "", cleaned)

    reserved = {"CON", "PRN", "AUX", "NUL"}
    reserved |= {f"COM{i}" for i in range(1, 10)}
    reserved |= {f"LPT{i}" for i in range(1, 10)}

    if cleaned.upper() in reserved:
        cleaned += "_"

    if cleaned == "":
        return "unknown"

    return cleaned


def normalize_date(date_str: str) -> str:
    """Convert ``DD/MM/YYYY``, ``DD.MM.YYYY`` or ``YYYYMMDD`` into ``YYYY-MM-DD``.

    ISO timestamps are cut to their date part; anything else is returned
    unchanged.
    """
    s = str(date_str or "").replace(" ", "").replace("\xa0", "")
    m = re.match(r"(\d{4})-(\d{2})-(\d{2})(?:T.*)?$", s)
    if m:
        return "-".join(m.groups())
    m = re.match(r"(\d{4})(\d{2})(\d{2})$", s)
    if m:
        y, mth, d = m.groups()
        return f"{y}-{mth}-{d}"
    m = re.match(r"(\d{1,2})[./-]?(\d{1,2})[./-]?(\d{4})$", s)
    if m:
        d, mth, y = m.groups()
        return f"{y}-{int(mth):02d}-{int(d):02d}"
    return s


def parse_date(value) -> date | None:
    """Return ``value`` as :class:`datetime.date` or ``None`` if unparsable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(normalize_date(value))
    except ValueError:
        return None


def norm_nif(s) -> str:
    """Return a NIF without spaces or separators, or the final-consumer NIF."""
    if not isinstance(s, str):
        return DEFAULT_NIF
    cleaned = re.sub(r"[\s.\-/]", "", s).upper()
    return cleaned or DEFAULT_NIF
