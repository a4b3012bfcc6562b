"""Normalization functions for tournament titles and contact fields.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
import unicodedata


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_phone
# ---------------------------------------------------------------------------

def normalize_phone(value: str | None) -> str | None:
    """Return the digits of a phone number, keeping a leading '+', or None.

    Keeps digits only.  A leading '0' (local trunk prefix) is kept as-is.
    Fewer than 7 digits is treated as a data error and returns None.
    """
    v = trim(value)
    if v is None:
        return None
    digits = re.sub(r"\D", "", v)
    if len(digits) < 7:
        return None
    if v.startswith("+"):
        return f"+{digits}"
    return digits


# ---------------------------------------------------------------------------
# Rule 4: normalize_title  (for tolerant tournament title matching)
# ---------------------------------------------------------------------------

def normalize_title(value: str | None) -> str | None:
    """Lowercase, remove punctuation except spaces, collapse spaces.

    Used only by the tolerant matcher; stored names are never rewritten.
    """
    v = trim(value)
    if v is None:
        return None
    # Decompose unicode (e.g. accented chars) then drop combining marks
    v = unicodedata.normalize("NFKD", v)
    v = "".join(c for c in v if not unicodedata.combining(c))
    v = v.lower()
    v = re.sub(r"[^\w\s]", "", v)
    v = re.sub(r"\s+", " ", v).strip()
    return v if v else None
