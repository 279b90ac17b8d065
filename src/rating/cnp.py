"""Helpers for the Romanian personal numeric code (CNP).

Only the parts rating needs: digit 1 selects the century (1/2 -> 1900s,
anything else -> 2000s) and digits 2-3 hold the two-digit birth year.
"""

import re
from datetime import date
from typing import Optional

_CNP_RE = re.compile(r"[0-9]{13}")


def is_valid_cnp(cnp: Optional[str]) -> bool:
    return bool(cnp) and _CNP_RE.fullmatch(cnp) is not None


def birth_year(cnp: Optional[str]) -> Optional[int]:
    if not is_valid_cnp(cnp):
        return None
    century = 1900 if cnp[0] in ("1", "2") else 2000
    return century + int(cnp[1:3])


def age_on(cnp: Optional[str], today: date) -> Optional[int]:
    """Age by calendar year (current year minus birth year), or None for a malformed CNP."""
    year = birth_year(cnp)
    if year is None:
        return None
    return today.year - year
