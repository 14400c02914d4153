"""Merchant and payer name normalization.

Bank exports carry merchant strings padded with location groups, city
names, payment-rail prefixes and reference codes::

    "SPOTIFY P3DC4D2299 (+46855207070, SE)"  ->  "Spotify"
    "PAYPAL *STEAM GAMES"                     ->  "Steam Games"
    "TALABAT POSTPAID DUBAI"                  ->  "Talabat Postpaid"

:func:`normalize` strips that noise and title-cases shouted words. It is pure
and idempotent, so it doubles as the grouping key for recurrence analysis.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from ledger_importer.models import DEFAULT_CITIES

UNKNOWN_MERCHANT = "Unknown Merchant"
UNKNOWN_PAYER = "Unknown Payer"

_WHITESPACE = re.compile(r"\s+")

# "(+16562211725, LU)", "(80038888, AE)", "(SHARJAH, AE)"
_LOCATION_GROUP = re.compile(r"\s*\([^()]+,\s*[A-Za-z]{2}\)$")

# Reference codes appended by payment rails.
_REFERENCE_CODES = [
    re.compile(r"\s+P[0-9A-F]{8,}$", re.IGNORECASE),
    re.compile(r"\s*\*\d{6,}$"),
    re.compile(r"\s+#?\d{6,}$"),
]


def normalize(
    raw: str,
    fallback: str = UNKNOWN_MERCHANT,
    cities: Sequence[str] = DEFAULT_CITIES,
    suffixes: Sequence[str] = ("ITUNES.COM",),
    vendor_prefixes: Sequence[str] = ("GOOGLE", "PAYPAL"),
) -> str:
    """Canonicalize a raw merchant or payer string.

    Args:
        raw: The string as found in the export.
        fallback: Returned when nothing is left after stripping.
        cities: Bare city names stripped from the end, case-insensitively.
        suffixes: Storefront billing suffixes stripped from the end.
        vendor_prefixes: Prefixes such as ``GOOGLE*`` or ``PAYPAL *`` that
            hide the real merchant behind a payment rail.

    Returns:
        The cleaned, title-cased name, or *fallback*.
    """
    name = _collapse(raw or "")

    previous = None
    while name != previous:
        previous = name
        name = _strip_noise(name, cities, suffixes, vendor_prefixes)

    name = title_case(name)
    if not name:
        return fallback
    return name


def title_case(name: str) -> str:
    """Title-case fully upper-case words longer than three characters.

    Short acronyms ("LLC", "AE") and mixed-case words are left alone.
    """
    words = _collapse(name).split(" ")
    result: list[str] = []
    for word in words:
        if word.upper() == word and len(word) > 3:
            result.append(word.capitalize())
        else:
            result.append(word)
    return " ".join(result)


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def _strip_noise(
    name: str,
    cities: Sequence[str],
    suffixes: Sequence[str],
    vendor_prefixes: Sequence[str],
) -> str:
    """One pass of the location, city, suffix and prefix rules."""
    name = _LOCATION_GROUP.sub("", name)

    for city in cities:
        name = re.sub(r"\s+" + re.escape(city) + r"\s*$", "", name, flags=re.IGNORECASE)

    for suffix in suffixes:
        name = re.sub(r"\s+" + re.escape(suffix) + r"\s*$", "", name, flags=re.IGNORECASE)

    for pattern in _REFERENCE_CODES:
        name = pattern.sub("", name)

    for prefix in vendor_prefixes:
        match = re.match(re.escape(prefix) + r"\s*\*\s*(.+)$", name, flags=re.IGNORECASE)
        if match:
            name = match.group(1)

    return _collapse(name.rstrip("* "))
