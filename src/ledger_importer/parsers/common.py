"""Helpers shared by the format adapters: dates, amounts, currencies, cards."""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from zoneinfo import ZoneInfo

from ledger_importer.models import ParseError

# Dates before this are treated as "no date" (epoch zero placeholders).
MIN_EPOCH_MS = 86_400_000

# Fail the entire file if more than this share of its rows is malformed.
MAX_MALFORMED_RATIO = 0.10

FOREIGN_CURRENCIES = (
    "EUR", "USD", "GBP", "CAD", "PKR", "SGD", "INR", "SAR", "BHD", "QAR", "OMR", "KWD",
)

_NARRATION_AMOUNT = re.compile(
    r"^([\d.]+),(" + "|".join(FOREIGN_CURRENCIES) + r")$", re.IGNORECASE
)

_DATE_FORMATS = ("%d-%b-%Y", "%Y-%m-%d", "%d/%m/%Y")


def parse_amount(value: str | float | int | None) -> Decimal:
    """Parse an export amount, tolerating thousands separators.

    Raises:
        ValueError: The value is missing or not a number.
    """
    if value is None:
        raise ValueError("amount is missing")
    text = str(value).strip().replace(",", "")
    if not text:
        return Decimal("0")
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"invalid amount: {value!r}") from None


def parse_date(value: str | int | float | None, timezone: str) -> date:
    """Parse an export date into a calendar day in *timezone*.

    Accepts epoch milliseconds (int, float or digit string), ``DD-Mon-YYYY``,
    ``YYYY-MM-DD``, ``DD/MM/YYYY``, and ISO timestamps. Timestamps are
    converted to *timezone* before the day is taken; bare dates are already
    local to the bank.

    Raises:
        ValueError: The value matches none of the supported formats.
    """
    if value is None:
        raise ValueError("date is missing")

    if isinstance(value, (int, float)) or str(value).strip().isdigit():
        millis = int(value)
        if millis < MIN_EPOCH_MS:
            raise ValueError(f"date is an epoch placeholder: {value!r}")
        return datetime.fromtimestamp(millis / 1000, tz=ZoneInfo(timezone)).date()

    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        stamp = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"invalid date: {value!r}") from None
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(ZoneInfo(timezone))
    return stamp.date()


def scan_foreign_amount(narrations: Iterable[str]) -> tuple[Decimal, str] | None:
    """Find an ``<amount>,<CODE>`` narration such as ``"9.99,EUR"``."""
    for narration in narrations:
        match = _NARRATION_AMOUNT.match(narration.strip())
        if match:
            try:
                return Decimal(match.group(1)), match.group(2).upper()
            except InvalidOperation:
                continue
    return None


def detect_card_account(
    text: str,
    card_accounts: Mapping[str, str],
    hints: Mapping[str, str] | None = None,
) -> str | None:
    """Identify the credit card a payment settles.

    Masked card numbers like ``"5234****9107"`` are matched against the
    last-digits table first; then *hints* (substring to account name) are
    checked case-insensitively.

    Returns:
        The card account name, or None when the card is unknown.
    """
    for last_digits, account_name in card_accounts.items():
        if re.search(r"\d+\*{4,6}" + re.escape(last_digits) + r"(?!\d)", text):
            return account_name

    lowered = text.lower()
    for needle, account_name in (hints or {}).items():
        if needle.lower() in lowered:
            return account_name

    return None


def read_csv_rows(file_path: Path) -> list[tuple[int, list[str]]]:
    """Read a headered CSV export into ``(line_number, columns)`` pairs.

    The header row is dropped and blank lines are ignored. Line numbers are
    1-based file lines, so the first data row is line 2.

    Raises:
        ParseError: The file is missing, unreadable, or has no data rows.
    """
    source = str(file_path)
    try:
        with open(file_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.reader(f)
            rows = [
                (reader.line_num, row)
                for row in reader
                if any(cell.strip() for cell in row)
            ]
    except FileNotFoundError:
        raise ParseError(f"{source}: file not found") from None
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise ParseError(f"{source}: {exc}") from exc

    if len(rows) < 2:
        raise ParseError(f"{source}: CSV is empty or has no data rows")

    return rows[1:]


def check_malformed(source: str, malformed: int, total: int) -> None:
    """Raise ``ParseError`` when too many rows of a file were rejected."""
    if total > 0 and malformed / total > MAX_MALFORMED_RATIO:
        raise ParseError(
            f"{source}: too many malformed rows ({malformed}/{total}), "
            f"skipping entire file"
        )
