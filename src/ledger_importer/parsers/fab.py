"""First Abu Dhabi Bank (FAB) credit card CSV parser.

FAB CSV format (header row present)::

    Posting Date,Value Date,Description,Raw Description,Debit Amount,Credit Amount
    15/10/2025,14/10/2025,Purchase,2949491030 - FIND SALT              Dubai         ARE,120.00,
    12/10/2025,12/10/2025,Payment,Card Payment - Thank you,,1500.00

Sign convention:
    Two unsigned columns. A value in ``Debit Amount`` is a purchase, a
    value in ``Credit Amount`` is a refund or payment.

The export is newest-first and is reversed so the ledger sees it
chronologically. Fingerprints keep the original file line number.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from ledger_importer.matcher import RunContext
from ledger_importer.models import (
    WITHDRAWAL,
    ParseResult,
    SkippableRecord,
    Transaction,
    TransactionDraft,
    generate_fingerprint,
)
from ledger_importer.parsers.common import (
    check_malformed,
    parse_amount,
    parse_date,
    read_csv_rows,
)

logger = logging.getLogger(__name__)

INSTITUTION = "fab"

MIN_COLUMNS = 6

FEE_ACCOUNT = "FAB Card Fees"
FEE_MARKERS = ("MEMBERSHIP FEE", "VAT ON MEMBERSHIP", "VAT ON SERVICE", "SERVICE CHARGES")

PURCHASE = "purchase"
FEE = "fee"

_REFERENCE_PREFIX = re.compile(r"^(\d+)\s*-\s*(.+)$", re.DOTALL)
_COLUMN_PADDING = re.compile(r"\s{2,}.*$", re.DOTALL)


@dataclass
class FabRow:
    """One data row of a FAB export.

    Attributes:
        line_num: 1-based line number in the file.
        posting_date: Posting date as written, ``DD/MM/YYYY``.
        value_date: Value date as written.
        description: Short description column.
        raw_description: ``"<ref> - <merchant>  <city>  <country>"``.
        debit: Debit amount, 0 when empty.
        credit: Credit amount, 0 when empty.
    """

    line_num: int
    posting_date: str
    value_date: str
    description: str
    raw_description: str
    debit: Decimal
    credit: Decimal

    @property
    def label(self) -> str:
        return f"{self.posting_date} {self.raw_description}"


def parse_file(file_path: Path) -> ParseResult:
    """Parse a FAB CSV export and return its rows oldest-first.

    Raises:
        ParseError: The file is missing, empty, or too many rows are
            malformed.
    """
    source = str(file_path)
    rows = read_csv_rows(file_path)
    records: list[FabRow] = []
    warnings: list[str] = []

    for line_num, cols in rows:
        if len(cols) < MIN_COLUMNS:
            warnings.append(
                f"{source}:{line_num}: skipped malformed row "
                f"(expected {MIN_COLUMNS} columns, got {len(cols)})"
            )
            continue

        posting, value, description, raw_description, debit, credit = (
            c.strip() for c in cols[:6]
        )
        try:
            records.append(
                FabRow(
                    line_num=line_num,
                    posting_date=posting,
                    value_date=value,
                    description=description,
                    raw_description=raw_description,
                    debit=parse_amount(debit),
                    credit=parse_amount(credit),
                )
            )
        except ValueError as exc:
            warnings.append(f"{source}:{line_num}: skipped malformed row ({exc})")

    check_malformed(source, len(warnings), len(rows))

    records.reverse()
    return ParseResult(records=records, warnings=warnings)


def split_reference(raw_description: str) -> tuple[str, str]:
    """Split ``"2949491030 - FIND SALT  Dubai  ARE"`` into reference and merchant."""
    match = _REFERENCE_PREFIX.match(raw_description.strip())
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return "", raw_description.strip()


def is_fee(raw_description: str) -> bool:
    upper = raw_description.upper()
    return any(marker in upper for marker in FEE_MARKERS)


def map_record(row: FabRow, ctx: RunContext) -> Transaction | None:
    """Map one row to a transaction, or None to skip it."""
    try:
        draft = _base_draft(row, ctx)
    except SkippableRecord as exc:
        logger.info("SKIP %s: %s", row.label, exc)
        return None

    direction = "DR" if row.debit > 0 else "CR"
    if direction == "CR":
        draft.to_deposit(ctx.source_account_ref)

    subtype = FEE if is_fee(row.raw_description) else PURCHASE
    handler = HANDLERS.get((subtype, direction), _map_credit)
    return handler(row, draft, ctx).build()


def _base_draft(row: FabRow, ctx: RunContext) -> TransactionDraft:
    if row.credit > 0 and "card payment" in row.raw_description.lower():
        raise SkippableRecord("card payment already imported as transfer")

    is_debit = row.debit > 0
    amount = row.debit if is_debit else row.credit
    if amount <= 0:
        raise SkippableRecord("zero amount")

    try:
        posted = parse_date(row.posting_date, ctx.settings.timezone)
    except ValueError as exc:
        raise SkippableRecord(str(exc)) from None

    reference, merchant_raw = split_reference(row.raw_description)
    tags = ["fab-cc"]
    if is_fee(row.raw_description):
        tags.append("bank-fee")

    return TransactionDraft(
        kind=WITHDRAWAL,
        posted_date=posted,
        amount=amount,
        currency_code=ctx.settings.currency,
        external_id=generate_fingerprint(
            INSTITUTION,
            row.posting_date,
            row.raw_description,
            -amount if is_debit else amount,
            row.line_num,
        ),
        description=_clean_merchant(merchant_raw, ctx),
        source_account_ref=ctx.source_account_ref,
        tags=tags,
        notes=(
            f"FAB CSV line {row.line_num}\nRef: {reference}\n"
            f"Description: {row.raw_description}"
        ),
        internal_reference=reference,
        merchant=merchant_raw,
    )


def _clean_merchant(merchant_raw: str, ctx: RunContext) -> str:
    """Cut the padded city and country columns, then normalize.

    ``"CARREFOUR HYPERMARKET  SHARJAH       UAE"`` -> ``"Carrefour Hypermarket"``
    """
    cut = _COLUMN_PADDING.sub("", merchant_raw).strip()
    return ctx.clean(cut or merchant_raw)


def _map_purchase(row: FabRow, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    draft.destination_name = ctx.match_expense(draft.description)
    return draft


def _map_fee(row: FabRow, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    draft.destination_name = FEE_ACCOUNT
    return draft


def _map_credit(row: FabRow, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    draft.source_name = ctx.match_revenue(draft.description)
    return draft


Handler = Callable[[FabRow, TransactionDraft, RunContext], TransactionDraft]

HANDLERS: dict[tuple[str, str], Handler] = {
    (PURCHASE, "DR"): _map_purchase,
    (FEE, "DR"): _map_fee,
    (PURCHASE, "CR"): _map_credit,
    (FEE, "CR"): _map_credit,
}
