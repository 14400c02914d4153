"""Mashreq credit card CSV parser.

Mashreq CSV format (header row present)::

    Date,Description,Original Currency,Original Amount,Local Amount
    22-Sep-2025,TALABAT POSTPAID DUBAI,AED,45.00,45.00
    23-Sep-2025,SPOTIFY P3DC4D2299 (+46855207070, SE),EUR,9.99,43.21
    25-Sep-2025,LOYALTY POINTS REDEMPTION,AED,-50.00,-50.00

Sign convention:
    Positive ``Local Amount`` = purchase (charge on the card).
    Negative ``Local Amount`` = credit (refund, reward).

Rows keep file order.
"""

from __future__ import annotations

import logging
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

INSTITUTION = "mashreq"

MIN_COLUMNS = 5

SETTLEMENT_MARKER = "INWARD IPP CC"
LOYALTY_MARKER = "LOYALTY POINTS REDEMPTION"

# Bank markup below this is rounding noise.
MARKUP_THRESHOLD = Decimal("0.01")

PURCHASE = "purchase"
LOYALTY = "loyalty"
SETTLEMENT = "settlement"


@dataclass
class MashreqRow:
    """One data row of a Mashreq export.

    Attributes:
        line_num: 1-based line number in the file.
        date: Date as written, e.g. "22-Sep-2025".
        description: Raw merchant description.
        original_currency: Currency the merchant charged in.
        original_amount: Amount the merchant charged.
        local_amount: Signed amount billed to the card.
    """

    line_num: int
    date: str
    description: str
    original_currency: str
    original_amount: Decimal
    local_amount: Decimal

    @property
    def label(self) -> str:
        return f"{self.date} {self.description}"


def parse_file(file_path: Path) -> ParseResult:
    """Parse a Mashreq CSV export.

    Raises:
        ParseError: The file is missing, empty, or too many rows are
            malformed.
    """
    source = str(file_path)
    rows = read_csv_rows(file_path)
    records: list[MashreqRow] = []
    warnings: list[str] = []

    for line_num, cols in rows:
        if len(cols) < MIN_COLUMNS:
            warnings.append(
                f"{source}:{line_num}: skipped malformed row "
                f"(expected {MIN_COLUMNS} columns, got {len(cols)})"
            )
            continue

        date_str, description, currency, original, local = (c.strip() for c in cols[:5])
        try:
            records.append(
                MashreqRow(
                    line_num=line_num,
                    date=date_str,
                    description=description,
                    original_currency=currency.upper(),
                    original_amount=parse_amount(original),
                    local_amount=parse_amount(local),
                )
            )
        except ValueError as exc:
            warnings.append(f"{source}:{line_num}: skipped malformed row ({exc})")

    check_malformed(source, len(warnings), len(rows))
    return ParseResult(records=records, warnings=warnings)


def classify(row: MashreqRow) -> str:
    """Return the row's subtype: settlement, loyalty or purchase."""
    upper = row.description.upper()
    if SETTLEMENT_MARKER in upper:
        return SETTLEMENT
    if LOYALTY_MARKER in upper:
        return LOYALTY
    return PURCHASE


def map_record(row: MashreqRow, ctx: RunContext) -> Transaction | None:
    """Map one row to a transaction, or None to skip it."""
    try:
        draft = _base_draft(row, ctx)
    except SkippableRecord as exc:
        logger.info("SKIP %s: %s", row.label, exc)
        return None

    direction = "DR" if row.local_amount > 0 else "CR"
    if direction == "CR":
        draft.to_deposit(ctx.source_account_ref)

    handler = HANDLERS.get((classify(row), direction), _map_credit)
    return handler(row, draft, ctx).build()


def _base_draft(row: MashreqRow, ctx: RunContext) -> TransactionDraft:
    if row.local_amount == 0:
        raise SkippableRecord("zero amount")

    if classify(row) == SETTLEMENT:
        raise SkippableRecord("card payment already imported as transfer")

    try:
        posted = parse_date(row.date, ctx.settings.timezone)
    except ValueError as exc:
        raise SkippableRecord(str(exc)) from None

    amount = abs(row.local_amount)
    ledger_currency = ctx.settings.currency

    draft = TransactionDraft(
        kind=WITHDRAWAL,
        posted_date=posted,
        amount=amount,
        currency_code=ledger_currency,
        external_id=generate_fingerprint(
            INSTITUTION, row.date, row.description, -row.local_amount, row.line_num
        ),
        source_account_ref=ctx.source_account_ref,
        notes=f"Mashreq CSV line {row.line_num}\nDescription: {row.description}",
        merchant=row.description,
        tags=["mashreq-cc"],
    )

    original = abs(row.original_amount)
    if row.original_currency and row.original_currency != ledger_currency:
        draft.foreign_amount = original
        draft.foreign_currency_code = row.original_currency
        draft.tags.append("foreign-currency")
        draft.add_note(f"Original: {row.original_currency} {original:.2f}")
    elif original and abs(original - amount) > MARKUP_THRESHOLD:
        draft.add_note(
            f"Merchant charge: {ledger_currency} {original:.2f} "
            f"(billed: {ledger_currency} {amount:.2f})"
        )

    upper = row.description.upper()
    if "APPLE.COM/BILL" in upper:
        draft.tags.append("subscription")
    elif "DONATION" in upper:
        draft.tags.append("donation")
    elif "LOYALTY POINTS" in upper:
        draft.tags.append("loyalty-reward")

    return draft


def _map_purchase(row: MashreqRow, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    merchant = ctx.clean(row.description)
    draft.description = merchant
    draft.destination_name = ctx.match_expense(merchant)
    return draft


def _map_credit(row: MashreqRow, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    merchant = ctx.clean(row.description)
    draft.description = merchant
    draft.source_name = ctx.match_revenue(merchant)
    return draft


def _map_loyalty(row: MashreqRow, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    draft.description = "Mashreq Loyalty Points Redemption"
    draft.source_name = "Mashreq Rewards"
    return draft


Handler = Callable[[MashreqRow, TransactionDraft, RunContext], TransactionDraft]

HANDLERS: dict[tuple[str, str], Handler] = {
    (PURCHASE, "DR"): _map_purchase,
    (PURCHASE, "CR"): _map_credit,
    (LOYALTY, "CR"): _map_loyalty,
    (LOYALTY, "DR"): _map_purchase,
}
