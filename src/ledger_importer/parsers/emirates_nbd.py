"""Emirates NBD bank account JSON parser.

Emirates NBD JSON format::

    {"transactions": [
        {"id": "...", "type": "POS", "creditDebitIndicator": "DR",
         "amount": 45.0, "currencyCode": "AED", "date": 1758499200000,
         "status": "SUCCESS",
         "terminal": {"name": "...", "city": "...", "country": "AE"},
         "purpose": {"narrations": ["..."],
                     "extendedNarrations": [{"languange": "en",
                                             "title": "...",
                                             "subTitle": "..."}]},
         "accountAmount": {"amount": 45.0, "currencyCode": "AED"},
         "exchangeRate": 1.0, "referenceNumber": "...",
         "bookingReference": "..."},
        ...
    ]}

The ``languange`` key is misspelled upstream and is matched literally.

Sign convention:
    ``amount`` is unsigned; ``creditDebitIndicator`` (DR/CR) gives the
    direction.

Records come in no particular order and are sorted oldest-first so the
ledger's running balance reads correctly.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from decimal import Decimal
from pathlib import Path

from ledger_importer.matcher import RunContext
from ledger_importer.models import (
    TRANSFER,
    WITHDRAWAL,
    ParseError,
    ParseResult,
    SkippableRecord,
    Transaction,
    TransactionDraft,
    generate_fingerprint,
)
from ledger_importer.normalizer import UNKNOWN_PAYER, title_case
from ledger_importer.parsers.common import (
    MIN_EPOCH_MS,
    check_malformed,
    detect_card_account,
    parse_amount,
    parse_date,
    scan_foreign_amount,
)

logger = logging.getLogger(__name__)

INSTITUTION = "emirates_nbd"

REQUIRED_KEYS = {"type", "creditDebitIndicator", "amount"}

EXCLUDED_STATUSES = {"FAILED", "CANCELLED", "REVERSED", "REFUNDED", "DROPPED"}

TYPE_TAGS = {
    "ECOMMERCE": "e-commerce",
    "POS": "pos-purchase",
    "CARD_PAYMENT": "card-payment",
    "SALARY": "salary",
    "REVERSAL": "reversal",
    "CHQ_CLEARING": "cheque",
    "P2P": "p2p",
    "DEPOSIT": "cash-deposit",
    "CHARGES": "bank-fee",
    "WITHDRAWAL": "atm-withdrawal",
}

TRANSFER_TAGS = {
    "INTRA_BANK": "internal-transfer",
    "LOCAL": "local-transfer",
    "INTRA_GROUP": "intra-group-transfer",
    "INTERNATIONAL": "international-transfer",
}

# Subtitles that say nothing about who received a transfer.
_GENERIC_TRANSFER_SUBTITLES = {
    "Local transfer",
    "Transfer to other Emirates NBD account",
    "Account transfer",
}

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)

_UAE_PHONE = re.compile(r"^00971\d+$")
_EMPLOYER_BEFORE_REF = re.compile(r"[A-Z]{3}\s+[\d.,]+\s+(.+?)\s*/REF/", re.IGNORECASE)
_EMPLOYER_AFTER_AMOUNT = re.compile(
    r"[A-Z]{3}\s+[\d.,]+\s+(.+?)(?:\s+PA\s*YMENT|\s*$)", re.IGNORECASE
)
_PAYER_COMPANY = re.compile(r"([A-Z][A-Z\s]+(?:FZC|LLC|PJSC|FZE))(?:\s|$)", re.IGNORECASE)


@dataclass
class NbdRecord:
    """One validated element of the ``transactions`` array.

    Attributes:
        index: Position in the source array.
        record_id: The bank's ``id``, or empty string.
        type: Transaction type code, e.g. "POS" or "SALARY".
        direction: "DR" or "CR".
        amount: Unsigned amount in ``currency``.
        currency: Currency of ``amount``.
        date_value: ``date`` (epoch ms) or ``transactionDate`` as found.
        status: Upper-cased status, e.g. "SUCCESS".
        title: English narration title.
        subtitle: English narration subtitle.
        terminal_name: Card terminal name, for card purchases.
        terminal_city: Card terminal city.
        terminal_country: Card terminal country code.
        narrations: Free-text narration lines.
        account_amount: Amount in the account's currency, if given.
        account_currency: The account's currency, if given.
        exchange_rate: Applied exchange rate (1 when none).
        reference: ``referenceNumber`` or ``bookingReference``.
        booking_reference: ``bookingReference``, if given.
        merchant_key: Provider-side merchant key, e.g. "careem_food".
    """

    index: int
    record_id: str
    type: str
    direction: str
    amount: Decimal
    currency: str
    date_value: int | float | str | None
    status: str = ""
    title: str = ""
    subtitle: str = ""
    terminal_name: str = ""
    terminal_city: str = ""
    terminal_country: str = ""
    narrations: list[str] = field(default_factory=list)
    account_amount: Decimal | None = None
    account_currency: str | None = None
    exchange_rate: Decimal = Decimal("1")
    reference: str = ""
    booking_reference: str = ""
    merchant_key: str = ""

    @property
    def label(self) -> str:
        return f"{self.type} {self.direction} {self.title or self.terminal_name}".strip()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_file(file_path: Path) -> ParseResult:
    """Parse an Emirates NBD JSON export into typed records, oldest first.

    Args:
        file_path: Path to the JSON file.

    Returns:
        A ParseResult; rejected elements are reported as warnings.

    Raises:
        ParseError: The file is missing, is not JSON, has no top-level
            ``transactions`` array, or too many elements are malformed.
    """
    source = str(file_path)
    try:
        raw = Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ParseError(f"{source}: file not found") from None
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"{source}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(f"{source}: invalid JSON: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("transactions"), list):
        raise ParseError(f'{source}: expected a top-level "transactions" array')

    records: list[NbdRecord] = []
    warnings: list[str] = []
    items = data["transactions"]

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            warnings.append(f"{source}: skipped malformed record {index} (not an object)")
            continue

        missing = REQUIRED_KEYS - item.keys()
        if missing:
            warnings.append(
                f"{source}: skipped malformed record {index} "
                f"(missing {', '.join(sorted(missing))})"
            )
            continue

        try:
            records.append(_to_record(index, item))
        except (ValueError, TypeError, AttributeError) as exc:
            warnings.append(f"{source}: skipped malformed record {index} ({exc})")

    check_malformed(source, len(warnings), len(items))

    records.sort(key=_sort_key)
    return ParseResult(records=records, warnings=warnings)


def _to_record(index: int, item: dict) -> NbdRecord:
    english = _english_narration(item)
    terminal = item.get("terminal") or {}
    purpose = item.get("purpose") or {}
    account_amount = item.get("accountAmount") or {}
    enriched = item.get("mlEnriched") or {}

    raw_account_amount = account_amount.get("amount")
    date_value = item.get("date")
    if date_value is None:
        date_value = item.get("transactionDate")

    return NbdRecord(
        index=index,
        record_id=str(item.get("id") or ""),
        type=str(item["type"] or "").strip().upper(),
        direction=str(item["creditDebitIndicator"] or "").strip().upper(),
        amount=abs(_optional_amount(item["amount"], Decimal("0"))),
        currency=str(item.get("currencyCode") or "").strip().upper(),
        date_value=date_value,
        status=str(item.get("status") or "").strip().upper(),
        title=str(english.get("title") or "").strip(),
        subtitle=str(english.get("subTitle") or "").strip(),
        terminal_name=str(terminal.get("name") or "").strip(),
        terminal_city=str(terminal.get("city") or "").strip(),
        terminal_country=str(terminal.get("country") or "").strip(),
        narrations=[str(n) for n in purpose.get("narrations") or []],
        account_amount=(
            abs(parse_amount(raw_account_amount)) if raw_account_amount is not None else None
        ),
        account_currency=account_amount.get("currencyCode"),
        exchange_rate=_optional_amount(item.get("exchangeRate"), Decimal("1")),
        reference=str(item.get("referenceNumber") or item.get("bookingReference") or ""),
        booking_reference=str(item.get("bookingReference") or ""),
        merchant_key=str(enriched.get("merchantKey") or ""),
    )


def _optional_amount(value: str | float | int | None, default: Decimal) -> Decimal:
    """Parse an amount that the bank may send as null or blank."""
    if value is None or not str(value).strip():
        return default
    return parse_amount(value)


def _english_narration(item: dict) -> dict:
    purpose = item.get("purpose") or {}
    for narration in purpose.get("extendedNarrations") or []:
        if isinstance(narration, dict) and narration.get("languange") == "en":
            return narration
    return {}


def _sort_key(record: NbdRecord) -> datetime:
    """Posting instant of *record*; undated records sort first.

    Bare dates and naive timestamps are read as UTC.
    """
    value = record.date_value
    if value is None:
        return _EARLIEST

    if isinstance(value, (int, float)) or str(value).strip().isdigit():
        millis = int(value)
        if millis < MIN_EPOCH_MS:
            return _EARLIEST
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

    text = str(value).strip()
    try:
        stamp = datetime.fromisoformat(text)
    except ValueError:
        try:
            day = parse_date(text, "UTC")
        except ValueError:
            return _EARLIEST
        return datetime.combine(day, time.min, tzinfo=timezone.utc)

    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=timezone.utc)
    return stamp


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def map_record(record: NbdRecord, ctx: RunContext) -> Transaction | None:
    """Map one record to a canonical transaction.

    Returns:
        The transaction, or None when the record is skipped: excluded
        status, card-side settlement already imported as a transfer, zero
        amount, missing date, or unknown direction.
    """
    try:
        draft = _base_draft(record, ctx)
    except SkippableRecord as exc:
        logger.info("SKIP %s: %s", record.label, exc)
        return None

    if record.direction == "CR":
        draft.to_deposit(ctx.source_account_ref)

    handler = HANDLERS.get((record.type, record.direction))
    if handler is None:
        handler = _map_generic_debit if record.direction == "DR" else _map_generic_credit

    return handler(record, draft, ctx).build()


def _base_draft(record: NbdRecord, ctx: RunContext) -> TransactionDraft:
    """Fill the fields every record shares; raise SkippableRecord to skip."""
    if record.status in EXCLUDED_STATUSES:
        raise SkippableRecord(f"status {record.status}")

    if record.type == "PAYMENT" and record.direction == "CR" and not _has_date(record):
        raise SkippableRecord("card payment already imported as transfer")

    if record.direction not in ("DR", "CR"):
        raise SkippableRecord(f"unknown direction {record.direction!r}")

    if record.amount == 0:
        raise SkippableRecord("zero amount")

    try:
        posted = parse_date(record.date_value, ctx.settings.timezone)
    except ValueError as exc:
        raise SkippableRecord(str(exc)) from None

    amount = record.amount
    currency = record.currency or ctx.settings.currency
    foreign: tuple[Decimal, str] | None = None

    if record.exchange_rate != 1 or (
        record.account_currency and record.account_currency != currency
    ):
        foreign = (amount, currency)
        if record.account_amount is not None:
            amount = record.account_amount
        currency = record.account_currency or ctx.settings.currency
    else:
        foreign = scan_foreign_amount(record.narrations)

    signed = -record.amount if record.direction == "DR" else record.amount
    draft = TransactionDraft(
        kind=WITHDRAWAL,
        posted_date=posted,
        amount=amount,
        currency_code=currency,
        external_id=generate_fingerprint(
            INSTITUTION,
            str(record.date_value),
            record.title or record.terminal_name,
            signed,
            record.record_id or record.reference or record.index,
        ),
        source_account_ref=ctx.source_account_ref,
        notes=_build_notes(record),
        internal_reference=record.reference,
        merchant=_merchant_label(record),
    )

    if record.type in TYPE_TAGS:
        draft.tags.append(TYPE_TAGS[record.type])

    if foreign is not None and foreign[1] != currency:
        draft.foreign_amount, draft.foreign_currency_code = foreign
        draft.tags.append("foreign-currency")

    return draft


def _has_date(record: NbdRecord) -> bool:
    if record.date_value is None:
        return False
    if isinstance(record.date_value, (int, float)):
        return record.date_value >= MIN_EPOCH_MS
    return bool(str(record.date_value).strip())


def _build_notes(record: NbdRecord) -> str:
    lines = [f"Emirates NBD Ref: {record.reference}"]
    if record.booking_reference:
        lines.append(f"Booking: {record.booking_reference}")
    narrations = [n.strip() for n in record.narrations if n.strip()]
    if narrations:
        lines.append("Narration: " + " / ".join(narrations))
    return "\n".join(lines)


def _merchant_label(record: NbdRecord) -> str:
    """Raw merchant label for recurrence grouping."""
    if record.title:
        return record.title
    if record.terminal_name:
        return record.terminal_name
    if record.merchant_key:
        return title_case(re.sub(r"[_-]", " ", record.merchant_key).title())
    return ""


# -- DR handlers ------------------------------------------------------------


def _map_merchant_purchase(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    merchant = ctx.clean(record.terminal_name or record.title)
    draft.description = merchant
    draft.destination_name = ctx.match_expense(merchant)
    if record.terminal_city and record.terminal_country:
        draft.add_note(f"Location: {record.terminal_city}, {record.terminal_country}")
    return draft


def _map_card_payment(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    card_account = detect_card_account(
        " ".join([*record.narrations, record.subtitle]),
        ctx.settings.card_accounts,
        ctx.settings.card_account_hints,
    )
    if card_account is not None:
        draft.kind = TRANSFER
        draft.description = f"Credit Card Payment - {card_account}"
        draft.destination_name = card_account
        draft.tags.append("credit-card-payment")
    else:
        draft.description = "Debit Card Settlement"
        draft.destination_name = "Card Payment (Unidentified Merchant)"
    return draft


def _map_bank_transfer(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    if record.subtitle and record.subtitle not in _GENERIC_TRANSFER_SUBTITLES:
        recipient = ctx.clean(record.subtitle, fallback="Unknown Recipient")
    else:
        recipient = ctx.clean(record.title, fallback="Unknown Recipient")
    draft.description = f"Transfer to {recipient}"
    draft.destination_name = ctx.match_expense(recipient)
    draft.tags.append(TRANSFER_TAGS.get(record.type, "bank-transfer"))
    return draft


def _map_p2p(record: NbdRecord, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    recipient = record.subtitle or record.title
    if _UAE_PHONE.match(recipient):
        recipient = f"AANI - {recipient}"
    else:
        recipient = ctx.clean(recipient, fallback="Unknown Recipient")
    draft.description = f"AANI Payment to {recipient}"
    draft.destination_name = ctx.match_expense(recipient)
    draft.tags.append("aani-payment")
    return draft


def _map_cheque(record: NbdRecord, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    draft.description = "Cheque Clearing"
    draft.destination_name = "Cheque Payment"
    draft.tags.append("cheque")
    if record.subtitle:
        draft.add_note(record.subtitle)
    return draft


def _map_atm_withdrawal(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    draft.description = "ATM Cash Withdrawal"
    draft.destination_name = "Cash / ATM"
    draft.tags.append("atm-withdrawal")
    if record.subtitle:
        draft.add_note(record.subtitle)
    return draft


def _map_bank_fee(record: NbdRecord, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    draft.description = "Bank Fee / Charge"
    draft.destination_name = "Emirates NBD Fees"
    draft.tags.append("bank-fee")
    return draft


def _map_generic_debit(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    name = record.title if record.title and record.title != "?" else record.subtitle
    draft.description = ctx.clean(name, fallback="Unknown Debit")
    draft.destination_name = draft.description
    return draft


# -- CR handlers ------------------------------------------------------------


def _map_salary(record: NbdRecord, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    employer = _extract_employer(record.subtitle, ctx)
    draft.description = f"Salary - {employer}"
    draft.source_name = ctx.match_revenue(employer)
    draft.tags.append("salary")
    return draft


def _map_refund(record: NbdRecord, draft: TransactionDraft, ctx: RunContext) -> TransactionDraft:
    merchant = ctx.clean(record.terminal_name or record.title)
    draft.description = f"Refund - {merchant}"
    draft.source_name = merchant
    draft.tags.append("refund")
    return draft


def _map_cash_deposit(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    draft.description = "Cash Deposit"
    draft.source_name = "Cash / ATM"
    draft.tags.append("cash-deposit")
    if record.subtitle:
        draft.add_note(record.subtitle)
    return draft


def _map_other_credit(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    combined = " ".join([record.subtitle, *record.narrations])

    for alias, account_name in ctx.settings.payer_aliases.items():
        if re.search(_alias_pattern(alias), combined, re.IGNORECASE):
            draft.description = f"{account_name} Payout"
            draft.source_name = ctx.match_revenue(account_name)
            draft.tags.append("business-income")
            return draft

    payer = _extract_payer(record.subtitle, ctx)
    draft.description = f"Incoming - {payer}"
    draft.source_name = ctx.match_revenue(payer)
    return draft


def _map_generic_credit(
    record: NbdRecord, draft: TransactionDraft, ctx: RunContext
) -> TransactionDraft:
    name = record.title if record.title and record.title != "?" else record.subtitle
    draft.description = ctx.clean(name, fallback="Unknown Income")
    draft.source_name = draft.description
    return draft


def _extract_employer(subtitle: str, ctx: RunContext) -> str:
    """Pull the employer out of a salary narration.

    Salary subtitles look like ``"SALARY AED 25,000.00 DEEL AE FZE /REF/SAL/..."``.
    """
    for pattern in (_EMPLOYER_BEFORE_REF, _EMPLOYER_AFTER_AMOUNT):
        match = pattern.search(subtitle)
        if match and match.group(1).strip():
            return ctx.clean(match.group(1), fallback="Employer")
    return "Employer"


def _extract_payer(subtitle: str, ctx: RunContext) -> str:
    match = _PAYER_COMPANY.search(subtitle)
    if match:
        return ctx.clean(match.group(1), fallback=UNKNOWN_PAYER)
    return ctx.clean(subtitle, fallback=UNKNOWN_PAYER)


def _alias_pattern(alias: str) -> str:
    return r"\s+".join(re.escape(word) for word in alias.split())


Handler = Callable[[NbdRecord, TransactionDraft, RunContext], TransactionDraft]

HANDLERS: dict[tuple[str, str], Handler] = {
    ("ECOMMERCE", "DR"): _map_merchant_purchase,
    ("POS", "DR"): _map_merchant_purchase,
    ("CARD_PAYMENT", "DR"): _map_card_payment,
    ("INTRA_BANK", "DR"): _map_bank_transfer,
    ("LOCAL", "DR"): _map_bank_transfer,
    ("INTRA_GROUP", "DR"): _map_bank_transfer,
    ("INTERNATIONAL", "DR"): _map_bank_transfer,
    ("P2P", "DR"): _map_p2p,
    ("CHQ_CLEARING", "DR"): _map_cheque,
    ("WITHDRAWAL", "DR"): _map_atm_withdrawal,
    ("CHARGES", "DR"): _map_bank_fee,
    ("OTHER", "DR"): _map_bank_fee,
    ("SALARY", "CR"): _map_salary,
    ("REVERSAL", "CR"): _map_refund,
    ("ECOMMERCE", "CR"): _map_refund,
    ("DEPOSIT", "CR"): _map_cash_deposit,
    ("OTHER", "CR"): _map_other_credit,
}
