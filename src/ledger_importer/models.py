"""Core data models for Ledger Importer.

This module defines the canonical transaction record, the settings
dataclasses, the error taxonomy, and the fingerprint helper. It has zero
internal imports -- everything depends on it, but it depends on nothing
within the package.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

WITHDRAWAL = "withdrawal"
DEPOSIT = "deposit"
TRANSFER = "transfer"

TRANSACTION_KINDS = (WITHDRAWAL, DEPOSIT, TRANSFER)

# Account types exposed by the account directory.
EXPENSE = "expense"
REVENUE = "revenue"
ASSET = "asset"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ParseError(Exception):
    """The input file is unreadable or malformed; the whole run is aborted."""


class SkippableRecord(Exception):
    """A record that maps to nothing (excluded status, zero amount, etc.)."""


class LedgerError(Exception):
    """Base class for rejections raised by a ledger sink."""


class DuplicateFingerprint(LedgerError):
    """The sink already holds a transaction with the same fingerprint."""

    def __init__(self, fingerprint: str, message: str = "") -> None:
        self.fingerprint = fingerprint
        super().__init__(message or f"duplicate fingerprint {fingerprint}")


class WriteFailure(LedgerError):
    """Any sink rejection other than a duplicate fingerprint."""


# ---------------------------------------------------------------------------
# Fingerprint
# ---------------------------------------------------------------------------


def generate_fingerprint(
    institution: str,
    raw_date: str,
    raw_description: str,
    signed_amount: Decimal,
    ordinal: str | int,
) -> str:
    """Generate a deterministic fingerprint for one raw export record.

    The fingerprint is the first 32 hex characters of a SHA-256 hash over the
    pipe-delimited concatenation of: institution, the date exactly as it
    appears in the export, the stripped raw description, the signed amount
    with two decimals, and the record ordinal (CSV line number or record id).

    Re-importing an overlapping export reproduces the same fingerprint for the
    same row, which is what lets the ledger reject it as a duplicate.

    Args:
        institution: Adapter name, e.g. "mashreq".
        raw_date: Date value as found in the source record.
        raw_description: Description as found in the source record.
        signed_amount: Amount, negative for debits.
        ordinal: 1-based CSV line number, or the JSON record id.

    Returns:
        A 32-character lowercase hex string.
    """
    amount = signed_amount.quantize(Decimal("0.01"))
    raw = f"{institution}|{raw_date.strip()}|{raw_description.strip()}|{amount}|{ordinal}"
    return hashlib.sha256(raw.encode()).hexdigest()[:32]


# ---------------------------------------------------------------------------
# Canonical transaction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transaction:
    """A canonical ledger transaction produced by a format adapter.

    Constructed once from one raw record and never mutated. Direction is
    carried by ``kind``; ``amount`` is always positive.

    Attributes:
        kind: "withdrawal", "deposit" or "transfer".
        posted_date: Day the bank posted the record, in the bank's timezone.
        amount: Positive amount in the settlement currency.
        currency_code: Settlement currency, e.g. "AED".
        description: Human-readable label.
        external_id: Fingerprint used for duplicate detection.
        source_account_ref: Id of a known source account, or None.
        source_name: Counterparty name when the source is not a known id.
        destination_account_ref: Id of a known destination account, or None.
        destination_name: Counterparty name when the destination is not a
            known id.
        tags: Short labels such as "pos-purchase" or "salary".
        notes: Audit trail: line numbers, references, raw narration.
        internal_reference: The bank's own reference number, if any.
        foreign_amount: Original charge amount when it was billed in another
            currency.
        foreign_currency_code: Currency of ``foreign_amount``.
        merchant: Raw merchant label used to group recurring payments.
    """

    kind: str
    posted_date: date
    amount: Decimal
    currency_code: str
    description: str
    external_id: str
    source_account_ref: int | None = None
    source_name: str | None = None
    destination_account_ref: int | None = None
    destination_name: str | None = None
    tags: frozenset[str] = frozenset()
    notes: str = ""
    internal_reference: str = ""
    foreign_amount: Decimal | None = None
    foreign_currency_code: str | None = None
    merchant: str = ""

    def __post_init__(self) -> None:
        if self.kind not in TRANSACTION_KINDS:
            raise ValueError(f"unknown transaction kind {self.kind!r}")
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")
        if (self.source_account_ref is None) == (not self.source_name):
            raise ValueError("exactly one of source_account_ref/source_name must be set")
        if (self.destination_account_ref is None) == (not self.destination_name):
            raise ValueError(
                "exactly one of destination_account_ref/destination_name must be set"
            )
        if self.kind == TRANSFER and self.source_account_ref is None:
            raise ValueError("a transfer must leave a known source account")
        if (self.foreign_amount is None) != (self.foreign_currency_code is None):
            raise ValueError("foreign_amount and foreign_currency_code go together")

    @property
    def source_label(self) -> str:
        """Display name of the source side."""
        if self.source_name:
            return self.source_name
        return f"(#{self.source_account_ref})"

    @property
    def destination_label(self) -> str:
        """Display name of the destination side."""
        if self.destination_name:
            return self.destination_name
        return f"(#{self.destination_account_ref})"


@dataclass
class TransactionDraft:
    """Mutable, partially-filled transaction that adapter handlers work on.

    Subtype handlers receive a draft with the fields common to every record
    of a format already set, fill in description, counterparty and tags, and
    hand it back. :meth:`build` freezes it into a :class:`Transaction`.
    """

    kind: str
    posted_date: date
    amount: Decimal
    currency_code: str
    external_id: str
    description: str = ""
    source_account_ref: int | None = None
    source_name: str | None = None
    destination_account_ref: int | None = None
    destination_name: str | None = None
    tags: list[str] = field(default_factory=list)
    notes: str = ""
    internal_reference: str = ""
    foreign_amount: Decimal | None = None
    foreign_currency_code: str | None = None
    merchant: str = ""

    def add_note(self, line: str) -> None:
        """Append *line* to the notes, one entry per line."""
        self.notes = f"{self.notes}\n{line}".strip()

    def to_deposit(self, account_ref: int) -> None:
        """Flip the draft so money flows into *account_ref*."""
        self.kind = DEPOSIT
        self.source_account_ref = None
        self.destination_account_ref = account_ref
        self.destination_name = None

    def build(self) -> Transaction:
        """Freeze the draft. Raises ``ValueError`` if an invariant is broken."""
        return Transaction(
            kind=self.kind,
            posted_date=self.posted_date,
            amount=self.amount,
            currency_code=self.currency_code,
            description=self.description,
            external_id=self.external_id,
            source_account_ref=self.source_account_ref,
            source_name=self.source_name,
            destination_account_ref=self.destination_account_ref,
            destination_name=self.destination_name,
            tags=frozenset(self.tags),
            notes=self.notes,
            internal_reference=self.internal_reference,
            foreign_amount=self.foreign_amount,
            foreign_currency_code=self.foreign_currency_code,
            merchant=self.merchant,
        )


# ---------------------------------------------------------------------------
# Parse and import results
# ---------------------------------------------------------------------------


@dataclass
class ParseResult:
    """Return type of every adapter's ``parse_file``.

    Attributes:
        records: Typed intermediate records, already in processing order.
        warnings: Rows rejected by the minimum-column or required-key check.
    """

    records: list = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ImportStats:
    """End-of-run tally for one import."""

    created: int = 0
    skipped: int = 0
    failed: int = 0
    transfer: int = 0
    withdrawal: int = 0
    deposit: int = 0

    @property
    def total(self) -> int:
        return self.withdrawal + self.deposit + self.transfer


@dataclass
class RecordOutcome:
    """What happened to one record during an import.

    Attributes:
        status: "preview", "created", "skipped", "duplicate" or "failed".
        transaction: The mapped transaction, or None when the record was
            skipped before mapping produced anything.
        message: Extra detail, e.g. the ledger's failure message.
    """

    status: str
    transaction: Transaction | None = None
    message: str = ""


@dataclass
class ImportResult:
    """Everything an import run produced.

    Attributes:
        stats: The end-of-run tally.
        outcomes: One outcome per parsed record, in processing order.
        warnings: Parser warnings and mapping problems.
        dry_run: Whether the run wrote anything.
    """

    stats: ImportStats = field(default_factory=ImportStats)
    outcomes: list[RecordOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CITIES = [
    "DUBAI",
    "SHARJAH",
    "ABUDHABI",
    "ABU DHABI",
    "AJMAN",
    "REDMOND",
    "ALMATY",
    "HELSINKI",
    "CORK",
    "PAYSEND.COM",
]


@dataclass
class ImportSettings:
    """Settings shared by every format adapter.

    Attributes:
        timezone: IANA zone the source banks post in.
        currency: Ledger (settlement) currency.
        cities: Trailing city names stripped from merchant strings.
        suffixes: Storefront billing suffixes stripped from merchant strings.
        vendor_prefixes: Payment-rail prefixes like ``GOOGLE*`` to drop.
        card_accounts: Last card digits to credit card asset account name.
        card_account_hints: Narration substring to credit card account name,
            consulted when no masked card number matches.
        payer_aliases: Narration pattern to revenue account name for
            incoming payments that carry no parseable payer.
    """

    timezone: str = "Asia/Dubai"
    currency: str = "AED"
    cities: list[str] = field(default_factory=lambda: list(DEFAULT_CITIES))
    suffixes: list[str] = field(default_factory=lambda: ["ITUNES.COM"])
    vendor_prefixes: list[str] = field(default_factory=lambda: ["GOOGLE", "PAYPAL"])
    card_accounts: dict[str, str] = field(default_factory=dict)
    card_account_hints: dict[str, str] = field(default_factory=dict)
    payer_aliases: dict[str, str] = field(default_factory=dict)


@dataclass
class RecurrenceSettings:
    """Tunable thresholds for recurring-payment detection.

    Attributes:
        bands: Frequency label to inclusive ``(low, high)`` day range, in
            ranking order.
        split_spread_ratio: A merchant group is considered for splitting when
            its amount spread exceeds this fraction of the minimum amount.
        split_floor: Minimum spread, in currency units, before splitting.
        cluster_ratio: An amount joins a cluster when within this fraction of
            the running cluster average.
        cluster_floor: Minimum cluster tolerance in currency units.
        fixed_amount_tolerance: Spread below which amounts count as fixed.
        band_slack_days: Widening applied to bands by the majority vote.
        majority_ratio: Share of gaps that must fall in a widened band.
        majority_min_count: Minimum number of gaps in a widened band.
    """

    bands: dict[str, tuple[int, int]] = field(
        default_factory=lambda: {
            "weekly": (5, 10),
            "bi-weekly": (12, 18),
            "monthly": (25, 35),
            "bi-monthly": (55, 70),
            "quarterly": (85, 100),
        }
    )
    split_spread_ratio: Decimal = Decimal("0.25")
    split_floor: Decimal = Decimal("2.0")
    cluster_ratio: Decimal = Decimal("0.15")
    cluster_floor: Decimal = Decimal("2.0")
    fixed_amount_tolerance: Decimal = Decimal("1.00")
    band_slack_days: int = 3
    majority_ratio: float = 0.4
    majority_min_count: int = 2


@dataclass
class LedgerConfig:
    """Where imported transactions are written.

    Attributes:
        backend: "firefly" for a Firefly III server, "memory" for a
            throwaway in-process ledger.
        base_url: Firefly III base URL, e.g. "http://localhost:8080".
        token_env: Name of the environment variable holding the personal
            access token.
        timeout: HTTP timeout in seconds.
    """

    backend: str = "firefly"
    base_url: str = "http://localhost:8080"
    token_env: str = "FIREFLY_TOKEN"
    timeout: float = 30.0


@dataclass
class AppConfig:
    """Top-level application configuration loaded from config.toml."""

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    imports: ImportSettings = field(default_factory=ImportSettings)
    recurrence: RecurrenceSettings = field(default_factory=RecurrenceSettings)
