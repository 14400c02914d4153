"""Recurring payment detection.

This module scans historical transactions to identify merchants that are
paid on a regular schedule, likely indicating subscriptions, rent, or
other recurring bills, and predicts when each will be paid next.

Detection algorithm:
- Debits are grouped by normalized merchant name
- A group of 3+ payments whose amounts spread widely is split into amount
  clusters, so two subscriptions at one merchant are told apart
- The average gap between payments is classified into a frequency band
  (weekly, bi-weekly, monthly, bi-monthly, quarterly); when the average
  misses every band, a band holding most of the individual gaps wins
- Groups with no band are not recurring and are dropped

All thresholds come from :class:`~ledger_importer.models.RecurrenceSettings`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from ledger_importer.matcher import RunContext
from ledger_importer.models import (
    TRANSFER,
    WITHDRAWAL,
    ImportSettings,
    RecurrenceSettings,
    Transaction,
)
from ledger_importer.normalizer import normalize

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown"
MONTHLY = "monthly"

_CENTS = Decimal("0.01")


@dataclass
class RecurrenceEntry:
    """One payment in a group."""

    date: date
    amount: Decimal


@dataclass
class RecurrenceGroup:
    """Payments to one merchant, oldest first."""

    merchant_key: str
    currency: str
    entries: list[RecurrenceEntry] = field(default_factory=list)


@dataclass
class RecurrenceFinding:
    """A merchant group classified as recurring.

    Attributes:
        merchant_label: Merchant name, suffixed with the average amount
            when the merchant's payments were split by amount.
        frequency: Band label, e.g. "monthly".
        avg_interval_days: Mean gap between consecutive payments.
        occurrence_count: Number of payments.
        min_amount: Smallest payment.
        avg_amount: Mean payment, rounded to cents.
        max_amount: Largest payment.
        fixed_amount: True if the spread is under the fixed-amount tolerance.
        first_date: Date of the first payment.
        last_date: Date of the latest payment.
        predicted_next_date: ``last_date`` plus the rounded average gap.
        currency: Currency of the payments.
        dates: Every payment date, oldest first.
        amounts: Every payment amount, in date order.
    """

    merchant_label: str
    frequency: str
    avg_interval_days: float
    occurrence_count: int
    min_amount: Decimal
    avg_amount: Decimal
    max_amount: Decimal
    fixed_amount: bool
    first_date: date
    last_date: date
    predicted_next_date: date
    currency: str = ""
    dates: list[date] = field(default_factory=list)
    amounts: list[Decimal] = field(default_factory=list)


@dataclass
class RecurrenceReport:
    """Ranked findings plus the estimated monthly recurring spend."""

    findings: list[RecurrenceFinding] = field(default_factory=list)
    monthly_total: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze(
    transactions: list[Transaction],
    settings: RecurrenceSettings | None = None,
) -> RecurrenceReport:
    """Detect recurring payments among *transactions*.

    Pure: nothing is read or written.  Only withdrawals and transfers are
    considered.

    Args:
        transactions: Historical transactions, in any order.
        settings: Thresholds; defaults to :class:`RecurrenceSettings`.

    Returns:
        A :class:`RecurrenceReport` whose findings are ranked by frequency
        band, ties kept in first-seen merchant order.
    """
    if settings is None:
        settings = RecurrenceSettings()

    groups = _group_by_merchant(transactions)

    findings: list[RecurrenceFinding] = []
    for group in groups:
        for label, entries in _refine(group, settings):
            finding = _classify_group(label, group.currency, entries, settings)
            if finding is not None:
                findings.append(finding)

    rank = {label: i for i, label in enumerate(settings.bands)}
    findings.sort(key=lambda f: rank.get(f.frequency, len(rank)))

    monthly_total = sum(
        (f.avg_amount for f in findings if f.frequency == MONTHLY), Decimal("0")
    )
    logger.info("Found %d recurring payment(s)", len(findings))
    return RecurrenceReport(findings=findings, monthly_total=monthly_total)


def analyze_records(
    records: list,
    adapter,
    settings: RecurrenceSettings | None = None,
    import_settings: ImportSettings | None = None,
) -> RecurrenceReport:
    """Map raw adapter records without a ledger, then :func:`analyze` them.

    Counterparty matching runs against an empty directory, so names come
    out exactly as normalized.
    """
    ctx = RunContext(source_account_ref=0, settings=import_settings or ImportSettings())
    transactions: list[Transaction] = []
    for record in records:
        try:
            transaction = adapter.map_record(record, ctx)
        except ValueError as exc:
            logger.warning("Could not map %s: %s", getattr(record, "label", record), exc)
            continue
        if transaction is not None:
            transactions.append(transaction)
    return analyze(transactions, settings)


def split_by_amount(
    entries: list[RecurrenceEntry],
    settings: RecurrenceSettings,
) -> list[list[RecurrenceEntry]]:
    """Split a merchant's payments into amount clusters.

    Returns ``[entries]`` unchanged unless the group has 3+ payments, their
    spread exceeds ``max(min * split_spread_ratio, split_floor)``, and the
    split yields at least two clusters of 2+ payments.  Clusters with a
    single payment are dropped from an accepted split.
    """
    if len(entries) < 3:
        return [entries]

    amounts = [e.amount for e in entries]
    low, high = min(amounts), max(amounts)
    if high - low <= max(low * settings.split_spread_ratio, settings.split_floor):
        return [entries]

    clusters: list[list[Decimal]] = []
    for amount in sorted(amounts):
        if clusters:
            current = clusters[-1]
            average = sum(current) / len(current)
            tolerance = max(average * settings.cluster_ratio, settings.cluster_floor)
            if abs(amount - average) < tolerance:
                current.append(amount)
                continue
        clusters.append([amount])

    if len(clusters) < 2:
        return [entries]

    centers = [sum(c) / len(c) for c in clusters]
    sub_groups: list[list[RecurrenceEntry]] = [[] for _ in centers]
    for entry in entries:
        nearest = min(range(len(centers)), key=lambda i: abs(entry.amount - centers[i]))
        sub_groups[nearest].append(entry)

    sub_groups = [g for g in sub_groups if len(g) >= 2]
    if len(sub_groups) < 2:
        return [entries]
    return sub_groups


def classify_frequency(
    avg_interval: float,
    gaps: list[int],
    settings: RecurrenceSettings,
) -> str | None:
    """Classify a payment rhythm into a frequency band.

    The average gap is tried against each band first.  Failing that, a band
    widened by ``band_slack_days`` on both ends wins when it holds at least
    ``majority_ratio`` of the gaps and at least ``majority_min_count`` of
    them.

    Returns:
        The band label, or None when the rhythm is irregular.
    """
    if not gaps:
        return None

    for label, (low, high) in settings.bands.items():
        if low <= avg_interval <= high:
            return label

    slack = settings.band_slack_days
    for label, (low, high) in settings.bands.items():
        in_band = sum(1 for gap in gaps if low - slack <= gap <= high + slack)
        if in_band / len(gaps) >= settings.majority_ratio and in_band >= settings.majority_min_count:
            return label

    return None


def predict_next(last_date: date, avg_interval: float) -> date:
    """Return *last_date* plus the average gap rounded half up."""
    days = Decimal(str(avg_interval)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return last_date + timedelta(days=int(days))


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _group_by_merchant(transactions: list[Transaction]) -> list[RecurrenceGroup]:
    groups: dict[str, RecurrenceGroup] = {}
    for txn in transactions:
        if txn.kind not in (WITHDRAWAL, TRANSFER):
            continue
        key = normalize(txn.merchant or txn.description, fallback=UNKNOWN_GROUP)
        group = groups.get(key)
        if group is None:
            group = groups[key] = RecurrenceGroup(merchant_key=key, currency=txn.currency_code)
        group.entries.append(RecurrenceEntry(date=txn.posted_date, amount=txn.amount))

    for group in groups.values():
        group.entries.sort(key=lambda e: e.date)
    return list(groups.values())


def _refine(
    group: RecurrenceGroup,
    settings: RecurrenceSettings,
) -> list[tuple[str, list[RecurrenceEntry]]]:
    sub_groups = split_by_amount(group.entries, settings)
    if len(sub_groups) == 1:
        return [(group.merchant_key, sub_groups[0])]

    refined = []
    for entries in sub_groups:
        average = _average(entries)
        refined.append((f"{group.merchant_key} ({group.currency} {average:.2f})", entries))
    return refined


def _classify_group(
    label: str,
    currency: str,
    entries: list[RecurrenceEntry],
    settings: RecurrenceSettings,
) -> RecurrenceFinding | None:
    if len(entries) < 2:
        return None

    gaps = [(b.date - a.date).days for a, b in zip(entries, entries[1:])]
    avg_interval = sum(gaps) / len(gaps)
    frequency = classify_frequency(avg_interval, gaps, settings)
    if frequency is None:
        logger.debug("%s: irregular gaps %s", label, gaps)
        return None

    amounts = [e.amount for e in entries]
    low, high = min(amounts), max(amounts)
    return RecurrenceFinding(
        merchant_label=label,
        frequency=frequency,
        avg_interval_days=round(avg_interval, 1),
        occurrence_count=len(entries),
        min_amount=low,
        avg_amount=_average(entries),
        max_amount=high,
        fixed_amount=(high - low) < settings.fixed_amount_tolerance,
        first_date=entries[0].date,
        last_date=entries[-1].date,
        predicted_next_date=predict_next(entries[-1].date, avg_interval),
        currency=currency,
        dates=[e.date for e in entries],
        amounts=amounts,
    )


def _average(entries: list[RecurrenceEntry]) -> Decimal:
    total = sum((e.amount for e in entries), Decimal("0"))
    return (total / len(entries)).quantize(_CENTS, rounding=ROUND_HALF_UP)
