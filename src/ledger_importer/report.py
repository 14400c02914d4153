"""Import summaries, recurrence reports, and CSV export.

- :func:`format_outcome_line` renders one per-record line (PREVIEW,
  CREATED, SKIP, DUP, FAIL).
- :func:`print_import_summary` prints every record line plus the
  end-of-run tally to stdout.
- :func:`print_recurrence_report` prints the recurring payments found by
  :func:`~ledger_importer.recurring.analyze`.
- :func:`export_findings` writes those findings to a CSV file.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ledger_importer.models import ImportResult, RecordOutcome
from ledger_importer.recurring import RecurrenceFinding, RecurrenceReport

# Fixed output column order for exported findings.
CSV_COLUMNS = [
    "merchant",
    "frequency",
    "avg_interval_days",
    "occurrences",
    "currency",
    "min_amount",
    "avg_amount",
    "max_amount",
    "fixed_amount",
    "first_date",
    "last_date",
    "next_expected",
]

_MARKERS = {
    "preview": "PREVIEW",
    "created": "CREATED",
    "skipped": "SKIP",
    "duplicate": "DUP",
    "failed": "FAIL",
}

_RULE = "=" * 71


# ---------------------------------------------------------------------------
# Import summary
# ---------------------------------------------------------------------------


def format_outcome_line(outcome: RecordOutcome) -> str:
    """Render one record outcome as a single report line.

    Example::

        PREVIEW  2025-09-22  withdrawal  45.00 AED  Talabat Postpaid  (#1) -> Talabat Postpaid
    """
    marker = _MARKERS.get(outcome.status, outcome.status.upper())
    txn = outcome.transaction
    if txn is None:
        return f"  {marker:<8} {outcome.message}".rstrip()

    line = (
        f"  {marker:<8} {txn.posted_date.isoformat()}  {txn.kind:<10} "
        f"{txn.amount:>10.2f} {txn.currency_code}  {txn.description}  "
        f"{txn.source_label} -> {txn.destination_label}"
    )
    if txn.foreign_amount is not None:
        line += f"  [{txn.foreign_amount:.2f} {txn.foreign_currency_code}]"
    if outcome.status in ("duplicate", "failed") and outcome.message:
        line += f"  ({outcome.message})"
    return line


def print_import_summary(result: ImportResult, dry_run: bool) -> None:
    """Print per-record lines and the end-of-run tally to stdout.

    Args:
        result: The :class:`~ledger_importer.models.ImportResult` of a run.
        dry_run: Whether the run was a dry run; selects the tally wording.
    """
    stats = result.stats

    print()
    for outcome in result.outcomes:
        print(format_outcome_line(outcome))

    print()
    if dry_run:
        print(
            f"Dry run complete. {stats.total} transactions would be created "
            f"({stats.withdrawal} withdrawals, {stats.deposit} deposits, "
            f"{stats.transfer} transfers), {stats.skipped} skipped."
        )
    else:
        print(
            f"Done. Created {stats.created}, skipped {stats.skipped}, "
            f"failed {stats.failed} "
            f"({stats.withdrawal} withdrawals, {stats.deposit} deposits, "
            f"{stats.transfer} transfers)."
        )

    if result.warnings:
        print()
        print(f"Warnings: {len(result.warnings)}")
        for w in result.warnings:
            print(f"  - {w}")

    print()


# ---------------------------------------------------------------------------
# Recurrence report
# ---------------------------------------------------------------------------


def format_amount(finding: RecurrenceFinding) -> str:
    """``"AED 9.99"`` for fixed amounts, else the range and average."""
    if finding.fixed_amount:
        return f"{finding.currency} {finding.avg_amount:.2f}"
    return (
        f"{finding.currency} {finding.min_amount:.2f} - {finding.max_amount:.2f} "
        f"(avg {finding.avg_amount:.2f})"
    )


def print_recurrence_report(report: RecurrenceReport, currency: str) -> None:
    """Print every finding and the estimated monthly recurring spend.

    Args:
        report: Output of :func:`~ledger_importer.recurring.analyze`.
        currency: Currency label for the monthly total.
    """
    print()
    print(_RULE)
    print("  RECURRING TRANSACTIONS ANALYSIS")
    print(_RULE)
    print()

    for f in report.findings:
        print(f"  {f.merchant_label}")
        print(f"    Frequency:     {f.frequency.upper()} (every ~{f.avg_interval_days} days)")
        print(f"    Amount:        {format_amount(f)}")
        print(
            f"    Occurrences:   {f.occurrence_count} "
            f"({f.first_date.isoformat()} -> {f.last_date.isoformat()})"
        )
        print(f"    Next expected: {f.predicted_next_date.isoformat()}")
        print(f"    Dates:         {', '.join(d.isoformat() for d in f.dates)}")
        if not f.fixed_amount:
            print(f"    Amounts:       {', '.join(f'{a:,.2f}' for a in f.amounts)}")
        print()

    print(_RULE)
    print(f"  Total recurring items found: {len(report.findings)}")
    print(f"  Estimated monthly recurring spend: {currency} {report.monthly_total:.2f}")
    print(_RULE)
    print()


def export_findings(report: RecurrenceReport, output_path: str | Path) -> Path:
    """Write the findings to a CSV file with the fixed column schema.

    Overwrites the file if it already exists.

    Returns:
        The :class:`~pathlib.Path` to the written CSV file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for finding in report.findings:
            writer.writerow(
                {
                    "merchant": finding.merchant_label,
                    "frequency": finding.frequency,
                    "avg_interval_days": str(finding.avg_interval_days),
                    "occurrences": str(finding.occurrence_count),
                    "currency": finding.currency,
                    "min_amount": str(finding.min_amount),
                    "avg_amount": str(finding.avg_amount),
                    "max_amount": str(finding.max_amount),
                    "fixed_amount": str(finding.fixed_amount),
                    "first_date": finding.first_date.isoformat(),
                    "last_date": finding.last_date.isoformat(),
                    "next_expected": finding.predicted_next_date.isoformat(),
                }
            )

    return output_path
