"""Tests for ledger_importer.report — summaries and recurrence CSV export."""

from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from ledger_importer.models import (
    WITHDRAWAL,
    ImportResult,
    ImportStats,
    RecordOutcome,
    Transaction,
)
from ledger_importer.recurring import RecurrenceFinding, RecurrenceReport
from ledger_importer.report import (
    CSV_COLUMNS,
    export_findings,
    format_amount,
    format_outcome_line,
    print_import_summary,
    print_recurrence_report,
)


def _txn(**overrides) -> Transaction:
    fields = dict(
        kind=WITHDRAWAL,
        posted_date=date(2025, 9, 22),
        amount=Decimal("45.00"),
        currency_code="AED",
        description="Talabat Postpaid",
        external_id="fp",
        source_account_ref=1,
        destination_name="Talabat Postpaid",
    )
    fields.update(overrides)
    return Transaction(**fields)


def _finding(**overrides) -> RecurrenceFinding:
    fields = dict(
        merchant_label="Netflix.com",
        frequency="monthly",
        avg_interval_days=29.7,
        occurrence_count=4,
        min_amount=Decimal("39.00"),
        avg_amount=Decimal("39.00"),
        max_amount=Decimal("39.00"),
        fixed_amount=True,
        first_date=date(2025, 1, 5),
        last_date=date(2025, 4, 4),
        predicted_next_date=date(2025, 5, 4),
        currency="AED",
        dates=[date(2025, 1, 5), date(2025, 2, 4), date(2025, 3, 7), date(2025, 4, 4)],
        amounts=[Decimal("39.00")] * 4,
    )
    fields.update(overrides)
    return RecurrenceFinding(**fields)


# ---------------------------------------------------------------------------
# Import summary
# ---------------------------------------------------------------------------


class TestFormatOutcomeLine:
    def test_preview(self):
        """A preview line shows date, kind, amount and both sides."""
        line = format_outcome_line(RecordOutcome(status="preview", transaction=_txn()))
        assert line.split() == [
            "PREVIEW",
            "2025-09-22",
            "withdrawal",
            "45.00",
            "AED",
            "Talabat",
            "Postpaid",
            "(#1)",
            "->",
            "Talabat",
            "Postpaid",
        ]

    def test_foreign_amount_shown(self):
        """The foreign amount is appended in brackets."""
        txn = _txn(foreign_amount=Decimal("9.99"), foreign_currency_code="EUR")
        line = format_outcome_line(RecordOutcome(status="created", transaction=txn))
        assert line.strip().startswith("CREATED")
        assert line.endswith("[9.99 EUR]")

    def test_failure_message_appended(self):
        """Failure messages are appended in parentheses."""
        outcome = RecordOutcome(status="failed", transaction=_txn(), message="HTTP 500")
        assert format_outcome_line(outcome).endswith("(HTTP 500)")

    def test_duplicate_marker(self):
        """Duplicates are marked DUP."""
        outcome = RecordOutcome(status="duplicate", transaction=_txn(), message="Duplicate")
        assert format_outcome_line(outcome).strip().startswith("DUP")

    def test_skip_without_transaction(self):
        """Skips print their message alone."""
        outcome = RecordOutcome(status="skipped", message="28-Sep-2025 ZERO ROW")
        assert format_outcome_line(outcome) == "  SKIP     28-Sep-2025 ZERO ROW"


class TestPrintImportSummary:
    def test_dry_run_wording(self, capsys):
        """Dry runs report what would be created."""
        result = ImportResult(
            stats=ImportStats(skipped=2, withdrawal=4, deposit=1, transfer=1),
            dry_run=True,
        )

        print_import_summary(result, dry_run=True)

        out = capsys.readouterr().out
        assert (
            "Dry run complete. 6 transactions would be created "
            "(4 withdrawals, 1 deposits, 1 transfers), 2 skipped."
        ) in out

    def test_apply_wording_and_warnings(self, capsys):
        """Apply runs report counts and list warnings."""
        result = ImportResult(
            stats=ImportStats(created=5, skipped=2, failed=1, withdrawal=4, deposit=1),
            warnings=["export.csv:12: skipped malformed row"],
        )

        print_import_summary(result, dry_run=False)

        out = capsys.readouterr().out
        assert "Done. Created 5, skipped 2, failed 1 (4 withdrawals, 1 deposits, 0 transfers)." in out
        assert "Warnings: 1" in out
        assert "  - export.csv:12: skipped malformed row" in out

    def test_record_lines_printed(self, capsys):
        """Each outcome gets its own line."""
        result = ImportResult(outcomes=[RecordOutcome(status="created", transaction=_txn())])
        print_import_summary(result, dry_run=False)
        assert "CREATED" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Recurrence report
# ---------------------------------------------------------------------------


class TestFormatAmount:
    def test_fixed(self):
        """A fixed amount prints once."""
        assert format_amount(_finding()) == "AED 39.00"

    def test_varying(self):
        """A varying amount prints its range and average."""
        finding = _finding(
            fixed_amount=False,
            min_amount=Decimal("50.00"),
            avg_amount=Decimal("51.17"),
            max_amount=Decimal("52.50"),
        )
        assert format_amount(finding) == "AED 50.00 - 52.50 (avg 51.17)"


class TestPrintRecurrenceReport:
    def test_contents(self, capsys):
        """The report lists each finding and the monthly total."""
        report = RecurrenceReport(findings=[_finding()], monthly_total=Decimal("39.00"))

        print_recurrence_report(report, "AED")

        out = capsys.readouterr().out
        assert "RECURRING TRANSACTIONS ANALYSIS" in out
        assert "Netflix.com" in out
        assert "MONTHLY (every ~29.7 days)" in out
        assert "Next expected: 2025-05-04" in out
        assert "Total recurring items found: 1" in out
        assert "Estimated monthly recurring spend: AED 39.00" in out
        assert "Amounts:" not in out

    def test_varying_amounts_listed(self, capsys):
        """Varying findings list every amount."""
        finding = _finding(
            fixed_amount=False,
            amounts=[Decimal("1200.00"), Decimal("1350.50")],
        )
        print_recurrence_report(RecurrenceReport(findings=[finding]), "AED")
        assert "Amounts:       1,200.00, 1,350.50" in capsys.readouterr().out

    def test_empty(self, capsys):
        """An empty report still prints the totals."""
        print_recurrence_report(RecurrenceReport(), "AED")
        out = capsys.readouterr().out
        assert "Total recurring items found: 0" in out
        assert "AED 0.00" in out


class TestExportFindings:
    def test_columns_and_values(self, tmp_path: Path):
        """The CSV has one row per finding under the fixed header."""
        path = export_findings(
            RecurrenceReport(findings=[_finding()]), tmp_path / "reports" / "recurring.csv"
        )

        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            rows = list(reader)

        assert reader.fieldnames == CSV_COLUMNS
        assert rows == [
            {
                "merchant": "Netflix.com",
                "frequency": "monthly",
                "avg_interval_days": "29.7",
                "occurrences": "4",
                "currency": "AED",
                "min_amount": "39.00",
                "avg_amount": "39.00",
                "max_amount": "39.00",
                "fixed_amount": "True",
                "first_date": "2025-01-05",
                "last_date": "2025-04-04",
                "next_expected": "2025-05-04",
            }
        ]

    @pytest.mark.parametrize("count", [0, 2])
    def test_row_count(self, tmp_path: Path, count):
        """Row count matches finding count."""
        report = RecurrenceReport(findings=[_finding()] * count)
        path = export_findings(report, tmp_path / "out.csv")
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == count + 1
