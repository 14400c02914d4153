"""Tests for ledger_importer.models — transaction invariants and fingerprints."""

from datetime import date
from decimal import Decimal

import pytest

from ledger_importer.models import (
    DEPOSIT,
    TRANSFER,
    WITHDRAWAL,
    AppConfig,
    DuplicateFingerprint,
    ImportStats,
    LedgerError,
    Transaction,
    TransactionDraft,
    WriteFailure,
    generate_fingerprint,
)

# ---------------------------------------------------------------------------
# generate_fingerprint
# ---------------------------------------------------------------------------


class TestGenerateFingerprint:
    """Tests for deterministic fingerprint generation."""

    def test_basic_determinism(self):
        """Same inputs always produce the same fingerprint."""
        kwargs = dict(
            institution="mashreq",
            raw_date="22-Sep-2025",
            raw_description="TALABAT POSTPAID DUBAI",
            signed_amount=Decimal("-45.00"),
            ordinal=2,
        )
        assert generate_fingerprint(**kwargs) == generate_fingerprint(**kwargs)

    def test_fingerprint_is_32_hex_chars(self):
        """Fingerprint should be exactly 32 lowercase hex characters."""
        fp = generate_fingerprint("fab", "15/10/2025", "FIND SALT", Decimal("-120"), 2)
        assert len(fp) == 32
        assert all(c in "0123456789abcdef" for c in fp)

    def test_amount_is_formatted_with_two_decimals(self):
        """45, 45.0 and 45.00 are the same amount."""
        a = generate_fingerprint("mashreq", "d", "x", Decimal("45"), 2)
        b = generate_fingerprint("mashreq", "d", "x", Decimal("45.00"), 2)
        assert a == b

    def test_sign_matters(self):
        """A debit and a credit of the same amount differ."""
        debit = generate_fingerprint("fab", "d", "x", Decimal("-10"), 2)
        credit = generate_fingerprint("fab", "d", "x", Decimal("10"), 2)
        assert debit != credit

    def test_ordinal_distinguishes_identical_rows(self):
        """Two identical purchases on one day get different fingerprints."""
        first = generate_fingerprint("mashreq", "d", "x", Decimal("-5"), 2)
        second = generate_fingerprint("mashreq", "d", "x", Decimal("-5"), 3)
        assert first != second

    def test_description_whitespace_is_trimmed(self):
        """Surrounding whitespace in the description is ignored."""
        a = generate_fingerprint("mashreq", "d", "  TALABAT ", Decimal("-5"), 2)
        b = generate_fingerprint("mashreq", "d", "TALABAT", Decimal("-5"), 2)
        assert a == b


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


def _withdrawal(**overrides) -> Transaction:
    fields = dict(
        kind=WITHDRAWAL,
        posted_date=date(2025, 9, 22),
        amount=Decimal("45.00"),
        currency_code="AED",
        description="Talabat Postpaid",
        external_id="abc",
        source_account_ref=1,
        destination_name="Talabat",
    )
    fields.update(overrides)
    return Transaction(**fields)


class TestTransaction:
    """Tests for Transaction construction and invariants."""

    def test_valid_withdrawal(self):
        """A well-formed withdrawal builds with no tags."""
        txn = _withdrawal()
        assert txn.kind == WITHDRAWAL
        assert txn.amount == Decimal("45.00")
        assert txn.tags == frozenset()

    def test_is_immutable(self):
        """Transactions are frozen."""
        txn = _withdrawal()
        with pytest.raises(AttributeError):
            txn.amount = Decimal("1")  # type: ignore[misc]

    def test_rejects_unknown_kind(self):
        """Only withdrawal, deposit and transfer are accepted."""
        with pytest.raises(ValueError, match="unknown transaction kind"):
            _withdrawal(kind="refund")

    @pytest.mark.parametrize("amount", ["0", "-45.00"])
    def test_amount_must_be_positive(self, amount):
        """Direction is carried by kind, never by sign."""
        with pytest.raises(ValueError, match="positive"):
            _withdrawal(amount=Decimal(amount))

    def test_rejects_both_source_identities(self):
        """A side may not carry both an id and a name."""
        with pytest.raises(ValueError, match="source"):
            _withdrawal(source_name="Someone")

    def test_rejects_missing_destination(self):
        """A side must carry an id or a name."""
        with pytest.raises(ValueError, match="destination"):
            _withdrawal(destination_name=None)

    def test_transfer_needs_known_source(self):
        """A transfer must leave a known asset account."""
        with pytest.raises(ValueError, match="transfer"):
            _withdrawal(kind=TRANSFER, source_account_ref=None, source_name="Cash")

    def test_foreign_fields_go_together(self):
        """A foreign amount needs a foreign currency."""
        with pytest.raises(ValueError, match="foreign"):
            _withdrawal(foreign_amount=Decimal("9.99"))

    def test_labels(self):
        """Labels show ids as (#N) and names as they are."""
        txn = _withdrawal()
        assert txn.source_label == "(#1)"
        assert txn.destination_label == "Talabat"


class TestTransactionDraft:
    """Tests for the mutable draft used by adapter handlers."""

    def _draft(self) -> TransactionDraft:
        return TransactionDraft(
            kind=WITHDRAWAL,
            posted_date=date(2025, 9, 22),
            amount=Decimal("100"),
            currency_code="AED",
            external_id="fp",
            source_account_ref=1,
        )

    def test_add_note_appends_lines(self):
        """Notes accumulate one per line."""
        draft = self._draft()
        draft.add_note("first")
        draft.add_note("second")
        assert draft.notes == "first\nsecond"

    def test_to_deposit_flips_sides(self):
        """to_deposit moves the asset account to the destination."""
        draft = self._draft()
        draft.destination_name = "Somewhere"
        draft.to_deposit(1)
        draft.source_name = "Employer"
        draft.description = "Salary"

        txn = draft.build()
        assert txn.kind == DEPOSIT
        assert txn.source_account_ref is None
        assert txn.source_name == "Employer"
        assert txn.destination_account_ref == 1
        assert txn.destination_name is None

    def test_build_freezes_tags(self):
        """build dedupes tags into a frozenset."""
        draft = self._draft()
        draft.destination_name = "Shop"
        draft.tags.extend(["pos-purchase", "pos-purchase", "foreign-currency"])
        assert draft.build().tags == frozenset({"pos-purchase", "foreign-currency"})

    def test_build_validates(self):
        """build applies the Transaction invariants."""
        with pytest.raises(ValueError):
            self._draft().build()


# ---------------------------------------------------------------------------
# Errors, stats and config defaults
# ---------------------------------------------------------------------------


class TestErrors:
    def test_ledger_error_hierarchy(self):
        """Sink errors share the LedgerError base."""
        assert issubclass(DuplicateFingerprint, LedgerError)
        assert issubclass(WriteFailure, LedgerError)

    def test_duplicate_carries_fingerprint(self):
        """DuplicateFingerprint keeps the fingerprint and message."""
        exc = DuplicateFingerprint("abc123", "Duplicate of transaction #7.")
        assert exc.fingerprint == "abc123"
        assert str(exc) == "Duplicate of transaction #7."

    def test_duplicate_default_message(self):
        """The default message names the fingerprint."""
        assert "abc123" in str(DuplicateFingerprint("abc123"))


class TestImportStats:
    def test_total_counts_kinds(self):
        """total sums the per-kind counts."""
        stats = ImportStats(created=3, skipped=2, withdrawal=2, deposit=1, transfer=1)
        assert stats.total == 4


class TestAppConfigDefaults:
    def test_defaults(self):
        """AppConfig defaults target Dubai, AED and Firefly III."""
        config = AppConfig()
        assert config.imports.timezone == "Asia/Dubai"
        assert config.imports.currency == "AED"
        assert config.ledger.backend == "firefly"
        assert config.recurrence.bands["monthly"] == (25, 35)
        assert config.recurrence.split_spread_ratio == Decimal("0.25")
