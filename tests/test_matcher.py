"""Tests for ledger_importer.matcher — account matching and the run context."""

from __future__ import annotations

from ledger_importer.ledger import InMemoryLedger
from ledger_importer.matcher import RunContext, match_account
from ledger_importer.models import EXPENSE, ImportSettings

EXPENSES = ["Talabat", "Spotify AB", "Carrefour Hypermarket"]
REVENUES = ["Deel", "NST Media FZC"]


class TestMatchAccount:
    """Tests for the exact/contains/reverse-contains rules."""

    def test_exact_match_returns_directory_casing(self):
        """An exact match returns the directory's spelling."""
        assert match_account("talabat", EXPENSES) == "Talabat"

    def test_entry_contains_candidate(self):
        """An entry containing the candidate matches."""
        assert match_account("Spotify", EXPENSES) == "Spotify AB"

    def test_candidate_containing_entry_needs_reverse(self):
        """Rule (c) is off by default."""
        assert match_account("Talabat Postpaid", EXPENSES) == "Talabat Postpaid"

    def test_reverse_rule_for_payers(self):
        """A payer containing an entry matches when reverse is on."""
        assert match_account("Deel AE FZE", REVENUES, reverse=True) == "Deel"

    def test_no_match_returns_candidate_unchanged(self):
        """Without a match the candidate is returned as is."""
        assert match_account("Noon Minutes", EXPENSES) == "Noon Minutes"

    def test_first_hit_wins(self):
        """The first matching entry in directory order wins."""
        directory = ["Carrefour Hypermarket", "Carrefour City"]
        assert match_account("Carrefour", directory) == "Carrefour Hypermarket"

    def test_exact_match_checked_per_entry_in_order(self):
        """An earlier containing entry beats a later exact one."""
        directory = ["Talabat Mart", "Talabat"]
        assert match_account("Talabat", directory) == "Talabat Mart"

    def test_empty_candidate_is_returned_unchanged(self):
        """Blank candidates never match."""
        assert match_account("", EXPENSES) == ""
        assert match_account("  ", EXPENSES, reverse=True) == "  "

    def test_blank_directory_entries_are_ignored(self):
        """Blank directory entries never match."""
        assert match_account("Deel AE FZE", ["", "Deel"], reverse=True) == "Deel"

    def test_empty_directory(self):
        """An empty directory returns the candidate."""
        assert match_account("Anything", []) == "Anything"


class TestRunContext:
    """Tests for RunContext loading and helpers."""

    def test_load_reads_directory_once(self):
        """Accounts created after load are not visible to matching."""
        ledger = InMemoryLedger()
        ledger.add_account("Talabat", EXPENSE)
        ctx = RunContext.load(ledger, 1, ImportSettings())

        ledger.add_account("Noon Minutes Store", EXPENSE)

        assert ctx.expense_accounts == ["Talabat"]
        assert ctx.match_expense("Noon Minutes") == "Noon Minutes"

    def test_match_expense_and_revenue(self, ctx):
        """Expenses and payers match against their own directories."""
        assert ctx.match_expense("Spotify") == "Spotify AB"
        assert ctx.match_revenue("Deel AE FZE") == "Deel"

    def test_clean_uses_settings(self):
        """Cleaning uses the configured city list."""
        settings = ImportSettings(cities=["LISBOA"])
        ctx = RunContext(source_account_ref=1, settings=settings)
        assert ctx.clean("CAFE LISBOA") == "Cafe"
        assert ctx.clean("CAFE DUBAI") == "Cafe Dubai"

    def test_clean_fallback(self, ctx):
        """An empty name cleans to the given fallback."""
        assert ctx.clean("", fallback="Unknown Income") == "Unknown Income"
