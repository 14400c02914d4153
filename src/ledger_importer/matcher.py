"""Counterparty account matching against the existing chart of accounts.

Bank exports have no stable merchant ids, so counterparties are matched by
name: case-insensitive equality first, then substring containment. A miss
returns the candidate unchanged and the ledger creates a new account for it.

The account lists are loaded once per import into a :class:`RunContext`,
which every adapter receives. Accounts created by the run itself are not
visible to later matching in the same run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ledger_importer.ledger import AccountDirectory
from ledger_importer.models import EXPENSE, REVENUE, ImportSettings
from ledger_importer.normalizer import UNKNOWN_MERCHANT, normalize

logger = logging.getLogger(__name__)


def match_account(candidate: str, directory: list[str], reverse: bool = False) -> str:
    """Match *candidate* against *directory*, first hit wins.

    Rules, all case-insensitive:

    a. exact equality;
    b. the directory entry contains the candidate;
    c. when *reverse* is set, the candidate contains the directory entry.

    Args:
        candidate: A normalized counterparty name.
        directory: Existing account names of one type.
        reverse: Enable rule (c). Used for payers, whose export names are
            often longer than the account name kept in the ledger.

    Returns:
        The matching directory entry with its original casing, or
        *candidate* unchanged when nothing matches.
    """
    needle = candidate.strip().lower()
    if not needle:
        return candidate

    for account_name in directory:
        existing = account_name.strip().lower()
        if not existing:
            continue
        if existing == needle:
            return account_name
        if needle in existing:
            return account_name
        if reverse and existing in needle:
            return account_name

    return candidate


@dataclass
class RunContext:
    """Per-run state handed to every adapter.

    Attributes:
        source_account_ref: Ledger id of the asset account being imported.
        settings: Adapter settings (timezone, currency, card map, ...).
        expense_accounts: Expense account names, loaded once at run start.
        revenue_accounts: Revenue account names, loaded once at run start.
    """

    source_account_ref: int
    settings: ImportSettings = field(default_factory=ImportSettings)
    expense_accounts: list[str] = field(default_factory=list)
    revenue_accounts: list[str] = field(default_factory=list)

    @classmethod
    def load(
        cls,
        directory: AccountDirectory,
        source_account_ref: int,
        settings: ImportSettings,
    ) -> RunContext:
        """Build a context, reading the account directory exactly once."""
        expense = list(directory.list_accounts(EXPENSE))
        revenue = list(directory.list_accounts(REVENUE))
        logger.info(
            "Loaded %d expense and %d revenue accounts", len(expense), len(revenue)
        )
        return cls(
            source_account_ref=source_account_ref,
            settings=settings,
            expense_accounts=expense,
            revenue_accounts=revenue,
        )

    def clean(self, raw: str, fallback: str = UNKNOWN_MERCHANT) -> str:
        """Normalize *raw* using this run's city, suffix and prefix lists."""
        return normalize(
            raw,
            fallback=fallback,
            cities=self.settings.cities,
            suffixes=self.settings.suffixes,
            vendor_prefixes=self.settings.vendor_prefixes,
        )

    def match_expense(self, name: str) -> str:
        return match_account(name, self.expense_accounts)

    def match_revenue(self, name: str) -> str:
        return match_account(name, self.revenue_accounts, reverse=True)
