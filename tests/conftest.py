"""Shared pytest fixtures for Ledger Importer tests.

Provides reusable fixtures for:
- Paths to the sample exports in tests/fixtures/ (one per format).
- import_settings: adapter settings with a card map and a payer alias.
- ledger: an InMemoryLedger seeded with asset, expense and revenue accounts.
- ctx: a RunContext loaded from that ledger for source account #1.
- tmp_project_dir: a temporary project with a default config.toml.
- make_transaction: a factory for canonical withdrawals, used by the
  recurrence tests.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from ledger_importer.config import initialize
from ledger_importer.ledger import InMemoryLedger
from ledger_importer.matcher import RunContext
from ledger_importer.models import (
    ASSET,
    EXPENSE,
    REVENUE,
    WITHDRAWAL,
    ImportSettings,
    Transaction,
    generate_fingerprint,
)

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SOURCE_ACCOUNT_ID = 1


# ---------------------------------------------------------------------------
# Fixture file path helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the tests/fixtures/ directory."""
    return FIXTURES_DIR


@pytest.fixture
def enbd_sample_json() -> Path:
    """Path to the Emirates NBD sample JSON fixture file."""
    return FIXTURES_DIR / "enbd_sample.json"


@pytest.fixture
def mashreq_sample_csv() -> Path:
    """Path to the Mashreq sample CSV fixture file."""
    return FIXTURES_DIR / "mashreq_sample.csv"


@pytest.fixture
def fab_sample_csv() -> Path:
    """Path to the FAB sample CSV fixture file."""
    return FIXTURES_DIR / "fab_sample.csv"


# ---------------------------------------------------------------------------
# Ledger and run context
# ---------------------------------------------------------------------------


@pytest.fixture
def import_settings() -> ImportSettings:
    """Default settings plus one card mapping and one payer alias."""
    return ImportSettings(
        card_accounts={"9107": "Mashreq Credit Card"},
        card_account_hints={"emirates islami": "Emirates Islamic Credit Card"},
        payer_aliases={"NST MEDIA": "NST Media FZC"},
    )


@pytest.fixture
def ledger() -> InMemoryLedger:
    """An in-memory ledger with a small chart of accounts.

    - #1 "Emirates NBD Current" (asset, the import source)
    - "Mashreq Credit Card", "Emirates Islamic Credit Card" (asset)
    - "Spotify AB", "Talabat" (expense)
    - "Deel", "NST Media FZC" (revenue)
    """
    ledger = InMemoryLedger()
    ledger.add_account("Emirates NBD Current", ASSET, account_id=SOURCE_ACCOUNT_ID)
    ledger.add_account("Mashreq Credit Card", ASSET)
    ledger.add_account("Emirates Islamic Credit Card", ASSET)
    ledger.add_account("Spotify AB", EXPENSE)
    ledger.add_account("Talabat", EXPENSE)
    ledger.add_account("Deel", REVENUE)
    ledger.add_account("NST Media FZC", REVENUE)
    return ledger


@pytest.fixture
def ctx(ledger: InMemoryLedger, import_settings: ImportSettings) -> RunContext:
    """Run context for source account #1, loaded from the ledger fixture."""
    return RunContext.load(ledger, SOURCE_ACCOUNT_ID, import_settings)


# ---------------------------------------------------------------------------
# tmp_project_dir -- temp directory with a default config
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary project initialized with the default config.toml.

    Returns the Path to the temporary project root. The directory is
    automatically cleaned up after the test completes.
    """
    project = tmp_path / "ledger-project"
    initialize(project)
    return project


# ---------------------------------------------------------------------------
# Transaction factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_transaction():
    """Factory for canonical withdrawals paid from account #1."""

    def _make(
        merchant: str,
        posted: date,
        amount: str,
        kind: str = WITHDRAWAL,
        ordinal: int = 0,
    ) -> Transaction:
        value = Decimal(amount)
        return Transaction(
            kind=kind,
            posted_date=posted,
            amount=value,
            currency_code="AED",
            description=merchant,
            external_id=generate_fingerprint(
                "test", posted.isoformat(), merchant, -value, ordinal
            ),
            source_account_ref=SOURCE_ACCOUNT_ID,
            destination_name=merchant,
            merchant=merchant,
        )

    return _make
