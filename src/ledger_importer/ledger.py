"""Ledger collaborator interfaces and an in-memory implementation.

The importer never persists anything itself. It reads counterparty names
from an :class:`AccountDirectory` and hands finished transactions to a
:class:`LedgerSink`, which enforces fingerprint uniqueness. ``firefly.py``
provides the Firefly III implementation; :class:`InMemoryLedger` serves
tests and throwaway runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from ledger_importer.models import (
    ASSET,
    DEPOSIT,
    EXPENSE,
    REVENUE,
    TRANSFER,
    WITHDRAWAL,
    DuplicateFingerprint,
    Transaction,
    WriteFailure,
)

logger = logging.getLogger(__name__)


class AccountDirectory(Protocol):
    """Read access to the existing chart of accounts."""

    def list_accounts(self, account_type: str) -> list[str]:
        """Return the names of all accounts of *account_type*.

        Args:
            account_type: "expense", "revenue" or "asset".
        """
        ...

    def account_exists(self, account_id: int) -> bool:
        """Return True if an account with *account_id* exists."""
        ...


class LedgerSink(Protocol):
    """Durable, fingerprint-unique transaction writer."""

    def create(self, transaction: Transaction, fail_if_duplicate: bool = True) -> str:
        """Persist *transaction* and return the new record's id.

        Raises:
            DuplicateFingerprint: *fail_if_duplicate* is set and a record
                with the same ``external_id`` already exists.
            WriteFailure: Any other rejection.
        """
        ...

    def has_fingerprint(self, fingerprint: str) -> bool:
        """Return True if a record with this ``external_id`` exists."""
        ...


@dataclass
class _Account:
    id: int
    name: str
    type: str


@dataclass
class InMemoryLedger:
    """A ledger that lives in a dict.

    Implements both :class:`AccountDirectory` and :class:`LedgerSink`.
    Counterparty accounts named by a transaction are auto-created with the
    type implied by the transaction kind, the way Firefly III does it.
    Transfers must name an existing asset account.

    Attributes:
        accounts: All accounts, keyed by id.
        transactions: Stored transactions, keyed by generated id.
    """

    accounts: dict[int, _Account] = field(default_factory=dict)
    transactions: dict[str, Transaction] = field(default_factory=dict)
    _fingerprints: dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _next_id: int = field(default=1, init=False, repr=False)

    def add_account(self, name: str, account_type: str, account_id: int | None = None) -> int:
        """Register an account and return its id.

        Ids are assigned sequentially unless *account_id* is given.
        """
        if account_id is None:
            account_id = self._next_id
        if account_id in self.accounts:
            raise ValueError(f"account #{account_id} already exists")
        self._next_id = max(self._next_id, account_id + 1)
        self.accounts[account_id] = _Account(id=account_id, name=name, type=account_type)
        return account_id

    # -- AccountDirectory ----------------------------------------------------

    def list_accounts(self, account_type: str) -> list[str]:
        return [a.name for a in self.accounts.values() if a.type == account_type]

    def account_exists(self, account_id: int) -> bool:
        return account_id in self.accounts

    # -- LedgerSink ----------------------------------------------------------

    def has_fingerprint(self, fingerprint: str) -> bool:
        return fingerprint in self._fingerprints

    def create(self, transaction: Transaction, fail_if_duplicate: bool = True) -> str:
        if fail_if_duplicate and transaction.external_id in self._fingerprints:
            existing = self._fingerprints[transaction.external_id]
            raise DuplicateFingerprint(
                transaction.external_id,
                f"Duplicate of transaction #{existing}.",
            )

        for ref in (transaction.source_account_ref, transaction.destination_account_ref):
            if ref is not None and ref not in self.accounts:
                raise WriteFailure(f"account #{ref} does not exist")

        if transaction.kind == TRANSFER and transaction.destination_name:
            if transaction.destination_name not in self.list_accounts(ASSET):
                raise WriteFailure(
                    f"transfer destination {transaction.destination_name!r} "
                    "is not an asset account"
                )

        self._ensure_counterparty(transaction)

        record_id = str(len(self.transactions) + 1)
        self.transactions[record_id] = transaction
        self._fingerprints[transaction.external_id] = record_id
        logger.debug("Stored transaction #%s: %s", record_id, transaction.description)
        return record_id

    def _ensure_counterparty(self, transaction: Transaction) -> None:
        if transaction.kind == WITHDRAWAL and transaction.destination_name:
            name, account_type = transaction.destination_name, EXPENSE
        elif transaction.kind == DEPOSIT and transaction.source_name:
            name, account_type = transaction.source_name, REVENUE
        else:
            return
        if name not in self.list_accounts(account_type):
            self.add_account(name, account_type)
