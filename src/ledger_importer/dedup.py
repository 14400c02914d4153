"""Duplicate detection at the ledger boundary.

Uniqueness is enforced by the ledger sink itself: every write asks it to
reject a transaction whose fingerprint it already holds.  The sink reports
that case as :class:`~ledger_importer.models.DuplicateFingerprint`, which the
gate turns into a soft skip.  Any other rejection is a hard failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ledger_importer.ledger import LedgerSink
from ledger_importer.models import DuplicateFingerprint, Transaction, WriteFailure

logger = logging.getLogger(__name__)

CREATED = "created"
DUPLICATE = "duplicate"
FAILED = "failed"


@dataclass
class WriteOutcome:
    """Result of handing one transaction to the sink.

    Attributes:
        status: "created", "duplicate" or "failed".
        record_id: Id assigned by the sink, for created records.
        message: Sink message for duplicates and failures.
    """

    status: str
    record_id: str = ""
    message: str = ""


class DedupGate:
    """Write-through gate that classifies sink responses."""

    def __init__(self, sink: LedgerSink) -> None:
        self.sink = sink

    def admit(self, transaction: Transaction) -> WriteOutcome:
        """Write *transaction* unless the sink already has its fingerprint."""
        try:
            record_id = self.sink.create(transaction, fail_if_duplicate=True)
        except DuplicateFingerprint as exc:
            logger.debug("Duplicate %s: %s", exc.fingerprint, transaction.description)
            return WriteOutcome(status=DUPLICATE, message=str(exc))
        except WriteFailure as exc:
            logger.error(
                "Failed to write %s %s %s: %s",
                transaction.posted_date,
                transaction.amount,
                transaction.description,
                exc,
            )
            return WriteOutcome(status=FAILED, message=str(exc))

        return WriteOutcome(status=CREATED, record_id=record_id)

    def is_duplicate(self, fingerprint: str) -> bool:
        """Return True if the sink already holds *fingerprint*."""
        return self.sink.has_fingerprint(fingerprint)
