"""Import orchestration for Ledger Importer.

Runs one export file through its adapter and into the ledger:

1. **Parse** -- the adapter reads the whole file into typed records.  A
   :class:`~ledger_importer.models.ParseError` aborts before anything is
   written.
2. **Map** -- each record becomes a transaction, or is skipped.
3. **Write** -- in apply mode each transaction goes through the
   :class:`~ledger_importer.dedup.DedupGate`; in dry-run mode it is only
   previewed.

One bad record never aborts the batch.  Every record gets a
:class:`~ledger_importer.models.RecordOutcome`, and the run returns an
:class:`~ledger_importer.models.ImportResult` with the tally.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ledger_importer.dedup import CREATED, DUPLICATE, DedupGate
from ledger_importer.ledger import LedgerSink
from ledger_importer.matcher import RunContext
from ledger_importer.models import (
    DEPOSIT,
    TRANSFER,
    WITHDRAWAL,
    ImportResult,
    ImportStats,
    RecordOutcome,
    Transaction,
)
from ledger_importer.parsers import Adapter

logger = logging.getLogger(__name__)

PREVIEW = "preview"
SKIPPED = "skipped"


def run(
    path: Path,
    adapter: Adapter,
    ctx: RunContext,
    sink: LedgerSink | None = None,
    dry_run: bool = False,
) -> ImportResult:
    """Import *path* with *adapter* into *sink*.

    Args:
        path: The export file.
        adapter: Adapter for the file's format.
        ctx: Run context with the source account and cached directory.
        sink: Ledger to write to.  Not touched in dry-run mode, and may
            be None there.
        dry_run: Map and preview only.

    Returns:
        An :class:`ImportResult`.  In dry-run mode the per-kind counts
        count previews and ``created`` stays 0; in apply mode they count
        created records.

    Raises:
        ParseError: The file could not be parsed.
        ValueError: *sink* is None outside dry-run mode.
    """
    if sink is None and not dry_run:
        raise ValueError("a ledger sink is required unless dry_run is set")

    parsed = adapter.parse_file(Path(path))
    for warning in parsed.warnings:
        logger.warning(warning)

    result = ImportResult(warnings=list(parsed.warnings), dry_run=dry_run)
    gate = DedupGate(sink) if sink is not None and not dry_run else None

    logger.info("Processing %d %s records from %s", len(parsed.records), adapter.name, path)

    for record in parsed.records:
        outcome = _process(record, adapter, ctx, gate, result)
        result.outcomes.append(outcome)
        _tally(result.stats, outcome)

    return result


def _process(
    record,
    adapter: Adapter,
    ctx: RunContext,
    gate: DedupGate | None,
    result: ImportResult,
) -> RecordOutcome:
    label = getattr(record, "label", "")

    try:
        transaction = adapter.map_record(record, ctx)
    except ValueError as exc:
        message = f"could not map {label}: {exc}"
        logger.warning(message)
        result.warnings.append(message)
        return RecordOutcome(status=SKIPPED, message=message)

    if transaction is None:
        return RecordOutcome(status=SKIPPED, message=label)

    logger.debug(
        "Mapped %s -> %s %s %s",
        label,
        transaction.kind,
        transaction.amount,
        transaction.description,
    )

    if gate is None:
        return RecordOutcome(status=PREVIEW, transaction=transaction)

    written = gate.admit(transaction)
    return RecordOutcome(status=written.status, transaction=transaction, message=written.message)


def _tally(stats: ImportStats, outcome: RecordOutcome) -> None:
    if outcome.status in (SKIPPED, DUPLICATE):
        stats.skipped += 1
        return
    if outcome.status == CREATED:
        stats.created += 1
    elif outcome.status != PREVIEW:
        stats.failed += 1
        return
    _count_kind(stats, outcome.transaction)


def _count_kind(stats: ImportStats, transaction: Transaction) -> None:
    if transaction.kind == TRANSFER:
        stats.transfer += 1
    elif transaction.kind == WITHDRAWAL:
        stats.withdrawal += 1
    elif transaction.kind == DEPOSIT:
        stats.deposit += 1
