"""Adapter registry for bank and card export formats.

Each adapter module exposes ``parse_file(file_path)`` returning a
:class:`~ledger_importer.models.ParseResult` of typed records, and
``map_record(record, ctx)`` turning one record into a
:class:`~ledger_importer.models.Transaction` (or None to skip it).  The
``ADAPTERS`` dict maps format names (used on the command line) to
:class:`Adapter` bundles, and ``get_adapter()`` provides a convenient
lookup with a clear error on unknown names.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ledger_importer.parsers import emirates_nbd, fab, mashreq


@dataclass(frozen=True)
class Adapter:
    """A named parse/map pair for one export format."""

    name: str
    parse_file: Callable
    map_record: Callable


ADAPTERS: dict[str, Adapter] = {
    "emirates_nbd": Adapter("emirates_nbd", emirates_nbd.parse_file, emirates_nbd.map_record),
    "mashreq": Adapter("mashreq", mashreq.parse_file, mashreq.map_record),
    "fab": Adapter("fab", fab.parse_file, fab.map_record),
}


def get_adapter(name: str) -> Adapter:
    """Look up an adapter by format name.

    Args:
        name: Format name, e.g. "mashreq".

    Returns:
        The adapter registered under *name*.

    Raises:
        KeyError: If no adapter is registered under the given name.
    """
    return ADAPTERS[name]
