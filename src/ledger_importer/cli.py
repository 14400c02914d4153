"""Click CLI entry point for the ledger command.

Handles argument parsing, config loading, and error display. All business
logic is delegated to ``pipeline``, ``recurring``, ``config``, and
``report`` modules.
"""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path

import click

from ledger_importer import __version__
from ledger_importer.models import ASSET, AppConfig, LedgerError, ParseError
from ledger_importer.parsers import ADAPTERS, get_adapter


def _configure_logging(verbose: bool, debug: bool) -> None:
    """Set up logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _load_config_or_exit(root: Path) -> AppConfig:
    """Load ``config.toml`` from *root*, exiting with status 1 on failure."""
    from ledger_importer.config import load_config

    try:
        return load_config(root)
    except FileNotFoundError as exc:
        click.echo(
            f"Error: {exc}. Run 'ledger init' to create the project structure.",
            err=True,
        )
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)


def _memory_ledger(config: AppConfig, source_account_id: int):
    """Build a throwaway ledger holding the source and card accounts."""
    from ledger_importer.ledger import InMemoryLedger

    ledger = InMemoryLedger()
    ledger.add_account(f"Account #{source_account_id}", ASSET, account_id=source_account_id)
    card_names = set(config.imports.card_accounts.values())
    card_names.update(config.imports.card_account_hints.values())
    for name in sorted(card_names):
        ledger.add_account(name, ASSET)
    return ledger


@click.group()
@click.version_option(version=__version__, prog_name="ledger-importer")
def cli() -> None:
    """Import bank and card exports into a ledger and detect recurring payments."""


@cli.command(name="import")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option(
    "--format",
    "format_name",
    required=True,
    type=click.Choice(sorted(ADAPTERS)),
    help="Export format of FILE.",
)
@click.option(
    "--source-account-id",
    required=True,
    type=int,
    help="Ledger id of the asset account the export belongs to.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Preview without writing.")
@click.option(
    "--ledger",
    "backend",
    type=click.Choice(["firefly", "memory"]),
    default=None,
    help="Ledger backend (default: from config).",
)
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
@click.option("--debug", is_flag=True, default=False, help="Developer-level diagnostics.")
def import_(
    file: str,
    format_name: str,
    source_account_id: int,
    dry_run: bool,
    backend: str | None,
    verbose: bool,
    debug: bool,
) -> None:
    """Import FILE into the ledger."""
    _configure_logging(verbose, debug)

    path = Path(file)
    if not path.is_file():
        click.echo(f"Error: file not found: {file}", err=True)
        sys.exit(1)

    config = _load_config_or_exit(Path.cwd())
    backend = backend or config.ledger.backend

    from ledger_importer.firefly import FireflyClient
    from ledger_importer.matcher import RunContext
    from ledger_importer.pipeline import run
    from ledger_importer.report import print_import_summary

    client = None
    try:
        if backend == "memory":
            ledger = _memory_ledger(config, source_account_id)
        else:
            client = ledger = FireflyClient.from_config(config.ledger)

        if not ledger.account_exists(source_account_id):
            click.echo(f"Error: source account #{source_account_id} not found.", err=True)
            sys.exit(1)

        if verbose:
            click.echo(f"Importing {path} as {format_name} into account #{source_account_id}")

        ctx = RunContext.load(ledger, source_account_id, config.imports)
        result = run(path, get_adapter(format_name), ctx, ledger, dry_run=dry_run)
    except ParseError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except LedgerError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    finally:
        if client is not None:
            client.close()

    print_import_summary(result, dry_run)


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option(
    "--format",
    "format_name",
    default="emirates_nbd",
    show_default=True,
    type=click.Choice(sorted(ADAPTERS)),
    help="Export format of FILE.",
)
@click.option(
    "--csv",
    "csv_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Also write the findings to this CSV file.",
)
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
@click.option("--debug", is_flag=True, default=False, help="Developer-level diagnostics.")
def analyze(
    file: str, format_name: str, csv_path: str | None, verbose: bool, debug: bool
) -> None:
    """Detect recurring payments in FILE."""
    _configure_logging(verbose, debug)

    path = Path(file)
    if not path.is_file():
        click.echo(f"Error: file not found: {file}", err=True)
        sys.exit(1)

    root = Path.cwd()
    if (root / "config.toml").is_file():
        config = _load_config_or_exit(root)
    else:
        config = AppConfig()

    from ledger_importer.recurring import analyze_records
    from ledger_importer.report import export_findings, print_recurrence_report

    adapter = get_adapter(format_name)
    try:
        parsed = adapter.parse_file(path)
    except ParseError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    report = analyze_records(parsed.records, adapter, config.recurrence, config.imports)
    print_recurrence_report(report, config.imports.currency)

    if csv_path:
        try:
            output_path = export_findings(report, csv_path)
        except OSError as exc:
            click.echo(f"Error writing output: {exc}", err=True)
            sys.exit(1)
        click.echo(f"Wrote {len(report.findings)} findings to {output_path}")


@cli.command()
@click.option(
    "--dir", "target_dir", default=".", type=click.Path(), help="Directory to initialize."
)
def init(target_dir: str) -> None:
    """Initialize a new data directory with the standard structure."""
    from ledger_importer.config import initialize

    target = Path(target_dir).resolve()

    try:
        initialize(target)
    except OSError as exc:
        click.echo(f"Error initializing project: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Initialized ledger importer project in {target}")


@cli.command(name="add-card")
@click.argument("last_digits")
@click.argument("account_name")
def add_card(last_digits: str, account_name: str) -> None:
    """Map a card number ending in LAST_DIGITS to ACCOUNT_NAME."""
    if not re.fullmatch(r"\d{4,6}", last_digits):
        click.echo(
            f"Error: invalid card digits {last_digits!r}. Expected the last 4 to 6 digits.",
            err=True,
        )
        sys.exit(1)

    root = Path.cwd()
    config = _load_config_or_exit(root)

    from ledger_importer.config import save_card_accounts

    card_accounts = dict(config.imports.card_accounts)
    card_accounts[last_digits] = account_name

    try:
        save_card_accounts(root, card_accounts)
    except OSError as exc:
        click.echo(f"Error saving card mapping: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Card ending {last_digits} -> {account_name}")
