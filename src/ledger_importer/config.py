"""Configuration loading, writing, and project initialization.

Reads TOML config files using stdlib ``tomllib`` and writes them using
``tomli_w``.  Depends only on ``models.py``.
"""

from __future__ import annotations

import re
import tomllib
from decimal import Decimal
from pathlib import Path

import tomli_w

from ledger_importer.models import (
    DEFAULT_CITIES,
    AppConfig,
    ImportSettings,
    LedgerConfig,
    RecurrenceSettings,
)

# ---------------------------------------------------------------------------
# Default file content
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_TOML = """\
# Ledger Importer configuration

[general]
timezone = "Asia/Dubai"         # IANA zone the banks post in
currency = "AED"                # Ledger (settlement) currency

[ledger]
backend = "firefly"             # "firefly" or "memory"
base_url = "http://localhost:8080"
token_env = "FIREFLY_TOKEN"     # Name of env var containing the access token
timeout = 30.0

[normalizer]
cities = ["DUBAI", "SHARJAH", "ABUDHABI", "ABU DHABI", "AJMAN", "REDMOND", "ALMATY", "HELSINKI", "CORK", "PAYSEND.COM"]
suffixes = ["ITUNES.COM"]
vendor_prefixes = ["GOOGLE", "PAYPAL"]

[card_accounts]
# Last digits of a card number to the card's asset account name.
# "9107" = "Mashreq Credit Card"

[card_account_hints]
# Narration substring to a card's asset account name, for payments that
# carry no masked card number.
# "emirates islami" = "Emirates Islamic Credit Card"

[payer_aliases]
# Narration text to revenue account name, for incoming payments whose
# payer cannot be parsed.
# "NST MEDIA" = "NST Media FZC"

[recurrence]
split_spread_ratio = 0.25
split_floor = 2.0
cluster_ratio = 0.15
cluster_floor = 2.0
fixed_amount_tolerance = 1.0
band_slack_days = 3
majority_ratio = 0.4
majority_min_count = 2

[recurrence.bands]
weekly = [5, 10]
bi-weekly = [12, 18]
monthly = [25, 35]
bi-monthly = [55, 70]
quarterly = [85, 100]
"""

# Directories that ``initialize`` creates.
_INIT_DIRS = [
    "exports/emirates_nbd",
    "exports/mashreq",
    "exports/fab",
    "reports",
]

_CARD_ACCOUNTS_HEADER = "[card_accounts]"
_CARD_ACCOUNTS_COMMENT = "# Last digits of a card number to the card's asset account name.\n"

_BACKENDS = ("firefly", "memory")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(root: Path) -> AppConfig:
    """Load ``config.toml`` from *root* and return an :class:`AppConfig`.

    Missing sections and keys fall back to the :class:`AppConfig` defaults.

    Args:
        root: Project root directory containing ``config.toml``.

    Returns:
        A fully-populated :class:`AppConfig` instance.

    Raises:
        FileNotFoundError: If ``config.toml`` does not exist.
        ValueError: If a value is out of range (unknown backend, inverted
            frequency band).
    """
    data = _read_toml(Path(root) / "config.toml")

    general = data.get("general", {})
    ledger = data.get("ledger", {})
    normalizer = data.get("normalizer", {})
    recurrence = data.get("recurrence", {})

    ledger_defaults = LedgerConfig()
    backend = ledger.get("backend", ledger_defaults.backend)
    if backend not in _BACKENDS:
        raise ValueError(
            f"Unknown ledger backend {backend!r}; expected one of {', '.join(_BACKENDS)}"
        )

    imports = ImportSettings(
        timezone=general.get("timezone", "Asia/Dubai"),
        currency=general.get("currency", "AED"),
        cities=list(normalizer.get("cities", DEFAULT_CITIES)),
        suffixes=list(normalizer.get("suffixes", ["ITUNES.COM"])),
        vendor_prefixes=list(normalizer.get("vendor_prefixes", ["GOOGLE", "PAYPAL"])),
        card_accounts={str(k): v for k, v in data.get("card_accounts", {}).items()},
        card_account_hints=dict(data.get("card_account_hints", {})),
        payer_aliases=dict(data.get("payer_aliases", {})),
    )

    return AppConfig(
        ledger=LedgerConfig(
            backend=backend,
            base_url=ledger.get("base_url", ledger_defaults.base_url),
            token_env=ledger.get("token_env", ledger_defaults.token_env),
            timeout=float(ledger.get("timeout", ledger_defaults.timeout)),
        ),
        imports=imports,
        recurrence=_recurrence_settings(recurrence),
    )


def save_card_accounts(root: Path, card_accounts: dict[str, str]) -> None:
    """Write *card_accounts* to the ``[card_accounts]`` section of ``config.toml``.

    Everything outside that section is preserved verbatim.  Only the
    ``[card_accounts]`` section is rewritten.

    Args:
        root: Project root directory containing ``config.toml``.
        card_accounts: The complete last-digits to account-name mapping.
    """
    config_path = Path(root) / "config.toml"
    original_text = config_path.read_text(encoding="utf-8")

    # Find the [card_accounts] section and the header that follows it.
    idx = original_text.find(_CARD_ACCOUNTS_HEADER)
    if idx == -1:
        # No [card_accounts] section yet -- append one.
        prefix = original_text.rstrip() + "\n\n"
        suffix = ""
    else:
        prefix = original_text[:idx]
        body_start = idx + len(_CARD_ACCOUNTS_HEADER)
        next_header = re.search(r"^\[", original_text[body_start:], re.MULTILINE)
        suffix = original_text[body_start + next_header.start():] if next_header else ""

    section = _CARD_ACCOUNTS_HEADER + "\n" + _CARD_ACCOUNTS_COMMENT
    if card_accounts:
        # Serialize the full table with tomli_w, then drop its header so we
        # can insert our own header + comment.
        kv_text = tomli_w.dumps({"card_accounts": dict(sorted(card_accounts.items()))})
        section += kv_text.split("\n", 1)[1] if "\n" in kv_text else ""
    if suffix:
        section = section.rstrip("\n") + "\n\n"

    config_path.write_text(prefix + section + suffix, encoding="utf-8")


def initialize(target_dir: Path) -> None:
    """Create the standard directory structure and default config file.

    Idempotent: existing directories are left alone and an existing
    ``config.toml`` is **not** overwritten.

    Args:
        target_dir: The directory in which to create the project structure.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    for d in _INIT_DIRS:
        (target_dir / d).mkdir(parents=True, exist_ok=True)

    _write_if_missing(target_dir / "config.toml", _DEFAULT_CONFIG_TOML)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_toml(path: Path) -> dict:
    """Read and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _recurrence_settings(section: dict) -> RecurrenceSettings:
    """Build :class:`RecurrenceSettings` from the ``[recurrence]`` table."""
    defaults = RecurrenceSettings()

    bands = defaults.bands
    if "bands" in section:
        bands = {}
        for label, bounds in section["bands"].items():
            low, high = (int(b) for b in bounds)
            if low > high:
                raise ValueError(f"Frequency band {label!r} has low {low} above high {high}")
            bands[label] = (low, high)

    return RecurrenceSettings(
        bands=bands,
        split_spread_ratio=_decimal(section, "split_spread_ratio", defaults.split_spread_ratio),
        split_floor=_decimal(section, "split_floor", defaults.split_floor),
        cluster_ratio=_decimal(section, "cluster_ratio", defaults.cluster_ratio),
        cluster_floor=_decimal(section, "cluster_floor", defaults.cluster_floor),
        fixed_amount_tolerance=_decimal(
            section, "fixed_amount_tolerance", defaults.fixed_amount_tolerance
        ),
        band_slack_days=int(section.get("band_slack_days", defaults.band_slack_days)),
        majority_ratio=float(section.get("majority_ratio", defaults.majority_ratio)),
        majority_min_count=int(section.get("majority_min_count", defaults.majority_min_count)),
    )


def _decimal(section: dict, key: str, default: Decimal) -> Decimal:
    """Read a TOML float as an exact :class:`Decimal`."""
    if key not in section:
        return default
    return Decimal(str(section[key]))


def _write_if_missing(path: Path, content: str) -> None:
    """Write *content* to *path* only if the file does not already exist."""
    if not path.exists():
        path.write_text(content, encoding="utf-8")
