"""Firefly III ledger client.

Implements both :class:`~ledger_importer.ledger.AccountDirectory` and
:class:`~ledger_importer.ledger.LedgerSink` over the Firefly III REST API
using httpx.

Firefly III enforces fingerprint uniqueness itself when a transaction is
posted with ``error_if_duplicate_hash``; it answers with HTTP 422 and a
"Duplicate of transaction #N." validation message.  That response is
translated here, and only here, into
:class:`~ledger_importer.models.DuplicateFingerprint`.
"""

from __future__ import annotations

import logging
import os

import httpx

from ledger_importer.models import (
    DuplicateFingerprint,
    LedgerConfig,
    LedgerError,
    Transaction,
    WriteFailure,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class FireflyClient:
    """Account directory and transaction sink backed by Firefly III.

    Args:
        base_url: Server root, e.g. "http://localhost:8080".
        token: Personal access token.
        timeout: HTTP request timeout in seconds. Default: 30.
        transport: Optional httpx transport, for tests.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url + API_PREFIX,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.api+json",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> FireflyClient:
        """Build a client, reading the token from ``config.token_env``.

        Raises:
            LedgerError: The environment variable is unset or empty.
        """
        token = os.environ.get(config.token_env, "")
        if not token:
            raise LedgerError(
                f"Firefly III token not found in environment variable '{config.token_env}'"
            )
        return cls(config.base_url, token, timeout=config.timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> FireflyClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- AccountDirectory ----------------------------------------------------

    def list_accounts(self, account_type: str) -> list[str]:
        """Return the names of every account of *account_type*, all pages.

        Raises:
            LedgerError: The server is unreachable or refused the request.
        """
        names: list[str] = []
        page = 1
        while True:
            body = self._get("/accounts", params={"type": account_type, "page": page})
            for item in body.get("data", []):
                name = item.get("attributes", {}).get("name")
                if name:
                    names.append(name)

            pagination = body.get("meta", {}).get("pagination", {})
            if page >= int(pagination.get("total_pages", 1)):
                break
            page += 1

        logger.debug("Fetched %d %s accounts", len(names), account_type)
        return names

    def account_exists(self, account_id: int) -> bool:
        try:
            response = self._client.get(f"/accounts/{account_id}")
        except httpx.HTTPError as exc:
            raise LedgerError(f"Firefly III request failed: {exc}") from exc
        if response.status_code == 404:
            return False
        _raise_for_status(response)
        return True

    # -- LedgerSink ----------------------------------------------------------

    def has_fingerprint(self, fingerprint: str) -> bool:
        body = self._get(
            "/search/transactions",
            params={"query": f'external_id_is:"{fingerprint}"', "limit": 1},
        )
        return bool(body.get("data"))

    def create(self, transaction: Transaction, fail_if_duplicate: bool = True) -> str:
        payload = {
            "error_if_duplicate_hash": fail_if_duplicate,
            "apply_rules": False,
            "fire_webhooks": False,
            "transactions": [to_split(transaction)],
        }

        try:
            response = self._client.post("/transactions", json=payload)
        except httpx.HTTPError as exc:
            raise WriteFailure(f"Firefly III request failed: {exc}") from exc

        if response.status_code == 422:
            message = _validation_message(response)
            if "duplicate" in message.lower():
                raise DuplicateFingerprint(transaction.external_id, message)
            raise WriteFailure(message)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise WriteFailure(
                f"Firefly III returned HTTP {exc.response.status_code}: "
                f"{exc.response.text[:200]}"
            ) from exc

        try:
            return str(response.json()["data"]["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise WriteFailure(
                f"Firefly III returned no transaction id: {response.text[:200]}"
            ) from exc

    # -- helpers -------------------------------------------------------------

    def _get(self, path: str, params: dict | None = None) -> dict:
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise LedgerError(f"Firefly III request failed: {exc}") from exc
        _raise_for_status(response)
        return response.json()


def to_split(transaction: Transaction) -> dict:
    """Render *transaction* as one Firefly III transaction split."""
    split = {
        "type": transaction.kind,
        "date": transaction.posted_date.isoformat(),
        "amount": str(transaction.amount),
        "currency_code": transaction.currency_code,
        "description": transaction.description,
        "external_id": transaction.external_id,
        "tags": sorted(transaction.tags),
        "notes": transaction.notes,
    }

    if transaction.source_account_ref is not None:
        split["source_id"] = str(transaction.source_account_ref)
    else:
        split["source_name"] = transaction.source_name
    if transaction.destination_account_ref is not None:
        split["destination_id"] = str(transaction.destination_account_ref)
    else:
        split["destination_name"] = transaction.destination_name

    if transaction.internal_reference:
        split["internal_reference"] = transaction.internal_reference
    if transaction.foreign_amount is not None:
        split["foreign_amount"] = str(transaction.foreign_amount)
        split["foreign_currency_code"] = transaction.foreign_currency_code

    return split


def _raise_for_status(response: httpx.Response) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise LedgerError(
            f"Firefly III returned HTTP {exc.response.status_code}: "
            f"{exc.response.text[:200]}"
        ) from exc


def _validation_message(response: httpx.Response) -> str:
    """Flatten a Firefly III 422 body into one message."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]

    messages = [
        str(message)
        for field_messages in (body.get("errors") or {}).values()
        for message in field_messages
    ]
    if messages:
        return "; ".join(messages)
    return str(body.get("message", "validation failed"))
