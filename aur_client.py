"""AUR RPC client: the remote, network-only package source."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import Any, Iterator

import requests

from errors import ParseFailure, SourceUnavailable
from models import PackageRecord, Query, SourceKind

AUR_RPC_URL = "https://aur.archlinux.org/rpc/"
AUR_RPC_VERSION = 5
REMOTE_REPOSITORY = "AUR"
_DEFAULT_TIMEOUT_SECONDS = 20.0
_DEFAULT_SEARCH_BY = "name-desc"

LOGGER = logging.getLogger(__name__)


class AurClient:
    """Thin client over the AUR RPC ``search`` and ``info`` calls.

    One HTTP request is issued per call. Network failures and AUR error
    envelopes raise ``SourceUnavailable``; responses that are not the expected
    JSON shape raise ``ParseFailure``.
    """

    source_tag = SourceKind.REMOTE.value

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        search_by: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url or os.getenv("AUR_RPC_URL", AUR_RPC_URL)
        self.timeout = timeout if timeout is not None else float(
            os.getenv("AUR_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT_SECONDS)
        )
        self.search_by = search_by or os.getenv("AUR_SEARCH_BY", _DEFAULT_SEARCH_BY)
        self.repository = REMOTE_REPOSITORY
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def search(self, query: Query) -> Iterator[PackageRecord]:
        if query.exact:
            record = self.lookup_exact(query.term)
            if record is not None:
                yield record
            return
        yield from self.search_by_term(query.term)

    def search_by_term(self, term: str) -> list[PackageRecord]:
        """Search the AUR by term; matching rules are the server's."""
        results = self._call({"type": "search", "by": self.search_by, "arg": term})
        records = _parse_results(results, self.repository)
        LOGGER.debug("AUR search: term=%s results=%s", term, len(records))
        return records

    def lookup_exact(self, name: str) -> PackageRecord | None:
        results = self._call({"type": "info", "arg[]": name})
        for record in _parse_results(results, self.repository):
            if record.name.lower() == name.lower():
                return record
        return None

    def lookup_exact_version(self, name: str) -> str | None:
        """Return the AUR's current version of ``name``, or None if unknown."""
        record = self.lookup_exact(name)
        return record.version if record is not None else None

    def _call(self, params: dict[str, Any]) -> list[Any]:
        params = {"v": AUR_RPC_VERSION, **params}
        try:
            response = self._session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SourceUnavailable(self.source_tag, f"request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ParseFailure(self.source_tag, f"response is not JSON: {exc}") from exc

        if not isinstance(body, dict):
            raise ParseFailure(self.source_tag, "unexpected response shape: expected an object")
        if body.get("type") == "error":
            raise SourceUnavailable(self.source_tag, f"AUR error: {body.get('error')}")

        results = body.get("results")
        if not isinstance(results, list):
            raise ParseFailure(self.source_tag, "unexpected response shape: missing results array")
        return results


def _parse_results(results: list[Any], repository: str) -> list[PackageRecord]:
    """Map AUR result entries to PackageRecords, dropping unusable entries."""
    parsed: list[PackageRecord] = []
    for item in results:
        if not isinstance(item, dict):
            continue

        name = _as_str(item.get("Name"))
        if not name:
            continue

        parsed.append(
            PackageRecord(
                name=name,
                version=_as_str(item.get("Version")) or "",
                description=_as_str(item.get("Description")) or "",
                source=SourceKind.REMOTE,
                repository=repository,
                maintainer=_as_str(item.get("Maintainer")) or "",
                upstream_url=_as_str(item.get("URL")) or "",
                last_modified=_parse_unix_seconds(item.get("LastModified")),
            )
        )

    return parsed


def _parse_unix_seconds(raw: Any) -> datetime | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(raw, UTC)
    except (ValueError, OverflowError, OSError):
        return None


def _as_str(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None
