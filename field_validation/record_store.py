"""
Record Store

Read-only uniqueness lookups against the user records a submission competes
with:

- check_unique_in_scope: only records stored in the configured storage
  folders (pids) are considered - the uniquePage rule
- check_unique_globally: every non-deleted record - the uniqueDb rule

Both return the first conflicting record, or None when the value is free.
The record whose id equals exclude_id (the user being edited) never conflicts.

Two implementations are provided:
- InMemoryRecordStore: records held in a list, for tests and small deployments
- HttpRecordStore: asks a user service over HTTP
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import requests

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    def check_unique_in_scope(
        self, field: str, value: Any, exclude_id: Optional[Any] = None
    ) -> Optional[Mapping[str, Any]]:
        ...

    def check_unique_globally(
        self, field: str, value: Any, exclude_id: Optional[Any] = None
    ) -> Optional[Mapping[str, Any]]:
        ...


def record_id(record: Optional[Any]) -> Optional[Any]:
    """Identifier of an existing record ('uid', falling back to 'id')."""
    if record is None:
        return None
    if isinstance(record, Mapping):
        return record.get("uid", record.get("id"))
    return getattr(record, "uid", getattr(record, "id", None))


class InMemoryRecordStore:
    """Uniqueness lookups over an in-memory list of user records."""

    def __init__(
        self,
        records: Optional[Iterable[Mapping[str, Any]]] = None,
        storage_pids: Optional[Iterable[int]] = None,
    ):
        """
        Initialize in-memory store.

        Args:
            records: User records; each a mapping with at least 'uid', and
                'pid' for records that live in a storage folder
            storage_pids: Storage folders considered by the scoped lookup
        """
        self.records: List[Mapping[str, Any]] = list(records or [])
        self.storage_pids = set(storage_pids or [])

    def add(self, record: Mapping[str, Any]) -> None:
        self.records.append(record)

    def check_unique_in_scope(
        self, field: str, value: Any, exclude_id: Optional[Any] = None
    ) -> Optional[Mapping[str, Any]]:
        return self._find(field, value, exclude_id, scoped=True)

    def check_unique_globally(
        self, field: str, value: Any, exclude_id: Optional[Any] = None
    ) -> Optional[Mapping[str, Any]]:
        return self._find(field, value, exclude_id, scoped=False)

    def _find(self, field, value, exclude_id, scoped):
        for record in self.records:
            if record.get("deleted"):
                continue
            if scoped and record.get("pid") not in self.storage_pids:
                continue
            if exclude_id is not None and record_id(record) == exclude_id:
                continue
            if record.get(field) == value:
                return record
        return None


class HttpRecordStore:
    """
    Uniqueness lookups served by a user service.

    Calls GET {base_url}/users/unique with query parameters scope (page|db),
    field, value and exclude, expecting {"record": {...}} or {"record": null}.
    """

    def __init__(self, record_store_config: Dict[str, Any], session=None):
        """
        Initialize HTTP record store.

        Args:
            record_store_config: Record store configuration dict:
                    - enabled: Whether the user service is consulted
                    - base_url: URL of the user service
                    - timeout_ms: Request timeout in milliseconds
            session: Optional requests.Session (a new one is created otherwise)
        """
        self.config = record_store_config
        self.enabled = self.config.get("enabled", False)
        self.base_url = (self.config.get("base_url") or "").rstrip("/")
        self.timeout_ms = self.config.get("timeout_ms", 5000)
        self.session = session or requests.Session()

        if self.enabled:
            logger.info(
                "HTTP record store initialized",
                extra={"base_url": self.base_url, "timeout_ms": self.timeout_ms},
            )
        else:
            logger.info("HTTP record store disabled - uniqueness lookups report no conflicts")

    def check_unique_in_scope(
        self, field: str, value: Any, exclude_id: Optional[Any] = None
    ) -> Optional[Mapping[str, Any]]:
        return self._lookup("page", field, value, exclude_id)

    def check_unique_globally(
        self, field: str, value: Any, exclude_id: Optional[Any] = None
    ) -> Optional[Mapping[str, Any]]:
        return self._lookup("db", field, value, exclude_id)

    def _lookup(self, scope, field, value, exclude_id):
        if not self.enabled:
            logger.debug(
                "Record store disabled - skipping lookup",
                extra={"scope": scope, "field": field},
            )
            return None

        params = {"scope": scope, "field": field, "value": value}
        if exclude_id is not None:
            params["exclude"] = exclude_id

        try:
            response = self.session.get(
                f"{self.base_url}/users/unique",
                params=params,
                timeout=self.timeout_ms / 1000.0,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.Timeout as e:
            logger.error("Record store timeout", extra={"timeout_ms": self.timeout_ms})
            raise RuntimeError(f"Record store lookup timed out for field {field}") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Record store error", extra={"error": str(e)})
            raise RuntimeError(f"Record store lookup failed for field {field}: {e}") from e

        return payload.get("record") if isinstance(payload, dict) else None
