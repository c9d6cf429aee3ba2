"""Bronze layer: schedule reference providers.

``FirestoreScheduleSource`` issues one structured query per chunk against
the Firestore REST API, matching documents by name with an ``IN`` filter
(at most 30 values per query). ``StaticScheduleSource`` serves schedules
from memory, e.g. a JSON export.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fleet_payments.config import FirestoreSettings
from fleet_payments.exceptions import ReferenceFetchError

logger = logging.getLogger(__name__)

FIRESTORE_BASE = "https://firestore.googleapis.com/v1"


def make_session(timeout: float = 60.0, retries: int = 3) -> requests.Session:
    """Create a requests Session with retry logic and a default timeout.

    Retries on 429, 500, 502, 503 and 504 with exponential backoff. POST is
    retried too since runQuery is a read.

    Args:
        timeout: Default timeout in seconds for all requests.
        retries: Number of retry attempts.

    Returns:
        Configured requests.Session object.

    """
    s = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=0.5,  # 0.5, 1.0, 2.0, ...
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    orig_request = s.request

    def timed_request(method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", timeout)
        return orig_request(method, url, **kwargs)

    s.request = timed_request  # type: ignore[method-assign,assignment]
    return s


def decode_value(value: Mapping[str, Any]) -> Any:
    """Decode one Firestore REST typed value into a plain Python value.

    Timestamps stay ISO strings; the enrichment step parses them.

    Examples:
        >>> decode_value({"integerValue": "42"})
        42
        >>> decode_value({"mapValue": {"fields": {"a": {"stringValue": "x"}}}})
        {'a': 'x'}

    """
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return value["timestampValue"]
    if "nullValue" in value:
        return None
    if "referenceValue" in value:
        return value["referenceValue"].rsplit("/", 1)[-1]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "bytesValue" in value:
        return value["bytesValue"]
    return None


def decode_fields(fields: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
    """Decode a Firestore document ``fields`` mapping."""
    return {name: decode_value(v) for name, v in fields.items()}


class FirestoreScheduleSource:
    """Fetch schedule documents by id through the Firestore REST API."""

    def __init__(
        self,
        settings: FirestoreSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or make_session(settings.timeout, settings.retries)

    @property
    def query_url(self) -> str:
        return f"{FIRESTORE_BASE}/{self.settings.documents_root}:runQuery"

    def build_query(self, schedule_ids: list[str]) -> dict[str, Any]:
        """Structured query selecting the given schedule documents by name."""
        prefix = f"{self.settings.documents_root}/{self.settings.collection}"
        return {
            "structuredQuery": {
                "from": [{"collectionId": self.settings.collection}],
                "where": {
                    "fieldFilter": {
                        "field": {"fieldPath": "__name__"},
                        "op": "IN",
                        "value": {
                            "arrayValue": {
                                "values": [
                                    {"referenceValue": f"{prefix}/{sid}"} for sid in schedule_ids
                                ]
                            }
                        },
                    }
                },
            }
        }

    def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, Mapping[str, Any]]:
        """Run one query for a chunk of schedule ids.

        Raises:
            ReferenceFetchError: On transport errors, non-2xx responses or an
                unexpected response body.
        """
        headers = {"Content-Type": "application/json"}
        params = {}
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        if self.settings.api_key:
            params["key"] = self.settings.api_key

        try:
            resp = self.session.post(
                self.query_url,
                json=self.build_query(schedule_ids),
                headers=headers,
                params=params,
            )
        except requests.RequestException as e:
            raise ReferenceFetchError(f"Schedule query failed: {e}", schedule_ids) from e

        if not (200 <= resp.status_code < 300):
            raise ReferenceFetchError(
                f"Schedule query failed. HTTP {resp.status_code} - {resp.text[:400]}",
                schedule_ids,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise ReferenceFetchError(f"Schedule query returned invalid JSON: {e}", schedule_ids) from e
        if not isinstance(body, list):
            raise ReferenceFetchError("Schedule query returned an unexpected body", schedule_ids)

        found: dict[str, Mapping[str, Any]] = {}
        for item in body:
            doc = item.get("document") if isinstance(item, dict) else None
            if not doc:
                continue
            sid = doc["name"].rsplit("/", 1)[-1]
            found[sid] = decode_fields(doc.get("fields", {}))
        logger.debug("Schedule query returned %d of %d id(s)", len(found), len(schedule_ids))
        return found


class StaticScheduleSource:
    """Serve schedule documents from an in-memory mapping.

    Accepts either ``{id: document}`` or a list of documents carrying ``id``.
    """

    def __init__(self, schedules: Mapping[str, Mapping[str, Any]] | list[Mapping[str, Any]]) -> None:
        if isinstance(schedules, Mapping):
            self._schedules = {str(k): v for k, v in schedules.items()}
        else:
            self._schedules = {str(doc["id"]): doc for doc in schedules if doc.get("id")}

    def __len__(self) -> int:
        return len(self._schedules)

    def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, Mapping[str, Any]]:
        return {sid: self._schedules[sid] for sid in schedule_ids if sid in self._schedules}
