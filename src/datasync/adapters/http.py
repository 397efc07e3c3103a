"""
HTTP source adapter.

Reads records from a JSON REST API with page-based pagination. Filters
are sent as query parameters and also checked per record, since not
every API honours all of them.
"""

from __future__ import annotations

import time
from typing import Any, Iterator

import httpx

from datasync.adapters.base import BaseAdapter, RawRecord
from datasync.core.filters import FilterSet
from datasync.exceptions import ConnectionFailed
from datasync.utils.logger import get_logger

logger = get_logger(__name__)

# Envelope keys a page of records may be wrapped in
RECORD_KEYS = ("data", "items", "records", "results")


class HttpAdapter(BaseAdapter):
    """
    REST API adapter.

    Example:
        adapter = HttpAdapter({
            "base_url": "https://legacy.example.com/api",
            "api_key": "secret",
        })
        with adapter:
            for record in adapter.read("customer"):
                ...
    """

    code = "http"
    label = "REST API"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: Adapter options
            transport: Optional httpx transport (used to stub the API)
        """
        self._transport = transport
        self._client: httpx.Client | None = None
        super().__init__(config)

    def configure(self, config: dict[str, Any]) -> None:
        super().configure(config)
        self.close()

    @property
    def base_url(self) -> str:
        return str(self._option("base_url", "")).rstrip("/")

    @property
    def page_size(self) -> int:
        return int(self._option("page_size", 100))

    @property
    def max_retries(self) -> int:
        return max(1, int(self._option("max_retries", 3)))

    @property
    def retry_delay(self) -> float:
        return float(self._option("retry_delay", 1.0))

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        api_key = self._option("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers=self._get_headers(),
                timeout=float(self._option("timeout", 30.0)),
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "HttpAdapter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _safe_config(self) -> dict[str, Any]:
        return {"base_url": self.base_url, "api_key": self._option("api_key")}

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Make an API request with retry logic.

        Handles:
        - Rate limiting (429) by waiting for Retry-After
        - Transport errors and 5xx with linear backoff
        - 401/403 and other client errors as fatal
        """
        client = self._get_client()

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = client.request(method, path, **kwargs)
            except httpx.TransportError as e:
                if not last_attempt:
                    time.sleep(self.retry_delay * (attempt + 1))
                    continue
                raise ConnectionFailed(f"{self.base_url}{path}: {e}", self._safe_config()) from e

            if response.status_code == 429:
                retry_after = float(response.headers.get("Retry-After", self.retry_delay))
                if not last_attempt:
                    logger.warning(f"Rate limited by {self.base_url}, retrying in {retry_after:.0f}s")
                    time.sleep(retry_after)
                    continue
                raise ConnectionFailed(f"Rate limited by {self.base_url}", self._safe_config())

            if response.status_code >= 500:
                if not last_attempt:
                    time.sleep(self.retry_delay * (attempt + 1))
                    continue
                raise ConnectionFailed(
                    f"{self.base_url}{path} returned HTTP {response.status_code}",
                    self._safe_config(),
                )

            if response.status_code in (401, 403):
                raise ConnectionFailed(
                    f"Authentication rejected by {self.base_url} (HTTP {response.status_code})",
                    self._safe_config(),
                )

            if response.status_code >= 400:
                raise ConnectionFailed(
                    f"{self.base_url}{path} returned HTTP {response.status_code}",
                    self._safe_config(),
                )

            return response

        raise ConnectionFailed("Max retries exceeded", self._safe_config())

    def endpoint_for(self, entity_type: str) -> str:
        """API path for an entity type; defaults to /<entity_type>."""
        return self._option("endpoints", {}).get(entity_type, f"/{entity_type}")

    def _params(self, filters: FilterSet) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if filters.date_from is not None:
            params["date_from"] = filters.date_from.isoformat()
        if filters.date_to is not None:
            params["date_to"] = filters.date_to.isoformat()
        if filters.id_from is not None:
            params["id_from"] = filters.id_from
        if filters.id_to is not None:
            params["id_to"] = filters.id_to
        stores = filters.stores()
        if stores is not None:
            params["store_id"] = ",".join(sorted(stores))
        if filters.entity_ids is not None:
            params["ids"] = ",".join(str(i) for i in filters.entity_ids)
        if filters.natural_key_list is not None:
            params["keys"] = ",".join(filters.natural_key_list)
        return params

    def _records(self, response: httpx.Response) -> list[RawRecord]:
        """Record list of one page; bodies the adapter cannot read abort the run."""
        try:
            payload = response.json()
        except ValueError as e:
            raise ConnectionFailed(
                f"Unexpected response body from {self.base_url}: not JSON ({e})",
                self._safe_config(),
            ) from e

        records = None
        if isinstance(payload, list):
            records = payload
        elif isinstance(payload, dict):
            for key in RECORD_KEYS:
                if isinstance(payload.get(key), list):
                    records = payload[key]
                    break
        if records is None:
            raise ConnectionFailed("Unexpected response body: expected a list of records")

        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise ConnectionFailed(
                    f"Unexpected response body: record {index} is a {type(record).__name__}, "
                    "expected an object"
                )
        return records

    def validate(self) -> bool:
        self._ensure_configured()
        if not self.base_url:
            raise ConnectionFailed("No base URL configured")
        self._request("GET", self._option("health_path", "/"))
        return True

    def read(self, entity_type: str, filters: FilterSet | None = None) -> Iterator[RawRecord]:
        """
        Fetch pages until a short or empty page is returned.

        Offset and limit count records that passed every filter.
        """
        self._ensure_configured()
        filters = filters or FilterSet()
        path = self.endpoint_for(entity_type)
        params = self._params(filters)

        skipped = 0
        yielded = 0
        page = 1

        while True:
            response = self._request(
                "GET",
                path,
                params={**params, "page": page, "per_page": self.page_size},
            )
            records = self._records(response)
            logger.debug(f"Fetched page {page} of {entity_type}: {len(records)} record(s)")

            for record in records:
                if not self.matches(record, filters, entity_type):
                    continue
                if skipped < filters.offset:
                    skipped += 1
                    continue
                yield record
                yielded += 1
                if filters.limit is not None and yielded >= filters.limit:
                    return

            if len(records) < self.page_size:
                break
            page += 1

    def count(self, entity_type: str, filters: FilterSet | None = None) -> int | None:
        """Total reported in the X-Total-Count header, if the API sends one."""
        filters = filters or FilterSet()
        response = self._request(
            "GET",
            self.endpoint_for(entity_type),
            params={**self._params(filters), "page": 1, "per_page": 1},
        )
        total = response.headers.get("X-Total-Count")
        return int(total) if total is not None and total.isdigit() else None

    def info(self) -> dict[str, Any]:
        info = super().info()
        info["base_url"] = self.base_url
        info["page_size"] = self.page_size
        info["authenticated"] = bool(self._option("api_key"))
        return info
