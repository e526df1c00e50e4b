"""
REST API extractor for JSON providers.

Supports the response shapes used by the energy data providers:
- World Bank v2: ``[meta, rows]`` with ``meta.page`` / ``meta.pages`` paging
- Envelopes: ``{"data": [...]}`` or ``{"results": [...]}`` with ``has_next``
- An explicit ``records_path`` (dot-path) for nested envelopes
- A single JSON object, treated as one item

HTTP failures are mapped onto the exception hierarchy so the orchestrator's
retry policy can tell transient from permanent errors.
"""

import httpx
from typing import List, Dict, Any, Optional, Tuple
from core.exceptions import (
    AuthenticationError,
    DataFormatError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
from etl.sources.base import SourceExtractor
from etl.transformers.engine import resolve_path
from schemas.pipeline import DataSource
import logging

logger = logging.getLogger(__name__)

MAX_PAGES = 100


class APIExtractor(SourceExtractor):
    """
    Extract items from a JSON HTTP API.

    Source config:
        url: Endpoint URL (required)
        params: Query parameters
        headers: Extra request headers
        api_key: Bearer token, sent as Authorization header
        records_path: Dot-path to the item list inside the response
        paginate: Follow pagination (default True)
        max_pages: Upper bound on pages followed (default 100)
    """

    async def fetch(self, source: DataSource) -> List[Dict[str, Any]]:
        config = source.config
        url = config.get("url")
        if not url:
            raise ResourceNotFoundError(
                f"Source {source.id} has no url configured",
                context={"source_id": source.id}
            )

        headers = {"Accept": "application/json", **config.get("headers", {})}
        if config.get("api_key"):
            headers["Authorization"] = f"Bearer {config['api_key']}"

        params = dict(config.get("params", {}))
        paginate = config.get("paginate", True)
        max_pages = config.get("max_pages", MAX_PAGES)

        all_records: List[Dict[str, Any]] = []
        page = 1

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                if paginate:
                    params["page"] = page

                logger.info(f"Fetching page {page} from {url}")
                response = await self._get(client, source, url, headers, params)
                data = self._parse_json(source, response, page)

                records, has_next = self._unpack(data, config.get("records_path"), page)
                all_records.extend(records)
                logger.debug(f"Fetched {len(records)} records from page {page}")

                if not paginate or not records or not has_next or page >= max_pages:
                    break
                page += 1

        logger.info(f"Fetched {len(all_records)} records from {source.id} ({page} pages)")
        return all_records

    async def _get(
        self,
        client: httpx.AsyncClient,
        source: DataSource,
        url: str,
        headers: Dict[str, str],
        params: Dict[str, Any]
    ) -> httpx.Response:
        """Single request; status codes are mapped onto the exception hierarchy."""
        context = {"source_id": source.id, "api_url": url}

        try:
            response = await client.get(url, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {url}",
                context={**context, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.NetworkError as e:
            raise NetworkError(f"Network error for {url}", context=context, original_exception=e)

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {url}",
                context={**context, "status_code": status}
            )
        if status == 404:
            raise ResourceNotFoundError(
                f"Resource not found: {url}",
                context={**context, "status_code": status}
            )
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded for {url}",
                context={**context, "status_code": status},
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if status >= 500:
            raise NetworkError(
                f"Server error {status} from {url}",
                context={**context, "status_code": status, "response_body": response.text[:500]}
            )
        if status >= 400:
            raise ResourceNotFoundError(
                f"Request rejected with status {status}: {url}",
                context={**context, "status_code": status, "response_body": response.text[:500]}
            )

        return response

    @staticmethod
    def _parse_json(source: DataSource, response: httpx.Response, page: int) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DataFormatError(
                "Failed to parse JSON response",
                context={
                    "source_id": source.id,
                    "page": page,
                    "response_body": response.text[:500]
                },
                original_exception=e
            )

    @staticmethod
    def _unpack(data: Any, records_path: Optional[str], page: int) -> Tuple[List[Dict[str, Any]], bool]:
        """Return (items, has_next) for one response body."""
        # World Bank: [{"page": 1, "pages": 3, ...}, [rows]]
        if (
            isinstance(data, list)
            and len(data) == 2
            and isinstance(data[0], dict)
            and "pages" in data[0]
        ):
            meta, rows = data
            rows = rows or []
            return rows, int(meta.get("page", page)) < int(meta.get("pages", 1))

        if records_path:
            records = resolve_path(data, records_path) or []
            return list(records), isinstance(data, dict) and bool(data.get("has_next", False))

        if isinstance(data, list):
            return data, False

        if isinstance(data, dict):
            if "data" in data or "results" in data:
                records = data.get("data", data.get("results")) or []
                return list(records), bool(data.get("has_next", False))
            return [data], False

        return [], False
