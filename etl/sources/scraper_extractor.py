"""
Feed scraper extractor

Extracts entries from RSS/Atom feeds published by energy portals.
"""

import asyncio
import feedparser
import httpx
from typing import List, Dict, Any
from datetime import datetime
from core.exceptions import DataFormatError, NetworkError, ResourceNotFoundError
from etl.sources.base import SourceExtractor
from schemas.pipeline import DataSource


class ScraperExtractor(SourceExtractor):
    """
    Scrape feed entries.

    Source config:
        url: Feed URL (required)
        max_entries: Keep at most this many entries
    """

    async def fetch(self, source: DataSource) -> List[Dict[str, Any]]:
        url = source.config.get("url")
        if not url:
            raise ResourceNotFoundError(
                f"Source {source.id} has no feed url configured",
                context={"source_id": source.id}
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise NetworkError(f"Failed to fetch feed {url}", context={"source_id": source.id}, original_exception=e)

        if response.status_code >= 500:
            raise NetworkError(
                f"Server error {response.status_code} from {url}",
                context={"source_id": source.id, "status_code": response.status_code}
            )
        if response.status_code >= 400:
            raise ResourceNotFoundError(
                f"Feed request rejected with status {response.status_code}",
                context={"source_id": source.id, "status_code": response.status_code}
            )

        # Parse feed in thread pool
        feed = await asyncio.to_thread(feedparser.parse, response.text)

        if feed.bozo and not feed.entries:
            raise DataFormatError(
                f"Failed to parse feed: {feed.bozo_exception}",
                context={"source_id": source.id, "url": url}
            )

        entries = []
        for entry in feed.entries:
            published = None
            if entry.get("published_parsed"):
                published = datetime(*entry.published_parsed[:6])
            elif entry.get("updated_parsed"):
                published = datetime(*entry.updated_parsed[:6])

            entries.append({
                "id": entry.get("id", entry.get("link", "")),
                "title": entry.get("title", ""),
                "description": entry.get("summary", entry.get("description", "")),
                "link": entry.get("link", ""),
                "author": entry.get("author", ""),
                "published": published.isoformat() if published else None,
                "categories": [tag.get("term", "") for tag in entry.get("tags", [])],
            })

        max_entries = source.config.get("max_entries")
        return entries[:max_entries] if max_entries else entries
