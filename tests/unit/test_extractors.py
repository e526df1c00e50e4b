"""
Unit tests for source extractors
"""

import json
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DataFormatError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
from etl.sources.api_extractor import APIExtractor
from etl.sources.file_extractor import FileExtractor
from etl.sources.registry import default_extractors, get_extractor
from etl.sources.scraper_extractor import ScraperExtractor
from models.base import SourceType
from schemas.pipeline import DataSource

URL = "https://api.example.com/v2/indicator"


def api_source(**config):
    return DataSource(id="world-bank", name="World Bank", type=SourceType.API, config={"url": URL, **config})


def response(status_code=200, payload=None, text=None, headers=None):
    request = httpx.Request("GET", URL)
    if text is not None:
        return httpx.Response(status_code, text=text, headers=headers, request=request)
    return httpx.Response(status_code, json=payload, headers=headers, request=request)


def mock_http_client(mock_client_cls, *responses, pages=None):
    """Wire patched httpx.AsyncClient to return `responses` in order"""
    client = MagicMock()
    queue = list(responses)

    async def get(url, headers=None, params=None):
        if pages is not None:
            pages.append((params or {}).get("page"))
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client.get = AsyncMock(side_effect=get)
    mock_client_cls.return_value.__aenter__.return_value = client
    mock_client_cls.return_value.__aexit__.return_value = False
    return client


class TestAPIExtractor:
    """Test API extractor functionality"""

    @pytest.mark.asyncio
    async def test_world_bank_pagination(self):
        """Follows meta.page / meta.pages until the last page"""
        pages = []
        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(
                mock_client,
                response(payload=[{"page": 1, "pages": 2}, [{"id": 1}, {"id": 2}]]),
                response(payload=[{"page": 2, "pages": 2}, [{"id": 3}]]),
                pages=pages,
            )

            result = await APIExtractor().fetch(api_source(params={"format": "json"}))

        assert [r["id"] for r in result] == [1, 2, 3]
        assert pages == [1, 2]

    @pytest.mark.asyncio
    async def test_records_path_without_pagination(self):
        with patch("httpx.AsyncClient") as mock_client:
            client = mock_http_client(
                mock_client,
                response(payload={"success": True, "result": {"results": [{"name": "a"}, {"name": "b"}]}}),
            )

            result = await APIExtractor().fetch(api_source(records_path="result.results", paginate=False))

        assert [r["name"] for r in result] == ["a", "b"]
        assert client.get.await_count == 1

    @pytest.mark.asyncio
    async def test_single_object_is_one_record(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(mock_client, response(payload={"type": "Feature", "geometry": {}}))

            result = await APIExtractor().fetch(api_source(paginate=False))

        assert result == [{"type": "Feature", "geometry": {}}]

    @pytest.mark.asyncio
    async def test_api_key_sent_as_bearer(self):
        with patch("httpx.AsyncClient") as mock_client:
            client = mock_http_client(mock_client, response(payload=[]))

            await APIExtractor().fetch(api_source(api_key="secret", paginate=False))

        headers = client.get.await_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code, error", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, ResourceNotFoundError),
        (429, RateLimitError),
        (500, NetworkError),
        (503, NetworkError),
        (422, ResourceNotFoundError),
    ])
    async def test_status_code_mapping(self, status_code, error):
        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(mock_client, response(status_code, payload={"message": "nope"}))

            with pytest.raises(error):
                await APIExtractor().fetch(api_source())

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(mock_client, response(429, payload={}, headers={"Retry-After": "7"}))

            with pytest.raises(RateLimitError) as exc_info:
                await APIExtractor().fetch(api_source())

        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(mock_client, httpx.ReadTimeout("slow"))

            with pytest.raises(NetworkError):
                await APIExtractor().fetch(api_source())

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(mock_client, response(text="<html>oops</html>"))

            with pytest.raises(DataFormatError):
                await APIExtractor().fetch(api_source())

    @pytest.mark.asyncio
    async def test_missing_url(self):
        source = DataSource(id="x", name="x", type=SourceType.API, config={})

        with pytest.raises(ResourceNotFoundError):
            await APIExtractor().fetch(source)


class TestFileExtractor:
    """Test CSV and JSON file extraction"""

    @pytest.mark.asyncio
    async def test_csv_blank_cells_become_none(self, tmp_path):
        path = tmp_path / "irena.csv"
        path.write_text(
            "Country,ISO3 code,Technology,Year,Electricity Installed Capacity (MW)\n"
            "Kenya,KEN,Solar photovoltaic,2022,200\n"
            "Kenya,KEN,Onshore wind energy,2022,\n"
        )
        source = DataSource(id="irena", name="IRENA", type=SourceType.FILE, config={"path": str(path)})

        records = await FileExtractor().fetch(source)

        assert len(records) == 2
        assert records[0]["Technology"] == "Solar photovoltaic"
        assert records[1]["Electricity Installed Capacity (MW)"] is None

    @pytest.mark.asyncio
    async def test_json_records_path(self, tmp_path):
        path = tmp_path / "mtf.json"
        path.write_text(json.dumps({"survey": {"households": [{"household_id": "HH-1"}]}}))
        source = DataSource(
            id="mtf-survey",
            name="MTF",
            type=SourceType.FILE,
            config={"path": str(path), "records_path": "survey.households"},
        )

        records = await FileExtractor().fetch(source)

        assert records == [{"household_id": "HH-1"}]

    @pytest.mark.asyncio
    async def test_malformed_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        source = DataSource(id="f", name="f", type=SourceType.FILE, config={"path": str(path)})

        with pytest.raises(DataFormatError):
            await FileExtractor().fetch(source)

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        source = DataSource(id="f", name="f", type=SourceType.FILE, config={"path": str(tmp_path / "nope.csv")})

        with pytest.raises(ResourceNotFoundError):
            await FileExtractor().fetch(source)


class TestScraperExtractor:

    @pytest.mark.asyncio
    async def test_feed_entries(self):
        feed = """<?xml version="1.0"?>
        <rss version="2.0"><channel><title>Energy news</title>
          <item><guid>n1</guid><title>Mini-grids expand</title><link>https://example.org/1</link>
            <description>Access rises</description><pubDate>Mon, 15 Jan 2024 10:00:00 GMT</pubDate></item>
          <item><guid>n2</guid><title>Solar record</title><link>https://example.org/2</link></item>
        </channel></rss>"""
        source = DataSource(
            id="news", name="News", type=SourceType.SCRAPER,
            config={"url": URL, "max_entries": 1},
        )

        with patch("httpx.AsyncClient") as mock_client:
            mock_http_client(mock_client, response(text=feed))

            entries = await ScraperExtractor().fetch(source)

        assert len(entries) == 1
        assert entries[0]["id"] == "n1"
        assert entries[0]["title"] == "Mini-grids expand"
        assert entries[0]["published"] == "2024-01-15T10:00:00"


class TestRegistry:

    def test_default_extractors_cover_every_source_type(self):
        table = default_extractors()

        assert isinstance(table[SourceType.API], APIExtractor)
        assert isinstance(table[SourceType.FILE], FileExtractor)
        assert isinstance(table[SourceType.SCRAPER], ScraperExtractor)

    def test_missing_extractor(self):
        with pytest.raises(ConfigurationError):
            get_extractor(SourceType.SCRAPER, {SourceType.API: APIExtractor()})
