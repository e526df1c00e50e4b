"""
Pytest configuration and fixtures
"""

import pytest
from models.base import SourceType
from tests.helpers import FakeExtractor, FakeSink, RecordingSleep, world_bank_row


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def world_bank_rows():
    """Five World Bank observations, one of them missing its country"""
    return [
        world_bank_row("USA", 2020, 100.0),
        world_bank_row("KEN", 2020, 71.4),
        world_bank_row("IND", 2020, 99.0),
        world_bank_row("NGA", 2020, 55.4),
        world_bank_row(None, 2020, 42.0),
    ]


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def extractors(fake_extractor):
    return {
        SourceType.API: fake_extractor,
        SourceType.FILE: fake_extractor,
        SourceType.SCRAPER: fake_extractor,
    }
