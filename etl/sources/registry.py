"""
Strategy table mapping a source type to its extractor.
"""

from typing import Dict, Optional

from core.exceptions import ConfigurationError
from etl.sources.api_extractor import APIExtractor
from etl.sources.base import SourceExtractor
from etl.sources.file_extractor import FileExtractor
from etl.sources.scraper_extractor import ScraperExtractor
from models.base import SourceType


def default_extractors(timeout: Optional[float] = None) -> Dict[SourceType, SourceExtractor]:
    return {
        SourceType.API: APIExtractor(timeout),
        SourceType.FILE: FileExtractor(timeout),
        SourceType.SCRAPER: ScraperExtractor(timeout),
    }


def get_extractor(
    source_type: SourceType,
    extractors: Optional[Dict[SourceType, SourceExtractor]] = None
) -> SourceExtractor:
    table = extractors if extractors is not None else default_extractors()
    extractor = table.get(SourceType(source_type))
    if extractor is None:
        raise ConfigurationError(
            f"No extractor registered for source type '{source_type}'",
            context={"source_type": str(source_type)}
        )
    return extractor
