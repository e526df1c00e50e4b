"""
Abstract base class for source extractors
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.config import settings
from schemas.pipeline import DataSource


class SourceExtractor(ABC):
    """
    Fetches raw items for one DataSource.

    Extractors are stateless between calls and perform a single attempt:
    transient failures surface as TransientError subclasses and the
    orchestrator owns the retry policy. Permanent failures (auth, 404,
    unparseable payloads) raise NonRetryableError subclasses.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    @abstractmethod
    async def fetch(self, source: DataSource) -> List[Dict[str, Any]]:
        """
        Fetch raw items from the source.

        Args:
            source: Source configuration; provider details live in source.config

        Returns:
            List of raw item dictionaries, in provider order
        """
        pass
