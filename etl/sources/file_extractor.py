"""
File extractor for CSV and JSON exports
"""

import asyncio
import json
import pandas as pd
from pathlib import Path
from typing import List, Dict, Any, Optional
from core.exceptions import DataFormatError, ResourceNotFoundError
from etl.sources.base import SourceExtractor
from etl.transformers.engine import resolve_path
from schemas.pipeline import DataSource
import logging

logger = logging.getLogger(__name__)


class FileExtractor(SourceExtractor):
    """
    Read items from a local CSV or JSON file.

    Source config:
        path: File path (required)
        format: "csv" or "json" (defaults to the file suffix)
        records_path: Dot-path to the item list inside a JSON document
        delimiter: CSV delimiter (default ",")
    """

    async def fetch(self, source: DataSource) -> List[Dict[str, Any]]:
        config = source.config
        path = Path(config.get("path", ""))
        if not config.get("path") or not path.exists():
            raise ResourceNotFoundError(
                f"File not found: {path}",
                context={"source_id": source.id, "path": str(path)}
            )

        file_format = (config.get("format") or path.suffix.lstrip(".")).lower()
        logger.info(f"Reading {file_format.upper()} from {path}")

        if file_format == "csv":
            records = await asyncio.to_thread(self._read_csv, source, path, config.get("delimiter", ","))
        elif file_format == "json":
            records = await asyncio.to_thread(self._read_json, source, path, config.get("records_path"))
        else:
            raise DataFormatError(
                f"Unsupported file format '{file_format}'",
                context={"source_id": source.id, "path": str(path)}
            )

        logger.info(f"Read {len(records)} records from {path}")
        return records

    @staticmethod
    def _read_csv(source: DataSource, path: Path, delimiter: str) -> List[Dict[str, Any]]:
        try:
            df = pd.read_csv(path, sep=delimiter)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataFormatError(
                "Failed to parse CSV file",
                context={"source_id": source.id, "path": str(path)},
                original_exception=e
            )

        df.columns = df.columns.str.strip()
        # NaN cells become None so that defaults and required checks apply
        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict(orient="records")

    @staticmethod
    def _read_json(source: DataSource, path: Path, records_path: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DataFormatError(
                "Failed to parse JSON file",
                context={"source_id": source.id, "path": str(path)},
                original_exception=e
            )

        if records_path:
            data = resolve_path(data, records_path)
        if isinstance(data, dict):
            data = data.get("data", data.get("results", [data]))
        if not isinstance(data, list):
            raise DataFormatError(
                "JSON file does not contain a list of records",
                context={"source_id": source.id, "path": str(path), "records_path": records_path}
            )
        return data
