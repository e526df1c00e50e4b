"""
Static catalog of the energy data sources jobs may reference.
"""

from typing import Dict, List

from models.base import SourceType
from schemas.api import SourceCatalogEntry
from schemas.pipeline import DataSource


SOURCE_CATALOG: List[SourceCatalogEntry] = [
    SourceCatalogEntry(
        id="world-bank",
        name="World Bank Open Data",
        type=SourceType.API,
        description="Energy access and consumption indicators from the World Bank",
        update_frequency="Annual",
    ),
    SourceCatalogEntry(
        id="nasa-power",
        name="NASA POWER",
        type=SourceType.API,
        description="Solar irradiance, wind and temperature climatology",
        update_frequency="Daily",
    ),
    SourceCatalogEntry(
        id="irena",
        name="IRENA Statistics",
        type=SourceType.FILE,
        description="Renewable installed capacity and generation by technology",
        update_frequency="Annual",
    ),
    SourceCatalogEntry(
        id="esmap-hub",
        name="ESMAP Energy Data Hub",
        type=SourceType.API,
        description="Dataset catalog of the ESMAP energy data hub",
        update_frequency="Monthly",
    ),
    SourceCatalogEntry(
        id="mtf-survey",
        name="Multi-Tier Framework Surveys",
        type=SourceType.FILE,
        description="Household energy access tiers from MTF surveys",
        update_frequency="Irregular",
    ),
]


# Provider connection details, one per catalog entry
SOURCE_CONFIGS: Dict[str, Dict] = {
    "world-bank": {
        "url": "https://api.worldbank.org/v2/country/all/indicator/EG.ELC.ACCS.ZS",
        "params": {"format": "json", "per_page": 1000, "date": "2015:2023"},
    },
    "nasa-power": {
        "url": "https://power.larc.nasa.gov/api/temporal/climatology/point",
        "params": {
            "parameters": "ALLSKY_SFC_SW_DWN,WS10M,T2M,PRECTOTCORR",
            "community": "RE",
            "longitude": 36.82,
            "latitude": -1.29,
            "format": "JSON",
        },
        "paginate": False,
    },
    "irena": {
        "path": "data/irena_capacity.csv",
        "format": "csv",
    },
    "esmap-hub": {
        "url": "https://energydata.info/api/3/action/package_search",
        "params": {"q": "esmap", "rows": 100},
        "records_path": "result.results",
        "paginate": False,
    },
    "mtf-survey": {
        "path": "data/mtf_survey.json",
        "format": "json",
    },
}


def get_catalog_entry(source_id: str) -> SourceCatalogEntry:
    for entry in SOURCE_CATALOG:
        if entry.id == source_id:
            return entry
    raise KeyError(source_id)


def build_data_source(source_id: str, priority: int = 1, required: bool = True) -> DataSource:
    """Materialize a catalog entry into a pipeline DataSource."""
    entry = get_catalog_entry(source_id)
    return DataSource(
        id=entry.id,
        name=entry.name,
        type=entry.type,
        priority=priority,
        required=required,
        config=dict(SOURCE_CONFIGS.get(entry.id, {})),
    )
