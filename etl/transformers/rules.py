"""
Transformation rule catalog for the supported energy data providers.

Every rule is keyed by its `source_type`, which matches the DataSource id
(or its explicit `rule_id`). Mapping transforms are pure: they clamp or
return a sentinel instead of raising on out-of-domain input.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from schemas.transformations import (
    FieldMapping,
    PostProcessingStep,
    TransformationRule,
    ValidationRule,
)


# ============================================================================
# Value helpers
# ============================================================================

def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str) and "-" in value.strip()[1:]:
        # Dates such as 2021-06-30 resolve to their year
        value = value.strip()[:4]
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _strip(default: str = ""):
    def transform(value: Any) -> str:
        if value is None:
            return default
        text = str(value).strip()
        return text or default
    return transform


def _to_iso(value: Any) -> Optional[str]:
    """Parse ISO dates and compact YYYYMMDD strings; unparseable gives None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()

    text = str(value).strip()
    for fmt in ("%Y%m%d", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).isoformat()
        except ValueError:
            pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError:
        return None


def _clamp_tier(value: Any) -> int:
    tier = _to_int(value)
    return tier if tier is not None and 0 <= tier <= 5 else 0


def _upper(value: Any) -> str:
    return str(value).strip().upper() if value else ""


# ============================================================================
# World Bank
# ============================================================================

UNIT_ALIASES = {
    "kWh per capita": "kWh/capita",
    "kg of oil equivalent per capita": "kgoe/capita",
    "% of population": "%",
    "% of total final energy consumption": "%",
}


def normalize_energy_units(records: List[Any]) -> List[Optional[Dict[str, Any]]]:
    updates = []
    for record in records:
        unit = record.data.get("unit")
        updates.append({"unit": UNIT_ALIASES[unit]} if unit in UNIT_ALIASES else None)
    return updates


WORLD_BANK_RULE = TransformationRule(
    id="world-bank-transform",
    name="World Bank Data Transformation",
    source_type="world-bank",
    target_type="energy-indicator",
    mappings=[
        FieldMapping(source_field="country.value", target_field="countryName", transform=_strip("Unknown")),
        FieldMapping(source_field="country.id", target_field="countryCode", transform=_upper),
        FieldMapping(source_field="indicator.id", target_field="indicatorCode", transform=_strip()),
        FieldMapping(source_field="indicator.value", target_field="indicatorName", transform=_strip()),
        FieldMapping(source_field="value", target_field="value", transform=_to_float),
        FieldMapping(source_field="date", target_field="year", transform=_to_int),
        FieldMapping(source_field="unit", target_field="unit", default_value="N/A"),
        FieldMapping(source_field="obs_status", target_field="observationStatus", default_value="A"),
        FieldMapping(
            source_field="decimal",
            target_field="decimalPlaces",
            transform=lambda v: _to_int(v) or 2,
        ),
    ],
    validations=[
        ValidationRule(field="countryCode", type="required"),
        ValidationRule(field="countryCode", type="pattern", config={"pattern": r"^[A-Z]{2,3}$"}),
        ValidationRule(field="indicatorCode", type="required"),
        ValidationRule(
            field="year",
            type="range",
            config={"min": 1960, "max": datetime.utcnow().year + 1},
            severity="warning",
        ),
        ValidationRule(field="value", type="type", config={"type": "number"}, severity="warning"),
    ],
    post_processing=[
        PostProcessingStep(name="normalizeEnergyUnits", order=1, processor=normalize_energy_units),
    ],
)


# ============================================================================
# NASA POWER
# ============================================================================

# Climatology point response: annual means under properties.parameter.<NAME>.ANN,
# GeoJSON coordinates as [lon, lat, elevation]
NASA_POWER_RULE = TransformationRule(
    id="nasa-power-transform",
    name="NASA POWER Climate Data Transformation",
    source_type="nasa-power",
    target_type="climate-data",
    mappings=[
        FieldMapping(source_field="properties.parameter.ALLSKY_SFC_SW_DWN.ANN", target_field="solarIrradiance",
                     transform=lambda v: _to_float(v, 0.0)),
        FieldMapping(source_field="properties.parameter.WS10M.ANN", target_field="windSpeed10m",
                     transform=lambda v: _to_float(v, 0.0)),
        FieldMapping(source_field="properties.parameter.T2M.ANN", target_field="temperature2m",
                     transform=lambda v: _to_float(v, 0.0)),
        FieldMapping(source_field="properties.parameter.PRECTOTCORR.ANN", target_field="precipitation",
                     transform=lambda v: _to_float(v, 0.0)),
        FieldMapping(source_field="geometry.coordinates.0", target_field="longitude", transform=_to_float),
        FieldMapping(source_field="geometry.coordinates.1", target_field="latitude", transform=_to_float),
        FieldMapping(source_field="header.start", target_field="startDate", transform=_to_iso),
        FieldMapping(source_field="header.end", target_field="endDate", transform=_to_iso),
    ],
    validations=[
        ValidationRule(field="latitude", type="required"),
        ValidationRule(field="latitude", type="range", config={"min": -90, "max": 90}),
        ValidationRule(field="longitude", type="required"),
        ValidationRule(field="longitude", type="range", config={"min": -180, "max": 180}),
        ValidationRule(field="solarIrradiance", type="range", config={"min": 0, "max": 1000},
                       severity="warning"),
    ],
)


# ============================================================================
# IRENA
# ============================================================================

TECHNOLOGY_ALIASES = {
    "Solar photovoltaic": "Solar PV",
    "Onshore wind energy": "Wind Onshore",
    "Offshore wind energy": "Wind Offshore",
    "Hydropower": "Hydro",
    "Bioenergy": "Biomass",
}

HOURS_PER_YEAR = 8760


def _technology(value: Any) -> Optional[str]:
    if value is None:
        return None
    return TECHNOLOGY_ALIASES.get(value, value)


def _technology_indicator(value: Any) -> Optional[str]:
    """Indicator code such as IRENA.CAPACITY.SOLAR_PV, one per technology"""
    technology = _technology(value)
    if not technology:
        return None
    slug = "_".join(str(technology).upper().replace("-", " ").split())
    return f"IRENA.CAPACITY.{slug}"


def calculate_capacity_factor(records: List[Any]) -> List[Optional[Dict[str, Any]]]:
    """Generation (MWh) over capacity (MW) times hours in a year, clamped to [0, 1]"""
    updates = []
    for record in records:
        capacity = record.data.get("installedCapacityMW") or 0
        generation = record.data.get("generationGWh") or 0
        if capacity > 0 and generation > 0:
            factor = (generation * 1000) / (capacity * HOURS_PER_YEAR)
            updates.append({"capacityFactor": round(min(1.0, max(0.0, factor)), 4)})
        else:
            updates.append({"capacityFactor": 0.0})
    return updates


IRENA_RULE = TransformationRule(
    id="irena-transform",
    name="IRENA Renewable Energy Transformation",
    source_type="irena",
    target_type="renewable-capacity",
    mappings=[
        FieldMapping(source_field="Country", target_field="countryName", transform=_strip()),
        FieldMapping(source_field="ISO3 code", target_field="countryCode", transform=_upper),
        FieldMapping(source_field="Technology", target_field="technology", transform=_technology),
        FieldMapping(source_field="Technology", target_field="indicatorCode", transform=_technology_indicator),
        FieldMapping(source_field="Year", target_field="year", transform=_to_int),
        FieldMapping(source_field="Electricity Installed Capacity (MW)", target_field="installedCapacityMW",
                     transform=lambda v: _to_float(v, 0.0)),
        FieldMapping(source_field="Electricity Generation (GWh)", target_field="generationGWh",
                     transform=lambda v: _to_float(v, 0.0)),
        FieldMapping(source_field="Region", target_field="region", default_value="Global"),
    ],
    validations=[
        ValidationRule(field="technology", type="required"),
        ValidationRule(field="year", type="required"),
        ValidationRule(field="installedCapacityMW", type="range", config={"min": 0}, severity="warning"),
    ],
    post_processing=[
        PostProcessingStep(name="calculateCapacityFactor", order=1, processor=calculate_capacity_factor),
    ],
)


# ============================================================================
# ESMAP Hub
# ============================================================================

CATEGORY_ALIASES = {
    "energy_access": "Energy Access",
    "renewable_energy": "Renewable Energy",
    "energy_efficiency": "Energy Efficiency",
    "clean_cooking": "Clean Cooking",
    "grid_infrastructure": "Grid Infrastructure",
}

STALE_DATASET_DAYS = 182


def _category(value: Any) -> Optional[str]:
    if value is None:
        return None
    return CATEGORY_ALIASES.get(str(value).lower(), value)


def recently_updated(value: Any, data: Dict[str, Any]):
    try:
        updated = datetime.fromisoformat(str(value))
    except ValueError:
        return False, "lastUpdated is not an ISO date"
    if updated.tzinfo is not None:
        updated = updated.astimezone(timezone.utc).replace(tzinfo=None)
    ok = updated > datetime.utcnow() - timedelta(days=STALE_DATASET_DAYS)
    return ok, "Dataset has not been updated in the last 6 months"


ESMAP_HUB_RULE = TransformationRule(
    id="esmap-hub-transform",
    name="ESMAP Hub Dataset Transformation",
    source_type="esmap-hub",
    target_type="esmap-dataset",
    mappings=[
        FieldMapping(source_field="dataset_name", target_field="datasetName", transform=_strip()),
        FieldMapping(source_field="country", target_field="country", transform=_strip("Global")),
        FieldMapping(source_field="category", target_field="category", transform=_category),
        FieldMapping(source_field="last_updated", target_field="lastUpdated", transform=_to_iso),
        FieldMapping(source_field="data_points", target_field="dataPoints", transform=lambda v: _to_int(v, 0)),
        FieldMapping(source_field="temporal_coverage_start", target_field="temporalCoverageStart",
                     transform=_to_int),
        FieldMapping(source_field="temporal_coverage_end", target_field="temporalCoverageEnd",
                     transform=_to_int),
        FieldMapping(source_field="spatial_resolution", target_field="spatialResolution",
                     default_value="National"),
        FieldMapping(source_field="update_frequency", target_field="updateFrequency", default_value="Annual"),
    ],
    validations=[
        ValidationRule(field="datasetName", type="required"),
        ValidationRule(field="category", type="required"),
        ValidationRule(
            field="temporalCoverageStart",
            type="cross_field",
            config={"other_field": "temporalCoverageEnd", "operator": "le"},
            severity="warning",
        ),
        ValidationRule(field="lastUpdated", type="custom", config={"check": recently_updated},
                       severity="warning"),
    ],
)


# ============================================================================
# Multi-Tier Framework survey
# ============================================================================

def calculate_access_score(records: List[Any]) -> List[Optional[Dict[str, Any]]]:
    """Composite 0-100 score from electricity and cooking tiers, plus a category"""
    updates = []
    for record in records:
        electricity = record.data.get("electricityTier") or 0
        cooking = record.data.get("cookingTier") or 0

        if electricity >= 4 and cooking >= 4:
            category = "Full Access"
        elif electricity >= 2 or cooking >= 2:
            category = "Basic Access"
        else:
            category = "No Access"

        updates.append({
            "accessScore": (electricity + cooking) / 10 * 100,
            "accessCategory": category,
        })
    return updates


MTF_RULE = TransformationRule(
    id="mtf-transform",
    name="MTF Survey Data Transformation",
    source_type="mtf-survey",
    target_type="energy-access-tier",
    mappings=[
        FieldMapping(source_field="household_id", target_field="householdId", transform=_strip()),
        FieldMapping(source_field="country", target_field="country", transform=_strip()),
        FieldMapping(source_field="region", target_field="region", transform=_strip()),
        FieldMapping(source_field="electricity_tier", target_field="electricityTier", transform=_clamp_tier),
        FieldMapping(source_field="cooking_tier", target_field="cookingTier", transform=_clamp_tier),
        FieldMapping(source_field="survey_date", target_field="surveyDate", transform=_to_iso),
        FieldMapping(source_field="grid_connected", target_field="gridConnected", transform=bool),
        FieldMapping(source_field="primary_lighting_source", target_field="primaryLightingSource",
                     transform=lambda v: v or "None"),
        FieldMapping(source_field="primary_cooking_fuel", target_field="primaryCookingFuel",
                     transform=lambda v: v or "None"),
    ],
    validations=[
        ValidationRule(field="householdId", type="required"),
        ValidationRule(field="electricityTier", type="range", config={"min": 0, "max": 5}),
        ValidationRule(field="cookingTier", type="range", config={"min": 0, "max": 5}),
        ValidationRule(field="country", type="required"),
    ],
    post_processing=[
        PostProcessingStep(name="calculateAccessScore", order=1, processor=calculate_access_score),
    ],
)


# ============================================================================
# Registry
# ============================================================================

TRANSFORMATION_RULES: Dict[str, TransformationRule] = {
    rule.source_type: rule
    for rule in (WORLD_BANK_RULE, NASA_POWER_RULE, IRENA_RULE, ESMAP_HUB_RULE, MTF_RULE)
}


def get_all_transformation_rules() -> List[TransformationRule]:
    return list(TRANSFORMATION_RULES.values())


def get_transformation_rule(source_type: str) -> Optional[TransformationRule]:
    return TRANSFORMATION_RULES.get(source_type)
