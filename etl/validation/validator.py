"""
Rule-based record validation and quality scoring.

Pass/fail and quality are independent:
- validate_record() decides whether a record may continue down the pipeline
- run_quality_checks() produces a continuous 0-1 score stored on the record

Rule types:
    required     value present and non-empty
    type         config: {"type": string|number|integer|boolean}
    range        config: {"min": x, "max": y} (either bound optional)
    pattern      config: {"pattern": regex}
    enum         config: {"values": [...]}
    cross_field  config: {"other_field": name, "operator": lt|le|gt|ge|eq|ne}
    custom       config: {"check": callable(value, data) -> bool | (bool, message)}

Severities: critical and error failures invalidate the record; warning
failures are reported as warnings, unless the field also carries a
`required` rule, in which case they are promoted to errors.
"""

import logging
import operator
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from core.exceptions import ConfigurationError
from schemas.records import DataRecord, ValidationIssue, ValidationStatus
from schemas.transformations import RULE_TYPES, SEVERITIES, ValidationRule

logger = logging.getLogger(__name__)


TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
}

CROSS_FIELD_OPERATORS = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
    "eq": operator.eq,
    "ne": operator.ne,
}

# Documented physical bounds used for plausibility scoring
PHYSICAL_BOUNDS: Dict[str, Tuple[Optional[float], Optional[float]]] = {
    "latitude": (-90, 90),
    "longitude": (-180, 180),
    "capacityFactor": (0, 1),
    "electricityTier": (0, 5),
    "cookingTier": (0, 5),
    "accessScore": (0, 100),
    "solarIrradiance": (0, 1000),
    "windSpeed10m": (0, 120),
    "temperature2m": (-90, 60),
    "precipitation": (0, None),
    "installedCapacityMW": (0, None),
    "generationGWh": (0, None),
    "dataPoints": (0, None),
}

PERCENT_BOUNDS = (0, 100)

COMPLETENESS_WEIGHT = 0.4
FRESHNESS_WEIGHT = 0.3
PLAUSIBILITY_WEIGHT = 0.3

FRESH_YEARS = 1
STALE_YEARS = 10


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


class Validator:
    """Holds one rule set per source type and evaluates records against it"""

    def __init__(self):
        self._rules: Dict[str, List[ValidationRule]] = {}

    def register_validation_rules(
        self,
        source_type: str,
        rules: Iterable[Union[ValidationRule, Dict[str, Any]]]
    ) -> None:
        """
        Replace the rule set for a source type.

        Raises:
            ConfigurationError: If any rule is malformed. Nothing is
                registered in that case.
        """
        checked = []
        for index, rule in enumerate(rules):
            if isinstance(rule, dict):
                try:
                    rule = ValidationRule(**rule)
                except Exception as e:
                    raise ConfigurationError(
                        "Malformed validation rule",
                        context={"source_type": source_type, "rule_index": index},
                        original_exception=e
                    )
            self._check_rule(source_type, index, rule)
            checked.append(rule)

        self._rules[source_type] = checked
        logger.debug(f"Registered {len(checked)} validation rules for {source_type}")

    def get_rules(self, source_type: str) -> List[ValidationRule]:
        return list(self._rules.get(source_type, []))

    @staticmethod
    def _check_rule(source_type: str, index: int, rule: ValidationRule) -> None:
        context = {"source_type": source_type, "rule_index": index, "field": rule.field}

        def fail(message: str, cause: Optional[Exception] = None):
            raise ConfigurationError(message, context=context, original_exception=cause)

        if not rule.field:
            fail("Validation rule must name a field")
        if rule.type not in RULE_TYPES:
            fail(f"Unknown validation rule type '{rule.type}'")
        if rule.severity not in SEVERITIES:
            fail(f"Unknown severity '{rule.severity}'")

        config = rule.config
        if rule.type == "type":
            if config.get("type") not in TYPE_CHECKS:
                fail(f"Type rule needs one of {sorted(TYPE_CHECKS)}")
        elif rule.type == "range":
            bounds = [config.get("min"), config.get("max")]
            if all(b is None for b in bounds):
                fail("Range rule requires min and/or max")
            if any(b is not None and not _is_number(b) for b in bounds):
                fail("Range bounds must be numeric")
        elif rule.type == "pattern":
            pattern = config.get("pattern")
            if not isinstance(pattern, str):
                fail("Pattern rule requires a 'pattern' string")
            try:
                re.compile(pattern)
            except re.error as e:
                fail(f"Invalid regular expression: {pattern}", e)
        elif rule.type == "enum":
            values = config.get("values")
            if not isinstance(values, (list, tuple, set)) or not values:
                fail("Enum rule requires a non-empty 'values' list")
        elif rule.type == "cross_field":
            if not config.get("other_field"):
                fail("Cross-field rule requires 'other_field'")
            if config.get("operator") not in CROSS_FIELD_OPERATORS:
                fail(f"Cross-field operator must be one of {sorted(CROSS_FIELD_OPERATORS)}")
        elif rule.type == "custom":
            if not callable(config.get("check")):
                fail("Custom rule requires a callable 'check'")

    # ------------------------------------------------------------------
    # Pass / fail
    # ------------------------------------------------------------------

    def validate_record(self, record: DataRecord, source_type: str) -> ValidationStatus:
        """Evaluate every registered rule; never mutates the record."""
        rules = self._rules.get(source_type, [])
        required_fields = {r.field for r in rules if r.type == "required"}
        status = ValidationStatus()

        for rule in rules:
            value = record.data.get(rule.field)
            message = self._evaluate(rule, value, record.data)
            if message is None:
                continue

            issue = ValidationIssue(field=rule.field, rule=rule.type, message=rule.message or message)
            if rule.severity in ("critical", "error") or rule.field in required_fields:
                status.errors.append(issue)
            else:
                status.warnings.append(issue)

        status.is_valid = not status.errors
        return status

    def _evaluate(self, rule: ValidationRule, value: Any, data: Dict[str, Any]) -> Optional[str]:
        """Return a failure message, or None when the rule holds."""
        if rule.type == "required":
            return f"{rule.field} is required" if _is_missing(value) else None

        # Absent values are only judged by `required`
        if value is None:
            return None

        config = rule.config
        if rule.type == "type":
            expected = config["type"]
            if not TYPE_CHECKS[expected](value):
                return f"{rule.field} must be of type {expected}, got {type(value).__name__}"

        elif rule.type == "range":
            if not _is_number(value):
                return f"{rule.field} must be numeric, got {type(value).__name__}"
            low, high = config.get("min"), config.get("max")
            if low is not None and value < low:
                return f"{rule.field} value {value} is below minimum {low}"
            if high is not None and value > high:
                return f"{rule.field} value {value} exceeds maximum {high}"

        elif rule.type == "pattern":
            if not re.search(config["pattern"], str(value)):
                return f"{rule.field} value '{value}' does not match {config['pattern']}"

        elif rule.type == "enum":
            if value not in config["values"]:
                return f"{rule.field} value '{value}' is not one of {list(config['values'])}"

        elif rule.type == "cross_field":
            other_field = config["other_field"]
            other = data.get(other_field)
            if other is None:
                return None
            op_name = config["operator"]
            try:
                holds = CROSS_FIELD_OPERATORS[op_name](value, other)
            except TypeError:
                holds = False
            if not holds:
                return f"{rule.field} ({value}) must be {op_name} {other_field} ({other})"

        elif rule.type == "custom":
            try:
                outcome = config["check"](value, data)
            except Exception as e:
                return f"{rule.field} custom check raised {type(e).__name__}: {e}"
            if isinstance(outcome, tuple):
                ok, message = outcome
                return None if ok else (message or f"{rule.field} failed custom check")
            if not outcome:
                return f"{rule.field} failed custom check"

        return None

    # ------------------------------------------------------------------
    # Quality score
    # ------------------------------------------------------------------

    def run_quality_checks(
        self,
        record: DataRecord,
        source_type: str,
        now: Optional[datetime] = None
    ) -> float:
        """
        Weighted combination of completeness, freshness and plausibility.

        Returns:
            Score in [0, 1]
        """
        now = now or datetime.utcnow()
        rules = self._rules.get(source_type, [])

        completeness = self._completeness(record.data, rules)
        freshness = self._freshness(record, now)
        plausibility = self._plausibility(record.data, rules)

        score = (
            COMPLETENESS_WEIGHT * completeness
            + FRESHNESS_WEIGHT * freshness
            + PLAUSIBILITY_WEIGHT * plausibility
        )
        return round(min(1.0, max(0.0, score)), 4)

    @staticmethod
    def _completeness(data: Dict[str, Any], rules: List[ValidationRule]) -> float:
        expected = list(dict.fromkeys(r.field for r in rules)) or list(data.keys())
        if not expected:
            return 0.0
        populated = sum(1 for f in expected if not _is_missing(data.get(f)))
        return populated / len(expected)

    @staticmethod
    def _freshness(record: DataRecord, now: datetime) -> float:
        year = record.data.get("year")
        age_years: Optional[float] = None

        if _is_number(year):
            age_years = now.year - int(year)
        else:
            ts = record.timestamp
            if ts.tzinfo is not None:
                ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
            age_years = (now - ts).days / 365.25

        if age_years <= FRESH_YEARS:
            return 1.0
        if age_years >= STALE_YEARS:
            return 0.0
        return 1.0 - (age_years - FRESH_YEARS) / (STALE_YEARS - FRESH_YEARS)

    @staticmethod
    def _plausibility(data: Dict[str, Any], rules: List[ValidationRule]) -> float:
        bounds = dict(PHYSICAL_BOUNDS)
        for rule in rules:
            if rule.type == "range":
                bounds[rule.field] = (rule.config.get("min"), rule.config.get("max"))

        unit = str(data.get("unit") or "")
        if "%" in unit or "percent" in unit.lower():
            bounds["value"] = PERCENT_BOUNDS

        checks = 0
        passed = 0
        for field, (low, high) in bounds.items():
            value = data.get(field)
            if not _is_number(value):
                continue
            checks += 1
            if (low is None or value >= low) and (high is None or value <= high):
                passed += 1

        return passed / checks if checks else 1.0
