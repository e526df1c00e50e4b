"""
Declarative transformation of raw extracted records into the canonical schema.

A TransformationRule is applied in two phases:

1. Mapping (per record) - each FieldMapping reads a dot-path from the raw
   payload, falls back to its default, and runs its optional pure transform.
   The output record's data contains only target fields.
2. Post-processing (per batch) - steps run in `order`; each returns one
   partial update per record which is merged shallowly into that record.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from core.exceptions import ConfigurationError, TransformationError
from schemas.records import DataRecord
from schemas.transformations import TransformationRule

logger = logging.getLogger(__name__)


def resolve_path(obj: Any, path: str) -> Any:
    """
    Resolve a dot-path such as ``country.id`` or ``rows.0.value``.

    Missing intermediate segments yield None rather than raising.
    """
    current = obj
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


class TransformationEngine:
    """
    Applies transformation rules, looked up by rule key.

    Handles:
    - Dot-path field mapping with defaults
    - Pure value transforms
    - Ordered batch post-processing
    - Per-record error isolation (skip) or batch abort (fail)
    """

    def __init__(self, rules: Optional[Iterable[TransformationRule]] = None):
        self._rules: Dict[str, TransformationRule] = {}
        for rule in rules or []:
            self.register_rule(rule)

    def register_rule(self, rule: TransformationRule) -> None:
        self._rules[rule.source_type] = rule

    def get_rule(self, key: str) -> TransformationRule:
        rule = self._rules.get(key)
        if rule is None:
            raise ConfigurationError(
                f"No transformation rule registered for '{key}'",
                context={"rule_key": key, "available": sorted(self._rules)}
            )
        return rule

    def has_rule(self, key: str) -> bool:
        return key in self._rules

    def all_rules(self) -> List[TransformationRule]:
        return list(self._rules.values())

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def transform_record(self, record: DataRecord, rule: TransformationRule) -> DataRecord:
        """
        Map one raw record onto the rule's target schema.

        Raises:
            TransformationError: If a transform raises or a required target
                field cannot be resolved.
        """
        mapped: Dict[str, Any] = {}

        for mapping in rule.mappings:
            value = resolve_path(record.data, mapping.source_field)
            if value is None and mapping.default_value is not None:
                value = mapping.default_value

            if mapping.transform is not None:
                try:
                    value = mapping.transform(value)
                except Exception as e:
                    raise TransformationError(
                        f"Transform for '{mapping.target_field}' failed",
                        context={
                            "record_id": record.id,
                            "source_field": mapping.source_field,
                            "target_field": mapping.target_field,
                            "rule_id": rule.id,
                        },
                        original_exception=e
                    )

            if mapping.required and value is None:
                raise TransformationError(
                    f"Required field '{mapping.target_field}' could not be resolved",
                    context={
                        "record_id": record.id,
                        "source_field": mapping.source_field,
                        "rule_id": rule.id,
                    }
                )

            mapped[mapping.target_field] = value

        transformed = DataRecord(
            id=record.id,
            source_id=record.source_id,
            timestamp=record.timestamp,
            data=mapped,
            metadata=record.metadata.model_copy(deep=True),
        )
        transformed.metadata.transformation_time = datetime.utcnow()
        transformed.add_lineage(
            "transformation",
            f"Apply {rule.id}",
            input_records=[record.id],
        )
        return transformed

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    def apply_post_processing(self, records: List[DataRecord], rule: TransformationRule) -> List[DataRecord]:
        """Run post-processing steps sorted by order; updates are shallow-merged."""
        if not records:
            return records

        for step in sorted(rule.post_processing, key=lambda s: s.order):
            try:
                updates = step.processor(records)
            except Exception as e:
                raise TransformationError(
                    f"Post-processing step '{step.name}' failed",
                    context={"rule_id": rule.id, "batch_size": len(records)},
                    original_exception=e
                )

            if updates is None or len(updates) != len(records):
                raise TransformationError(
                    f"Post-processing step '{step.name}' returned a malformed batch",
                    context={
                        "rule_id": rule.id,
                        "expected": len(records),
                        "received": None if updates is None else len(updates),
                    }
                )

            for record, update in zip(records, updates):
                if update:
                    record.data.update(update)
                    record.add_lineage("post_processing", step.name)

        return records

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def transform_batch(
        self,
        records: List[DataRecord],
        rule: TransformationRule,
        on_error: str = "skip"
    ) -> Tuple[List[DataRecord], List[Tuple[DataRecord, TransformationError]]]:
        """
        Transform a batch under the `on_transform_error` policy.

        Returns:
            (transformed records, [(dropped record, error), ...])

        Raises:
            TransformationError: Under the `fail` policy, on the first failure.
        """
        transformed: List[DataRecord] = []
        dropped: List[Tuple[DataRecord, TransformationError]] = []

        for record in records:
            try:
                transformed.append(self.transform_record(record, rule))
            except TransformationError as e:
                if on_error == "fail":
                    raise
                logger.warning(f"Dropping record {record.id}: {e.message}")
                dropped.append((record, e))

        try:
            self.apply_post_processing(transformed, rule)
        except TransformationError as e:
            if on_error == "fail":
                raise
            logger.warning(f"Skipping post-processing for {rule.id}: {e.message}")

        return transformed, dropped
