"""
Declarative transformation and validation rule schemas.

Rules carry plain Python callables (mapping transforms, post-processing
steps, custom checks), so they live in the in-process rule catalog and are
referenced from ETLPipelineConfig by key rather than serialized.
"""

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field


RULE_TYPES = ("required", "type", "range", "pattern", "enum", "cross_field", "custom")
SEVERITIES = ("critical", "error", "warning")


class FieldMapping(BaseModel):
    """
    Maps one dot-path in the raw payload onto one target field.

    `transform` must be pure and should clamp or return a sentinel rather
    than raise for out-of-domain input.
    """
    source_field: str
    target_field: str
    default_value: Any = None
    transform: Optional[Callable[[Any], Any]] = None
    required: bool = False


class ValidationRule(BaseModel):
    """Declarative predicate over a single field (see Validator)"""
    field: str
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    severity: str = "error"
    message: Optional[str] = None


class PostProcessingStep(BaseModel):
    """
    Batch step run after mapping.

    `processor` receives the batch of records and returns one partial update
    dict (or None) per record, merged shallowly into that record's data.
    """
    name: str
    order: int = 0
    processor: Callable[[List[Any]], List[Optional[Dict[str, Any]]]]


class TransformationRule(BaseModel):
    id: str
    name: str
    source_type: str
    target_type: str
    mappings: List[FieldMapping] = Field(default_factory=list)
    validations: List[ValidationRule] = Field(default_factory=list)
    post_processing: List[PostProcessingStep] = Field(default_factory=list)


