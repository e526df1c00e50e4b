"""
Shared Pydantic base model.

External payloads (API bodies, persisted job status, queue messages) use
camelCase keys; Python code uses snake_case attribute names.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase aliases"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_json_dict(self) -> dict:
        """JSON-safe dict with camelCase keys (datetimes as ISO strings)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
