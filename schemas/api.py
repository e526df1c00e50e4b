"""
Pydantic schemas for API request/response models
"""

from pydantic import Field
from typing import Optional
from datetime import datetime
from models.base import SourceType
from schemas.base import CamelModel


# ============================================================================
# Source Catalog
# ============================================================================

class SourceCatalogEntry(CamelModel):
    """Read-only description of a source that jobs may reference"""
    id: str
    name: str
    type: SourceType
    description: str
    update_frequency: str

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "id": "world-bank",
                "name": "World Bank Open Data",
                "type": "api",
                "description": "Energy indicators from World Bank",
                "updateFrequency": "Annual"
            }
        }


# ============================================================================
# Health Check
# ============================================================================

class HealthCheckResponse(CamelModel):
    status: str = Field(..., description="healthy or degraded")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    status_store_connected: bool
    active_jobs: int = 0
    queue_depth: int = 0


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(CamelModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid job request",
                "detail": "sources must be a non-empty list",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
