"""
Base schemas used across the application.
"""
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from pydantic import BaseModel, Field, ConfigDict

class ResponseBase(BaseModel):
    """Base response format for API endpoints with an optional arbitrary data payload."""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

class SegmentationIn(BaseModel):
    """Targeting id sets. An empty (or omitted) list matches every value in that dimension."""
    communities: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    businesses: list[str] = Field(default_factory=list)

class SegmentationOut(SegmentationIn):
    pass
