"""
Data Models
===========
Pydantic models for token responses and collected resource metadata.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Access token returned by the token endpoint or the metadata server."""

    access_token: str = Field(min_length=1)
    token_type: str
    expires_in: int = Field(ge=0)


class MonitoredResource(BaseModel):
    """Monitored resource a metadata record is attached to."""

    type: str
    labels: dict[str, str] = Field(default_factory=dict)


class ResourceMetadata(BaseModel):
    """Metadata collected for a single resource during one query cycle."""

    ids: list[str]
    resource: MonitoredResource
    version: str = ""
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    collected_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
