"""
API Request/Response Types
"""

from typing import Optional
from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Server status", examples=["ok"])
    address: Optional[str] = Field(None, description="Socket path or port the server listens on", examples=["3000"])
    version: str = Field(..., description="Server version", examples=["1.0.0"])
    uptime: Optional[float] = Field(None, description="Seconds since the backend was created")
