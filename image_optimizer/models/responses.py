"""
Response bodies returned by the HTTP API.
"""
from typing import Optional

from pydantic import BaseModel, Field


class OptimizeUrlResponse(BaseModel):
    """Body returned by /optimize when return=url"""
    success: bool = True
    originalSize: int = Field(..., description="Size of the uploaded image in bytes")
    optimizedSize: int = Field(..., description="Size of the optimized image in bytes")
    savingsPercent: float = Field(..., description="Percentage of space saved")
    format: str = Field(..., description="Format of the optimized image")
    width: int = Field(..., description="Width of the optimized image")
    height: int = Field(..., description="Height of the optimized image")
    url: str = Field(..., description="Relative path the optimized image can be fetched from")


class ErrorResponse(BaseModel):
    """Body returned for every failed request"""
    error: str = Field(..., description="Short description of the failure")
    kind: str = Field(..., description="Error kind, e.g. DecodeFailed")
    message: Optional[str] = Field(None, description="Human-readable detail")


class HealthResponse(BaseModel):
    status: str = "ok"
