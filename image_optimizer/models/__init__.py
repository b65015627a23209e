"""
Data models for the image optimizer API.

This module provides Pydantic models for request validation, transform
results and response documentation.
"""
from image_optimizer.models.optimization import (
    OutputFormat,
    ResponseMode,
    InboundImage,
    TransformRequest,
    ImageMetadata,
    OptimizationResult
)

from image_optimizer.models.responses import (
    OptimizeUrlResponse,
    ErrorResponse,
    HealthResponse
)

__all__ = [
    # Optimization models
    'OutputFormat',
    'ResponseMode',
    'InboundImage',
    'TransformRequest',
    'ImageMetadata',
    'OptimizationResult',

    # Response models
    'OptimizeUrlResponse',
    'ErrorResponse',
    'HealthResponse'
]
