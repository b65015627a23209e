"""
Core optimization components.

This package contains the codec adapter, the transform pipeline, the request
gate with its rate limiter, the response strategy and the per-request state
machine.
"""
from image_optimizer.core.codec import (
    decode_image,
    resize_to_fit,
    encode_image,
    supported_output_formats
)

from image_optimizer.core.pipeline import transform

from image_optimizer.core.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitDecision
)

from image_optimizer.core.lifecycle import (
    RequestLifecycle,
    RequestState
)

__all__ = [
    # Codec
    'decode_image',
    'resize_to_fit',
    'encode_image',
    'supported_output_formats',

    # Pipeline
    'transform',

    # Rate limiting
    'FixedWindowRateLimiter',
    'RateLimitDecision',

    # Request lifecycle
    'RequestLifecycle',
    'RequestState'
]
