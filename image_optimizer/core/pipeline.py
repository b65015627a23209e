"""
Transform pipeline: decode, fit-inside resize, re-encode and measure.

A failure at any step is terminal for the request; there is no retry and no
fallback to another format.
"""
import logging
from typing import Optional

from image_optimizer.core.codec import decode_image, encode_image, resize_to_fit
from image_optimizer.core.lifecycle import RequestLifecycle, RequestState
from image_optimizer.models import OptimizationResult, TransformRequest
from image_optimizer.utils.metrics import PerformanceTimer, calculate_savings_percent

# Set up logging
logger = logging.getLogger(__name__)


def transform(
    data: bytes,
    request: TransformRequest,
    lifecycle: Optional[RequestLifecycle] = None
) -> OptimizationResult:
    """
    Optimize one image.

    Args:
        data: Uploaded image bytes
        request: Validated transform parameters
        lifecycle: Optional state tracker advanced through DECODED, RESIZED
            and ENCODED

    Returns:
        The optimization result including the encoded bytes

    Raises:
        DecodeFailed: if the bytes cannot be decoded (including empty input)
        EncodeFailed: if the image cannot be encoded in the requested format
    """
    original_size = len(data)

    with PerformanceTimer() as timer:
        image, metadata = decode_image(data)
        if lifecycle:
            lifecycle.advance(RequestState.DECODED)

        resized = metadata.width > request.max_width
        if resized:
            image = resize_to_fit(image, request.max_width)
            if lifecycle:
                lifecycle.advance(RequestState.RESIZED)

        output, format_name = encode_image(image, request.format, request.quality, metadata.format)
        if lifecycle:
            lifecycle.advance(RequestState.ENCODED)

    optimized_size = len(output)
    savings_percent = calculate_savings_percent(original_size, optimized_size)

    logger.info(
        f"Optimized image: {original_size} -> {optimized_size} bytes ({savings_percent:.2f}% saved), "
        f"{metadata.width}x{metadata.height} -> {image.width}x{image.height} {format_name} "
        f"in {timer.execution_time:.3f}s"
    )

    return OptimizationResult(
        original_size=original_size,
        optimized_size=optimized_size,
        savings_percent=savings_percent,
        width=image.width,
        height=image.height,
        format=format_name,
        resized=resized,
        processing_time=round(timer.execution_time, 4),
        output_buffer=output,
    )
