"""
Response strategy: return the optimized bytes inline, or store them as a
temporary artifact and return a descriptor pointing at it.
"""
import logging

from fastapi import Response
from fastapi.responses import JSONResponse

from image_optimizer.models import OptimizationResult, OptimizeUrlResponse, ResponseMode
from image_optimizer.utils.file_handling import TemporaryArtifactStore

logger = logging.getLogger(__name__)


class ResponseStrategy:
    def __init__(self, store: TemporaryArtifactStore):
        self.store = store

    def respond(self, result: OptimizationResult, mode: ResponseMode) -> Response:
        if mode == ResponseMode.URL:
            return self.url(result)
        return self.binary(result)

    def binary(self, result: OptimizationResult) -> Response:
        """Send the optimized image as the response body."""
        return Response(
            content=result.output_buffer,
            media_type=result.media_type,
            headers={
                "X-Original-Size": str(result.original_size),
                "X-Optimized-Size": str(result.optimized_size),
                "X-Savings-Percent": f"{result.savings_percent:.2f}",
            },
        )

    def url(self, result: OptimizationResult) -> JSONResponse:
        """
        Store the optimized image and describe where to fetch it.

        Raises:
            ArtifactWriteFailed: if the artifact could not be stored
        """
        name = self.store.new_name(result.format)
        artifact = self.store.put(result.output_buffer, name)
        logger.info(f"Stored optimized image at {artifact.url} ({artifact.size} bytes)")

        body = OptimizeUrlResponse(
            success=True,
            originalSize=result.original_size,
            optimizedSize=result.optimized_size,
            savingsPercent=result.savings_percent,
            format=result.format,
            width=result.width,
            height=result.height,
            url=artifact.url,
        )
        return JSONResponse(content=body.model_dump())
