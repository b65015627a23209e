"""
Image Optimizer API Entry Point

This file serves as the main entry point for the application, building the
FastAPI application defined in the image_optimizer package.

Run with uvicorn:
    uvicorn main:app --reload
"""
import logging
import sys

from image_optimizer.config import get_settings
from image_optimizer.api import create_app

settings = get_settings()

# Configure root logger
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=LOG_FORMAT,
    stream=sys.stdout
)

# Set up logger
logger = logging.getLogger(__name__)

# Check that the codec library provides the required encoders
from image_optimizer.core.codec import supported_output_formats

encoders = supported_output_formats()
missing = [name for name, available in encoders.items() if not available]
if missing:
    logger.warning(f"Pillow is missing encoders for: {', '.join(missing)}. Requests for these formats will fail.")
else:
    logger.info("All output encoders are available")

app = create_app(settings)

# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting Image Optimizer API on port {settings.PORT} with {settings.WORKERS} workers")
    logger.info(f"Health check: http://localhost:{settings.PORT}/health")
    logger.info(f"Optimization endpoint: http://localhost:{settings.PORT}/optimize")

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=settings.WORKERS,
        reload=settings.DEBUG
    )
