"""
Health check endpoints.
"""
import os
import time
import shutil
import logging
import platform

import psutil
import PIL
from fastapi import APIRouter, Request

from image_optimizer.core.codec import supported_output_formats
from image_optimizer.models import HealthResponse
from image_optimizer.utils.metrics import get_cpu_mem

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Check if the API is running."""
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """
    Provides detailed health information including system metrics, encoder
    availability and temporary artifact storage status.
    """
    store = request.app.state.store

    cpu_mem = get_cpu_mem()
    system_info = {
        "cpu_usage": cpu_mem["cpu_usage"],
        "memory_usage": cpu_mem["memory_usage"],
        "disk_usage": psutil.disk_usage('/').percent,
        "python_version": platform.python_version(),
        "pillow_version": PIL.__version__,
        "platform": platform.platform()
    }

    # Check temp directory
    temp_status = {"exists": os.path.isdir(store.directory), "ttl_seconds": store.ttl_seconds}
    if temp_status["exists"]:
        test_file = os.path.join(store.directory, ".health_write.tmp")
        try:
            with open(test_file, 'w') as f:
                f.write("test")
            os.remove(test_file)
            temp_status["writable"] = True
        except OSError as e:
            temp_status["writable"] = False
            temp_status["write_error"] = str(e)

        try:
            temp_status["free_space_mb"] = round(shutil.disk_usage(store.directory).free / (1024 * 1024), 2)
        except OSError as e:
            temp_status["space_error"] = str(e)

        temp_status["artifact_count"] = store.count()

    encoders = supported_output_formats()
    healthy = all(encoders[name] for name in ("webp", "jpeg", "png")) and temp_status.get("writable", False)
    if not healthy:
        logger.warning(f"Detailed health check degraded: encoders={encoders} temp={temp_status}")

    return {
        "status": "ok" if healthy else "degraded",
        "system": system_info,
        "encoders": encoders,
        "temp_directory": temp_status,
        "timestamp": time.time()
    }
