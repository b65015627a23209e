"""
Utilities for measuring optimization results and process resource usage.
"""
import time
import logging
import psutil
from typing import Dict

from image_optimizer.errors import InternalError

# Set up logging
logger = logging.getLogger(__name__)


def get_cpu_mem() -> Dict[str, float]:
    """
    Get current CPU and memory usage.

    Returns:
        Dictionary with CPU and memory usage percentages
    """
    return {
        "cpu_usage": psutil.cpu_percent(interval=None),
        "memory_usage": psutil.virtual_memory().percent
    }


def calculate_savings_percent(original_size: int, optimized_size: int) -> float:
    """
    Calculate the relative size reduction between two encodings.

    Args:
        original_size: Size of the original image in bytes
        optimized_size: Size of the optimized image in bytes

    Returns:
        (original - optimized) / original * 100, rounded to 2 decimal places.
        Negative when the output grew.

    Raises:
        InternalError: if original_size is zero, since savings are undefined
    """
    if original_size <= 0:
        raise InternalError("Original size is zero; savings percent is undefined")
    return round((original_size - optimized_size) / original_size * 100, 2)


class PerformanceTimer:
    """
    Context manager for measuring execution time.

    Example:
        with PerformanceTimer() as timer:
            # Code to measure
        execution_time = timer.execution_time
    """

    def __init__(self):
        self.start_time = None
        self.execution_time = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.execution_time = time.perf_counter() - self.start_time
        return False  # Don't suppress exceptions
