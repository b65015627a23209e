"""
Utility functions for the image optimizer.
"""
from image_optimizer.utils.metrics import (
    get_cpu_mem,
    calculate_savings_percent,
    PerformanceTimer
)

from image_optimizer.utils.file_handling import (
    TemporaryArtifact,
    TemporaryArtifactStore
)

__all__ = [
    # Metrics utilities
    'get_cpu_mem',
    'calculate_savings_percent',
    'PerformanceTimer',

    # Artifact storage
    'TemporaryArtifact',
    'TemporaryArtifactStore'
]
