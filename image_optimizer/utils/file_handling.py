"""
Temporary artifact storage for url-mode responses.

Artifacts are written under a generated unique name and served back by a
static file mount. Files only appear under their final name once fully
written, and a background sweeper removes them after a configurable TTL.
"""
import os
import time
import uuid
import asyncio
import logging
from typing import Optional

from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from image_optimizer.errors import ArtifactWriteFailed

# Set up logging
logger = logging.getLogger(__name__)

PARTIAL_PREFIX = "."
PARTIAL_SUFFIX = ".part"


class TemporaryArtifact(BaseModel):
    """A stored url-mode output"""
    name: str = Field(..., description="Generated file name, e.g. <uuid>.webp")
    path: str = Field(..., description="Absolute path on disk")
    url: str = Field(..., description="Public retrieval path")
    size: int = Field(..., description="Size in bytes")


class TemporaryArtifactStore:
    """
    Filesystem-backed store for url-mode artifacts.

    Args:
        directory: Directory the artifacts live in
        url_prefix: Path the directory is served under
        ttl_seconds: Age after which artifacts are swept (0 disables expiry)
    """

    def __init__(self, directory: str, url_prefix: str = "/temp", ttl_seconds: int = 3600):
        self.directory = os.path.abspath(directory)
        self.url_prefix = "/" + url_prefix.strip("/")
        self.ttl_seconds = ttl_seconds

    def ensure_directory(self) -> None:
        os.makedirs(self.directory, exist_ok=True)

    def new_name(self, extension: str) -> str:
        """Generate a unique artifact name with the given extension."""
        return f"{uuid.uuid4().hex}.{extension.lstrip('.')}"

    def path_for(self, name: str) -> str:
        if not name or os.path.basename(name) != name or name.startswith(PARTIAL_PREFIX):
            raise ValueError(f"Invalid artifact name: {name!r}")
        return os.path.join(self.directory, name)

    def url_for(self, name: str) -> str:
        return f"{self.url_prefix}/{name}"

    def put(self, data: bytes, name: str) -> TemporaryArtifact:
        """
        Persist artifact bytes under the given name.

        The bytes are written to a hidden partial file first and renamed into
        place, so a failed write never leaves a servable artifact behind.

        Args:
            data: Encoded image bytes
            name: Artifact name from new_name()

        Returns:
            The stored artifact

        Raises:
            ArtifactWriteFailed: if the bytes could not be written
        """
        final_path = self.path_for(name)
        partial_path = os.path.join(self.directory, f"{PARTIAL_PREFIX}{name}{PARTIAL_SUFFIX}")
        try:
            self.ensure_directory()
            with open(partial_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(partial_path, final_path)
        except OSError as e:
            logger.error(f"Failed to write artifact {name}: {e}")
            self._remove_quietly(partial_path)
            raise ArtifactWriteFailed(f"Failed to store optimized image: {e}") from e

        logger.debug(f"Stored artifact {name} ({len(data)} bytes)")
        return TemporaryArtifact(name=name, path=final_path, url=self.url_for(name), size=len(data))

    def count(self) -> int:
        """Number of complete artifacts currently stored."""
        if not os.path.isdir(self.directory):
            return 0
        return sum(
            1 for entry in os.scandir(self.directory)
            if entry.is_file() and not entry.name.startswith(PARTIAL_PREFIX)
        )

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """
        Delete artifacts older than the TTL.

        Leftover partial files are treated the same way once they are older
        than the TTL.

        Args:
            now: Reference timestamp (defaults to the current time)

        Returns:
            Number of files removed
        """
        if self.ttl_seconds <= 0 or not os.path.isdir(self.directory):
            return 0

        cutoff = (now if now is not None else time.time()) - self.ttl_seconds
        removed = 0
        for entry in os.scandir(self.directory):
            if not entry.is_file():
                continue
            try:
                if entry.stat().st_mtime <= cutoff:
                    os.remove(entry.path)
                    removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to clean up temporary file {entry.path}: {e}")

        if removed:
            logger.info(f"Swept {removed} expired artifact(s) from {self.directory}")
        return removed

    async def run_sweeper(self, interval: int) -> None:
        """
        Periodically remove expired artifacts until cancelled.

        Args:
            interval: Delay in seconds between sweeps
        """
        logger.info(f"Artifact sweeper started (ttl={self.ttl_seconds}s, interval={interval}s)")
        while True:
            await asyncio.sleep(interval)
            try:
                await run_in_threadpool(self.sweep_expired)
            except OSError as e:
                logger.error(f"Artifact sweep failed: {e}")

    @staticmethod
    def _remove_quietly(path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove partial file {path}: {e}")
