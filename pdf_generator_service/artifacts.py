"""
Time-bounded storage for generated PDFs.

Each artifact is one file named after its UUID. It stays readable for a
fixed TTL; a one-shot timer scheduled per artifact deletes it afterwards.
Reads also check the expiry timestamp, so an artifact is never served past
its TTL even if its timer has not fired yet.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from .errors import ArtifactNotFound

logger = logging.getLogger(__name__)

ARTIFACT_TTL = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Artifact:
    """A generated PDF held under an opaque id."""

    id: str
    path: Path
    created_at: datetime
    expires_at: datetime
    size_bytes: int

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ArtifactStore:
    """
    PDF files under a directory, indexed in memory by id.

    Args:
        directory: Where PDF files are written
        ttl: Lifetime of each artifact
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        directory: Union[str, Path],
        ttl: timedelta = ARTIFACT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.directory = Path(directory)
        self.ttl = ttl
        self._clock = clock
        self._artifacts: Dict[str, Artifact] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._artifacts)

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def canonical_id(pdf_id: str) -> str:
        """
        Normalize an id to its lowercase hyphenated UUID form.

        Raises:
            ArtifactNotFound: id is not a UUID (also blocks path traversal)
        """
        try:
            return str(uuid.UUID(pdf_id))
        except (ValueError, TypeError, AttributeError):
            raise ArtifactNotFound(str(pdf_id))

    def path_for(self, pdf_id: str) -> Path:
        """Backing file path for an id."""
        return self.directory / f"{self.canonical_id(pdf_id)}.pdf"

    def _partial_path(self, path: Path) -> Path:
        return path.with_name(path.name + ".part")

    def create(self, pdf_id: str, data: bytes) -> Artifact:
        """
        Write PDF bytes for pdf_id and index the artifact.

        Bytes go to a .part file first and are renamed into place, so a
        reader never sees a half-written PDF.
        """
        pdf_id = self.canonical_id(pdf_id)
        path = self.path_for(pdf_id)
        partial = self._partial_path(path)
        self.ensure_directory()

        with open(partial, "wb") as f:
            f.write(data)
        os.replace(partial, path)

        now = self._clock()
        artifact = Artifact(
            id=pdf_id,
            path=path,
            created_at=now,
            expires_at=now + self.ttl,
            size_bytes=len(data),
        )
        self._artifacts[pdf_id] = artifact
        logger.info(f"Stored PDF {pdf_id} ({len(data)} bytes, expires {artifact.expires_at.isoformat()})")
        return artifact

    def get(self, pdf_id: str) -> Artifact:
        """
        Look up a live artifact.

        Raises:
            ArtifactNotFound: unknown id, file gone, or TTL passed
        """
        pdf_id = self.canonical_id(pdf_id)
        artifact = self._artifacts.get(pdf_id)
        if artifact is None:
            raise ArtifactNotFound(pdf_id)

        if artifact.is_expired(self._clock()):
            self.delete(pdf_id)
            raise ArtifactNotFound(pdf_id)

        if not artifact.path.exists():
            self._artifacts.pop(pdf_id, None)
            raise ArtifactNotFound(pdf_id)

        return artifact

    def exists(self, pdf_id: str) -> bool:
        try:
            self.get(pdf_id)
        except ArtifactNotFound:
            return False
        return True

    def read(self, pdf_id: str) -> bytes:
        """Return the PDF bytes for a live artifact."""
        artifact = self.get(pdf_id)
        try:
            return artifact.path.read_bytes()
        except FileNotFoundError:
            self._artifacts.pop(artifact.id, None)
            raise ArtifactNotFound(pdf_id)

    async def read_async(self, pdf_id: str) -> bytes:
        """read() for request handlers: expiry is checked on the loop, the file is read on a worker thread."""
        artifact = self.get(pdf_id)
        try:
            return await asyncio.to_thread(artifact.path.read_bytes)
        except FileNotFoundError:
            self._artifacts.pop(artifact.id, None)
            raise ArtifactNotFound(pdf_id)

    def delete(self, pdf_id: str) -> bool:
        """
        Remove an artifact and its files. Idempotent.

        Returns True if a file was actually removed.
        """
        try:
            pdf_id = self.canonical_id(pdf_id)
        except ArtifactNotFound:
            return False

        timer = self._timers.pop(pdf_id, None)
        if timer is not None:
            timer.cancel()
        self._artifacts.pop(pdf_id, None)

        path = self.path_for(pdf_id)
        removed = False
        for candidate in (path, self._partial_path(path)):
            try:
                candidate.unlink()
                removed = True
            except FileNotFoundError:
                pass
        return removed

    def schedule_expiry(
        self,
        artifact: Artifact,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> asyncio.TimerHandle:
        """Arrange a one-shot deletion of artifact at its expires_at."""
        loop = loop or asyncio.get_running_loop()
        delay = max(0.0, (artifact.expires_at - self._clock()).total_seconds())

        previous = self._timers.pop(artifact.id, None)
        if previous is not None:
            previous.cancel()

        handle = loop.call_later(delay, self._expire, artifact.id)
        self._timers[artifact.id] = handle
        return handle

    def _expire(self, pdf_id: str) -> None:
        self._timers.pop(pdf_id, None)
        try:
            if self.delete(pdf_id):
                logger.info(f"Cleaned up PDF: {pdf_id}")
        except OSError as e:
            logger.error(f"Error cleaning up PDF {pdf_id}: {e}")

    def recover(self) -> int:
        """
        Re-index PDFs left by a previous process.

        Expiry is reconstructed from each file's modification time; files
        already past their TTL and stray .part files are deleted. Returns
        the number of artifacts re-indexed. Call schedule_pending() once an
        event loop is running to arm their timers.
        """
        if not self.directory.is_dir():
            return 0

        now = self._clock()
        recovered = 0
        for entry in self.directory.iterdir():
            if entry.name.endswith(".part"):
                entry.unlink(missing_ok=True)
                continue
            if entry.suffix != ".pdf":
                continue
            try:
                pdf_id = str(uuid.UUID(entry.stem))
            except ValueError:
                continue

            stat = entry.stat()
            created_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            expires_at = created_at + self.ttl
            if now > expires_at:
                entry.unlink(missing_ok=True)
                logger.info(f"Removed stale PDF from previous run: {pdf_id}")
                continue

            self._artifacts[pdf_id] = Artifact(
                id=pdf_id,
                path=entry,
                created_at=created_at,
                expires_at=expires_at,
                size_bytes=stat.st_size,
            )
            recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} unexpired PDF(s) from {self.directory}")
        return recovered

    def schedule_pending(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Arm expiry timers for indexed artifacts that have none."""
        for artifact in list(self._artifacts.values()):
            if artifact.id not in self._timers:
                self.schedule_expiry(artifact, loop=loop)

    def cancel_pending(self) -> None:
        """Cancel every pending expiry timer (shutdown)."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
