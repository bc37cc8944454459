"""Reference-image slots for the next outgoing message."""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Sequence
from dataclasses import dataclass
import logging
import mimetypes
from pathlib import Path
from typing import Any, Protocol

from .events import ATTACHMENTS_CHANGED, EventBus
from .exceptions import AttachmentRejectedError

LOGGER = logging.getLogger(__name__)

MAX_SLOTS = 4
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MB


class FileSource(Protocol):
    """A file offered for ingestion, read asynchronously."""

    name: str
    content_type: str
    size: int

    async def read(self) -> bytes: ...


class LocalFile:
    """A file on disk; its type is guessed from the extension."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self.name = self.path.name
        guessed, _ = mimetypes.guess_type(self.path.name)
        self.content_type = guessed or "application/octet-stream"
        try:
            self.size = self.path.stat().st_size
        except OSError:
            self.size = 0

    async def read(self) -> bytes:
        return await asyncio.to_thread(self.path.read_bytes)


@dataclass
class InMemoryFile:
    """A file whose bytes are already in memory (uploads, tests)."""

    name: str
    data: bytes
    content_type: str = "image/png"

    @property
    def size(self) -> int:
        return len(self.data)

    async def read(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class AttachmentSlot:
    data_uri: str
    name: str
    content_type: str


def to_data_uri(content_type: str, data: bytes) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


class AttachmentStore:
    """Hold up to ``max_slots`` reference images; slot 0 is the base image.

    ``ingest`` reads accepted files concurrently but commits the results in
    one update once every read has settled, in the files' original order.
    """

    def __init__(
        self,
        *,
        max_slots: int = MAX_SLOTS,
        max_image_bytes: int = MAX_IMAGE_BYTES,
        bus: EventBus | None = None,
    ) -> None:
        self.max_slots = max(1, min(MAX_SLOTS, max_slots))
        self.max_image_bytes = max_image_bytes
        self._bus = bus
        self._slots: tuple[AttachmentSlot, ...] = ()
        self._ingesting = 0

    @property
    def slots(self) -> tuple[AttachmentSlot, ...]:
        return self._slots

    @property
    def base(self) -> AttachmentSlot | None:
        return self._slots[0] if self._slots else None

    @property
    def is_ingesting(self) -> bool:
        return self._ingesting > 0

    def count(self) -> int:
        return len(self._slots)

    def data_uris(self) -> tuple[str, ...]:
        return tuple(slot.data_uri for slot in self._slots)

    def check(self, file: FileSource) -> None:
        """Raise ``AttachmentRejectedError`` unless ``file`` is a usable image."""
        if not str(file.content_type).lower().startswith("image/"):
            raise AttachmentRejectedError(f"{file.name} is not an image.")
        if file.size <= 0:
            raise AttachmentRejectedError(f"{file.name} is empty.")
        if file.size > self.max_image_bytes:
            raise AttachmentRejectedError(
                f"{file.name} is larger than {self.max_image_bytes // (1024 * 1024)} MB."
            )

    async def ingest(self, files: Sequence[FileSource]) -> tuple[AttachmentSlot, ...]:
        """Read and attach files; return the slots that were committed.

        Files beyond the free slot count are ignored, and invalid or
        unreadable files are dropped without aborting their siblings.
        """
        remaining = self.max_slots - len(self._slots)
        if remaining <= 0 or not files:
            return ()
        candidates = list(files)[:remaining]
        accepted: list[FileSource] = []
        for candidate in candidates:
            try:
                self.check(candidate)
            except AttachmentRejectedError as exc:
                LOGGER.warning(
                    "attachments.rejected",
                    extra={
                        "event": "attachments.rejected",
                        "file_name": candidate.name,
                        "content_type": candidate.content_type,
                        "size": candidate.size,
                        "reason": str(exc),
                    },
                )
                continue
            accepted.append(candidate)
        if not accepted:
            return ()

        self._ingesting += 1
        try:
            results = await asyncio.gather(
                *(self._load(f) for f in accepted), return_exceptions=True
            )
        finally:
            self._ingesting -= 1

        loaded: list[AttachmentSlot] = []
        for source, result in zip(accepted, results):
            if isinstance(result, BaseException):
                LOGGER.warning(
                    "attachments.read.failed",
                    extra={
                        "event": "attachments.read.failed",
                        "file_name": source.name,
                        "error": str(result),
                    },
                )
                continue
            loaded.append(result)

        # Another ingest may have committed while these reads were pending.
        room = self.max_slots - len(self._slots)
        committed = tuple(loaded[: max(0, room)])
        if committed:
            self._slots = self._slots + committed
            self._notify()
        LOGGER.info(
            "attachments.ingested",
            extra={
                "event": "attachments.ingested",
                "offered": len(files),
                "committed": len(committed),
                "count": len(self._slots),
            },
        )
        return committed

    async def _load(self, source: FileSource) -> AttachmentSlot:
        data = await source.read()
        return AttachmentSlot(
            data_uri=to_data_uri(source.content_type, data),
            name=source.name,
            content_type=source.content_type,
        )

    def remove(self, index: int) -> bool:
        """Drop one slot; later slots shift down. Returns False when out of range."""
        if not 0 <= index < len(self._slots):
            return False
        self._slots = self._slots[:index] + self._slots[index + 1 :]
        self._notify()
        return True

    def clear(self) -> None:
        if not self._slots:
            return
        self._slots = ()
        self._notify()

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {"index": i, "name": slot.name, "is_base": i == 0}
            for i, slot in enumerate(self._slots)
        ]

    def _notify(self) -> None:
        if self._bus is not None:
            self._bus.publish(
                ATTACHMENTS_CHANGED,
                {"count": len(self._slots), "slots": self.snapshot()},
                source="attachments",
            )
