"""
Seekable byte sources with a fixed length.
"""

import io
import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Union

from shared.errors import AccessError, NotFoundError, RangeError, ResourceError

logger = logging.getLogger(__name__)


class ContentSource:
    """
    A file or stream being uploaded.

    The length is measured once when the source is opened and never changes
    afterwards. Use it as a context manager; ``close`` releases the
    underlying handle exactly once no matter how many times it is called.
    """

    def __init__(self, stream: BinaryIO, length: int, name: str = "<stream>",
                 path: Optional[Path] = None):
        if length < 0:
            raise ValueError("length cannot be negative")
        self._stream = stream
        self._length = length
        self.name = name
        self.path = path
        self._closed = False

    @classmethod
    def open(cls, locator: Union[str, Path]) -> 'ContentSource':
        """
        Open a file on disk.

        Raises:
            NotFoundError: The file does not exist
            AccessError: The file cannot be read or is a directory
        """
        path = Path(locator).expanduser()
        try:
            stream = open(path, 'rb')
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}") from e
        except (PermissionError, IsADirectoryError) as e:
            raise AccessError(f"Cannot read {path}: {e.strerror}") from e
        except OSError as e:
            raise ResourceError(f"Cannot open {path}: {e}") from e

        try:
            length = os.fstat(stream.fileno()).st_size
        except OSError as e:
            stream.close()
            raise ResourceError(f"Cannot stat {path}: {e}") from e

        logger.debug("Opened %s (%d bytes)", path, length)
        return cls(stream, length, name=path.name, path=path.absolute())

    @classmethod
    def from_stream(cls, stream: BinaryIO, name: str = "<stream>") -> 'ContentSource':
        """Wrap an already open seekable binary stream. Closing the source closes it."""
        if not stream.seekable():
            raise AccessError(f"{name} is not seekable")
        start = stream.tell()
        length = stream.seek(0, io.SEEK_END) - start
        stream.seek(start)
        if start:
            # Offsets are relative to where the caller left the stream
            return _OffsetContentSource(stream, length, name, start)
        return cls(stream, length, name=name)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "<memory>") -> 'ContentSource':
        return cls(io.BytesIO(data), len(data), name=name)

    @property
    def closed(self) -> bool:
        return self._closed

    def length(self) -> int:
        return self._length

    def _position(self, offset: int) -> int:
        return offset

    def read_at(self, offset: int, max_bytes: int) -> bytes:
        """
        Read up to ``max_bytes`` starting at ``offset``.

        Fewer bytes come back near the end of the source, and an empty
        string exactly at the end.

        Raises:
            RangeError: offset is negative or past the end
            ResourceError: the source is closed or the read failed
        """
        if self._closed:
            raise ResourceError(f"{self.name} is closed")
        if offset < 0 or offset > self._length:
            raise RangeError(f"Offset {offset} outside 0..{self._length} for {self.name}")
        if max_bytes <= 0:
            raise RangeError("max_bytes must be positive")

        count = min(max_bytes, self._length - offset)
        if count == 0:
            return b""
        try:
            self._stream.seek(self._position(offset))
            data = self._stream.read(count)
        except OSError as e:
            raise ResourceError(f"Read failed for {self.name} at {offset}: {e}") from e
        if len(data) != count:
            raise ResourceError(
                f"{self.name} shrank during upload: wanted {count} bytes at {offset}, got {len(data)}"
            )
        return data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        finally:
            logger.debug("Closed %s", self.name)

    def __enter__(self) -> 'ContentSource':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ContentSource(name={self.name!r}, length={self._length})"


class _OffsetContentSource(ContentSource):
    """A stream whose logical start is not at position zero."""

    def __init__(self, stream: BinaryIO, length: int, name: str, start: int):
        super().__init__(stream, length, name)
        self._start = start

    def _position(self, offset: int) -> int:
        return self._start + offset
