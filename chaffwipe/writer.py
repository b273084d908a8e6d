import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from chaffwipe.config import MIB
from chaffwipe.entropy import ChunkedRandomSource
from chaffwipe.errors import EntropyError, FileError, WriteError
from chaffwipe.storage import durable_flush, write_chunk

LOG = logging.getLogger(__name__)


class ChaffOutcome(Enum):
    SUCCESS = 'success'
    PARTIAL = 'partial'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class ChaffFile:
    """One attempt at creating a chaff file."""
    path: Path
    target_size: int
    bytes_written: int = 0
    outcome: ChaffOutcome = ChaffOutcome.SKIPPED
    error: Optional[FileError] = None


class ChaffWriter:
    """
    Creates single chaff files filled with random data

    Args:
        chunk_size: Bytes per write; bounds memory regardless of file size
        source: ChunkedRandomSource used to refill the chunk buffer
        progress: Optional callable receiving the byte count of each chunk
    """

    def __init__(self, chunk_size=MIB, source=None, progress=None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.source = source or ChunkedRandomSource()
        self.progress = progress

    def write(self, path, target_size, available):
        """
        Create path and fill it with min(target_size, available) random bytes

        Args:
            path: File to create; must not exist yet
            target_size: Requested file size in bytes
            available: Current free-space budget in bytes

        Returns tuple: (bytes_written, new_available)

        Raises WriteError, EntropyError or SyncError. All of them carry the
        number of bytes committed before the failure in bytes_written.
        """
        size = min(target_size, available)
        if size <= 0:
            return 0, available

        try:
            f = open(path, 'xb', buffering=0)
        except OSError as e:
            raise WriteError(f"Cannot create {path}: {e}", path=path) from e

        written = 0
        try:
            with f:
                buf = bytearray(min(self.chunk_size, size))
                view = memoryview(buf)
                while written < size:
                    n = min(len(buf), size - written)
                    chunk = view[:n]
                    try:
                        self.source.fill(chunk)
                    except EntropyError as e:
                        raise EntropyError(str(e), path=path, bytes_written=written) from e
                    written += write_chunk(f, chunk, path, written)
                    if self.progress:
                        self.progress(n)

                durable_flush(f, path, written)
        except FileError as e:
            if e.bytes_written == 0:
                self._remove_empty(path)
            raise

        LOG.info("Created %s (%d bytes)", path, written)
        return written, available - written

    def attempt(self, path, target_size, available):
        """
        Run write() and capture the outcome as a ChaffFile instead of raising

        Returns ChaffFile
        """
        record = ChaffFile(path=Path(path).absolute(), target_size=target_size)
        try:
            record.bytes_written, _ = self.write(path, target_size, available)
        except FileError as e:
            record.bytes_written = e.bytes_written
            record.error = e
            if e.bytes_written:
                record.outcome = ChaffOutcome.PARTIAL
            else:
                record.outcome = ChaffOutcome.FAILED
            LOG.warning("Error creating %s after %d bytes: %s", path, e.bytes_written, e)
            return record

        if record.bytes_written:
            record.outcome = ChaffOutcome.SUCCESS
        return record

    def _remove_empty(self, path):
        # Only called once our own exclusive create succeeded
        try:
            os.remove(path)
        except OSError as e:
            LOG.warning("Could not remove empty chaff file %s: %s", path, e)
