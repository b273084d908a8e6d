"""Low-level write and flush helpers shared by the writer and the shredder."""

import logging
import os

from chaffwipe.errors import SyncError, WriteError

LOG = logging.getLogger(__name__)


def write_chunk(f, data, path=None, committed=0):
    """
    Write one chunk to an unbuffered file, all or nothing

    Args:
        f: File opened with buffering=0
        data: Bytes-like chunk
        path: Path used in error messages
        committed: Bytes already committed to the file before this chunk

    Returns number of bytes written (always len(data))

    A short write is not retried: it raises WriteError with bytes_written
    set to what actually reached the file.
    """
    try:
        n = f.write(data)
    except OSError as e:
        raise WriteError(f"Write failed on {path}: {e}", path=path,
                         bytes_written=committed) from e

    n = n or 0
    if n != len(data):
        raise WriteError(
            f"Short write on {path}: {n} of {len(data)} bytes",
            path=path,
            bytes_written=committed + n,
        )
    return n


def durable_flush(f, path=None, committed=0):
    """Flush Python buffers and fsync the file descriptor."""
    try:
        f.flush()
        os.fsync(f.fileno())
    except OSError as e:
        raise SyncError(f"fsync failed on {path}: {e}", path=path,
                        bytes_written=committed) from e


def fsync_dir_best_effort(directory):
    """POSIX best-effort fsync of a directory to persist unlink metadata."""
    if os.name != 'posix':
        return
    try:
        dfd = os.open(str(directory), os.O_RDONLY)
        try:
            os.fsync(dfd)
        finally:
            os.close(dfd)
    except OSError as e:
        LOG.debug("Directory fsync skipped for %s: %s", directory, e)
