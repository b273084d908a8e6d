"""
Three-pass overwrite and delete.

Every non-empty file gets 0xFF, then 0x00, then fresh random bytes across its
whole length, with an fsync after each pass. A file is only unlinked once all
three passes are on disk; any write or flush failure leaves it in place.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from chaffwipe.config import MIB
from chaffwipe.entropy import ChunkedRandomSource
from chaffwipe.errors import EntropyError, FileError, OpenError
from chaffwipe.storage import durable_flush, fsync_dir_best_effort, write_chunk

LOG = logging.getLogger(__name__)


class OverwritePass(Enum):
    """Overwrite passes in the order they are applied."""
    ONES = 1
    ZEROS = 2
    RANDOM = 3

    @property
    def fill_byte(self):
        """Constant byte for this pass, or None for random data."""
        return {OverwritePass.ONES: 0xFF, OverwritePass.ZEROS: 0x00}.get(self)

    @property
    def label(self):
        if self.fill_byte is None:
            return 'random'
        return f"0x{self.fill_byte:02X}"


PASSES = tuple(OverwritePass)


class ShredStatus(Enum):
    SHREDDED = 'shredded'
    REMOVED_WITHOUT_OVERWRITE = 'removed_without_overwrite'
    SANITIZED_NOT_REMOVED = 'sanitized_not_removed'
    FAILED = 'failed'
    NOT_FOUND = 'not_found'


@dataclass
class ShredResult:
    path: Path
    status: ShredStatus
    bytes_written: int = 0
    passes_completed: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self):
        return self.status is ShredStatus.SHREDDED


@dataclass
class ShredReport:
    results: List[ShredResult] = field(default_factory=list)

    def _with(self, *statuses):
        return [r for r in self.results if r.status in statuses]

    @property
    def shredded(self):
        return self._with(ShredStatus.SHREDDED)

    @property
    def degraded(self):
        return self._with(ShredStatus.REMOVED_WITHOUT_OVERWRITE)

    @property
    def failed(self):
        return self._with(ShredStatus.FAILED, ShredStatus.SANITIZED_NOT_REMOVED)

    @property
    def missing(self):
        return self._with(ShredStatus.NOT_FOUND)

    @property
    def bytes_written(self):
        return sum(r.bytes_written for r in self.results)

    @property
    def ok(self):
        return not self.failed and not self.degraded


class Shredder:
    """
    Overwrites files in place, then removes them

    Args:
        chunk_size: Bytes per write in every pass
        source: ChunkedRandomSource for the random pass
        progress: Optional callable receiving the byte count of each chunk
        observer: Optional callable(OverwritePass, path) run after each pass
            has been flushed, before the next one starts
    """

    def __init__(self, chunk_size=MIB, source=None, progress=None, observer=None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.source = source or ChunkedRandomSource()
        self.progress = progress
        self.observer = observer

    def destroy(self, path):
        """
        Shred a single file

        Args:
            path: File to overwrite and delete

        Returns ShredResult. Never raises for per-file I/O problems.
        """
        path = Path(path)
        try:
            f = open(path, 'r+b', buffering=0)
        except OSError as e:
            return self._remove_unopened(path, OpenError(f"Cannot open {path}: {e}", path=path))

        result = ShredResult(path=path, status=ShredStatus.FAILED)
        try:
            with f:
                try:
                    size = os.fstat(f.fileno()).st_size
                except OSError as e:
                    raise OpenError(f"Cannot stat {path}: {e}", path=path) from e

                passes = PASSES if size else ()
                for overwrite_pass in passes:
                    result.bytes_written += self._run_pass(f, path, overwrite_pass, size)
                    result.passes_completed += 1
                    LOG.info("%s: pass %d/%d (%s) complete", path, overwrite_pass.value,
                             len(PASSES), overwrite_pass.label)
                    if self.observer:
                        self.observer(overwrite_pass, path)
        except OpenError as e:
            return self._remove_unopened(path, e)
        except FileError as e:
            result.bytes_written += e.bytes_written
            result.error = e
            LOG.error("Shredding %s failed during pass %d, file left in place: %s",
                      path, result.passes_completed + 1, e)
            return result

        try:
            os.remove(path)
        except OSError as e:
            result.error = e
            if size:
                result.status = ShredStatus.SANITIZED_NOT_REMOVED
                LOG.error("Overwrote %s but could not remove it: %s", path, e)
            else:
                LOG.error("Could not remove empty file %s: %s", path, e)
            return result

        fsync_dir_best_effort(path.parent)
        result.status = ShredStatus.SHREDDED
        LOG.info("Shredded and removed %s", path)
        return result

    def destroy_all(self, paths, on_result=None):
        """
        Shred files one at a time; a failure never stops the rest

        Args:
            paths: Iterable of file paths
            on_result: Optional callable receiving each ShredResult

        Returns ShredReport
        """
        report = ShredReport()
        for path in paths:
            result = self.destroy(path)
            report.results.append(result)
            if on_result:
                on_result(result)
        return report

    def _run_pass(self, f, path, overwrite_pass, size):
        f.seek(0)
        pattern = None
        if overwrite_pass.fill_byte is not None:
            pattern = memoryview(bytes([overwrite_pass.fill_byte]) * min(self.chunk_size, size))

        written = 0
        while written < size:
            n = min(self.chunk_size, size - written)
            if pattern is None:
                try:
                    data = self.source.chunk(n)
                except EntropyError as e:
                    raise EntropyError(str(e), path=path, bytes_written=written) from e
            else:
                data = pattern[:n]
            written += write_chunk(f, data, path, written)
            if self.progress:
                self.progress(n)

        durable_flush(f, path, written)
        return written

    def _remove_unopened(self, path, error):
        try:
            os.remove(path)
        except FileNotFoundError:
            LOG.info("Nothing to shred, %s does not exist", path)
            return ShredResult(path=path, status=ShredStatus.NOT_FOUND, error=error)
        except OSError as e:
            LOG.error("Could not open or remove %s: %s", path, e)
            return ShredResult(path=path, status=ShredStatus.FAILED, error=error)

        LOG.warning("Removed %s WITHOUT overwriting it: %s", path, error)
        return ShredResult(path=path, status=ShredStatus.REMOVED_WITHOUT_OVERWRITE, error=error)


def shred_files(paths, chunk_size=MIB, progress=None):
    """Shred every path with a default Shredder and return the ShredReport."""
    return Shredder(chunk_size=chunk_size, progress=progress).destroy_all(paths)
