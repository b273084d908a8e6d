"""
Fill loop: write chaff files until the filesystem is nearly out of space.

States run FILLING -> FINAL_CHUNK -> DONE. Numbered files are written while
free space stays above the low-space threshold, then one final file using
the sentinel name soaks up what is left.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from chaffwipe import space
from chaffwipe.config import ChaffConfig
from chaffwipe.errors import ProbeError
from chaffwipe.writer import ChaffFile, ChaffOutcome, ChaffWriter

LOG = logging.getLogger(__name__)


class FillState(Enum):
    FILLING = 'filling'
    FINAL_CHUNK = 'final_chunk'
    DONE = 'done'


@dataclass
class FillReport:
    initial_available: int = 0
    final_available: int = 0
    attempts: List[ChaffFile] = field(default_factory=list)
    files_attempted: int = 0
    stalled: bool = False
    probe_error: Optional[ProbeError] = None

    @property
    def created(self):
        """Paths holding chaff, in creation order. Only these get shredded."""
        return [a.path for a in self.attempts if a.bytes_written > 0]

    @property
    def bytes_written(self):
        return sum(a.bytes_written for a in self.attempts)

    @property
    def failures(self):
        return [a for a in self.attempts if a.error is not None]


class FillController:
    """
    Drives ChaffWriter against a shrinking free-space budget

    Args:
        config: ChaffConfig for the run
        writer: ChaffWriter to use (built from config.chunk_size if omitted)
        probe: Callable returning available bytes for a path
        on_file: Optional callable(ChaffFile, files_attempted, tracked_available)
            run after every file attempt
    """

    def __init__(self, config=None, writer=None, probe=None, on_file=None):
        self.config = (config or ChaffConfig()).validate()
        self.writer = writer or ChaffWriter(chunk_size=self.config.chunk_size)
        self.probe = probe or space.available
        self.on_file = on_file
        self.state = FillState.FILLING
        self.report = FillReport()
        self._counter = 0
        self._stalls = 0

    @property
    def created(self):
        return tuple(self.report.created)

    def run(self):
        """
        Fill the target directory

        Returns FillReport

        Raises ProbeError if free space cannot be determined at startup. A
        later probe failure stops the fill and is kept in report.probe_error
        so the files already written still get shredded. Per-file errors
        are logged and recorded.
        """
        cfg = self.config
        self.state = FillState.FILLING
        self.report = FillReport()
        self._counter = 0
        self._stalls = 0
        available = self.probe(cfg.directory)
        self.report.initial_available = available
        LOG.info("Starting fill of %s with %d bytes available", cfg.directory, available)

        while self.state is FillState.FILLING:
            if available == 0:
                self.state = FillState.DONE
                break
            if available <= cfg.threshold:
                self.state = FillState.FINAL_CHUNK
                break

            path = cfg.numbered_path(self._counter)
            record = self._attempt(path, cfg.file_size, available)
            self._counter += 1

            tracked = available - record.bytes_written
            self._notify(record, tracked)
            if tracked == 0:
                available = 0
                continue

            try:
                fresh = self.probe(cfg.directory)
            except ProbeError as e:
                LOG.error("Lost track of free space, stopping fill: %s", e)
                self.report.probe_error = e
                self.state = FillState.DONE
                available = tracked
                break

            if record.error is not None or fresh >= available:
                self._stalls += 1
                if self._stalls >= cfg.max_stalls:
                    LOG.error("No progress after %d consecutive attempts, stopping fill at %d bytes available",
                              self._stalls, fresh)
                    self.report.stalled = True
                    self.state = FillState.DONE
            else:
                self._stalls = 0
            available = fresh

        if self.state is FillState.FINAL_CHUNK:
            LOG.info("%d bytes left, writing final file", available)
            record = self._attempt(cfg.final_path(), available, available)
            available -= record.bytes_written
            self._notify(record, available)
            self.state = FillState.DONE

        self.report.final_available = available
        return self.report

    def _attempt(self, path, target_size, available):
        record = self.writer.attempt(path, target_size, available)
        self.report.files_attempted += 1
        if record.outcome is not ChaffOutcome.SKIPPED:
            self.report.attempts.append(record)
        return record

    def _notify(self, record, tracked):
        if self.on_file:
            self.on_file(record, self.report.files_attempted, tracked)


def fill_directory(config=None, writer=None, probe=None, on_file=None):
    """Convenience wrapper: run a FillController and return its FillReport."""
    return FillController(config, writer=writer, probe=probe, on_file=on_file).run()
