"""Fill free disk space with random chaff, then shred it."""

import logging

from chaffwipe.config import ChaffConfig
from chaffwipe.discard import DiscardOutcome, DiscardResult, select_discarder
from chaffwipe.entropy import ChunkedRandomSource
from chaffwipe.errors import (
    ChaffWipeError,
    EntropyError,
    FileError,
    OpenError,
    ProbeError,
    SyncError,
    WriteError,
)
from chaffwipe.fill import FillController, FillReport, FillState, fill_directory
from chaffwipe.shred import OverwritePass, Shredder, ShredReport, ShredResult, ShredStatus, shred_files
from chaffwipe.space import available
from chaffwipe.writer import ChaffFile, ChaffOutcome, ChaffWriter

__version__ = '0.1.0'

logging.getLogger(__name__).addHandler(logging.NullHandler())
