"""Exception hierarchy for chaff generation and shredding."""


class ChaffWipeError(Exception):
    """Base class for every error raised by chaffwipe."""


class ProbeError(ChaffWipeError):
    """Free space could not be determined. Fatal to the whole run."""

    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path


class FileError(ChaffWipeError):
    """
    An error scoped to a single file

    Args:
        message: Description of the failure
        path: File the error happened on
        bytes_written: Bytes committed to the file before the failure
    """

    def __init__(self, message, path=None, bytes_written=0):
        super().__init__(message)
        self.path = path
        self.bytes_written = bytes_written


class EntropyError(FileError):
    """The OS randomness source is unavailable."""


class WriteError(FileError):
    """Short write or I/O failure while writing a file."""


class OpenError(FileError):
    """A file could not be reopened for shredding."""


class SyncError(FileError):
    """A durable flush (fsync) failed."""
