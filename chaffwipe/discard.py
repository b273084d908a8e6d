"""
Best-effort discard (TRIM) hint for the filesystem holding the chaff.

The platform variant is picked once with select_discarder(). Nothing here
raises: every outcome comes back as a DiscardResult, and none of them can
undo or contradict a shred that already succeeded.
"""

import logging
import os
import struct
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

LOG = logging.getLogger(__name__)

# _IOWR('X', 121, struct fstrim_range)
FITRIM = 0xC0185879


class DiscardOutcome(Enum):
    ISSUED = 'issued'
    UNSUPPORTED = 'unsupported'
    MANUAL = 'manual'
    FAILED = 'failed'


@dataclass
class DiscardResult:
    outcome: DiscardOutcome
    detail: str = ''


def find_mount_point(path):
    """Walk up from path until a mount point is reached."""
    current = Path(os.path.abspath(path))
    while not os.path.ismount(current) and current != current.parent:
        current = current.parent
    return current


class Discarder:
    """Interface for the platform discard variants."""

    def request_discard(self, path):
        raise NotImplementedError


class FitrimDiscarder(Discarder):
    """Linux: FITRIM ioctl over the whole filesystem range."""

    def request_discard(self, path):
        import fcntl

        # struct fstrim_range { start, len, minlen }; the kernel writes the
        # trimmed byte count back into len
        rng = bytearray(struct.pack('QQQ', 0, 2 ** 64 - 1, 0))
        try:
            fd = os.open(str(path), os.O_RDONLY)
        except OSError as e:
            LOG.warning("Cannot open %s for discard: %s", path, e)
            return DiscardResult(DiscardOutcome.FAILED, f"Cannot open {path}: {e}")

        try:
            fcntl.ioctl(fd, FITRIM, rng)
        except OSError as e:
            LOG.warning("FITRIM failed on %s: %s", path, e)
            return DiscardResult(DiscardOutcome.FAILED, f"ioctl FITRIM failed: {e}")
        finally:
            os.close(fd)

        trimmed = struct.unpack('QQQ', rng)[1]
        LOG.info("FITRIM on %s discarded %d bytes", path, trimmed)
        return DiscardResult(DiscardOutcome.ISSUED, f"TRIM completed, {trimmed} bytes discarded")


class ManualDiscarder(Discarder):
    """
    Platforms where the discard has to be run by hand

    Args:
        command: Format string with a {target} placeholder
        target_of: Callable mapping the chaff path to the command's target
    """

    def __init__(self, command, target_of):
        self.command = command
        self.target_of = target_of

    def request_discard(self, path):
        command = self.command.format(target=self.target_of(path))
        return DiscardResult(DiscardOutcome.MANUAL,
                             f"TRIM/discard must be performed manually. Suggested: {command}")


class UnsupportedDiscarder(Discarder):

    def __init__(self, platform):
        self.platform = platform

    def request_discard(self, path):
        return DiscardResult(DiscardOutcome.UNSUPPORTED,
                             f"TRIM/discard not supported for OS: {self.platform}")


def _windows_drive(path):
    return Path(path).resolve().drive or str(Path(path).resolve().anchor)


def select_discarder(platform=None):
    """
    Pick the discard variant for a platform

    Args:
        platform: sys.platform style string (defaults to the running one)

    Returns Discarder
    """
    platform = platform or sys.platform
    if platform.startswith('linux'):
        return FitrimDiscarder()
    if platform == 'darwin':
        return ManualDiscarder('sudo diskutil secureErase freespace 0 {target}', find_mount_point)
    if platform == 'win32':
        return ManualDiscarder('defrag {target} /L', _windows_drive)
    return UnsupportedDiscarder(platform)
