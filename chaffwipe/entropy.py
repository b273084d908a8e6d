import os

from chaffwipe.errors import EntropyError


class ChunkedRandomSource:
    """Cryptographically strong random bytes, one chunk at a time."""

    def fill(self, buffer):
        """
        Overwrite every byte of a writable buffer with fresh random data

        Args:
            buffer: bytearray or writable memoryview of any length

        Returns the buffer
        """
        size = len(buffer)
        if size:
            buffer[:] = self.chunk(size)
        return buffer

    def chunk(self, size):
        try:
            return os.urandom(size)
        except (NotImplementedError, OSError) as e:
            raise EntropyError(f"Randomness source unavailable: {e}") from e
