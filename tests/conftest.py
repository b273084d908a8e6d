from pathlib import Path

import pytest

from chaffwipe.errors import EntropyError


class FakeDisk:
    """Space probe for a pretend filesystem of fixed capacity.

    Free space is the capacity minus the bytes held by files in the probed
    directory, so it shrinks as chaff gets written and grows back on delete.
    """

    def __init__(self, capacity):
        self.capacity = capacity
        self.calls = 0

    def __call__(self, path):
        self.calls += 1
        used = sum(p.stat().st_size for p in Path(path).iterdir() if p.is_file())
        return max(0, self.capacity - used)


class FlakySource:
    """Random source that raises EntropyError on the listed call numbers."""

    def __init__(self, fail_on=(), always=False):
        self.fail_on = set(fail_on)
        self.always = always
        self.calls = 0

    def _check(self):
        self.calls += 1
        if self.always or self.calls in self.fail_on:
            raise EntropyError("no entropy")

    def fill(self, buffer):
        self._check()
        buffer[:] = b'\xab' * len(buffer)
        return buffer

    def chunk(self, size):
        self._check()
        return b'\xab' * size


@pytest.fixture
def fake_disk():
    return FakeDisk


@pytest.fixture
def flaky_source():
    return FlakySource
