import os
import shutil

from chaffwipe.errors import ProbeError


def available(path):
    """
    Return the bytes a caller can still write on the filesystem holding path

    Uses blocks available to unprivileged users, so root-reserved blocks are
    not counted. Never cached: call again whenever the answer matters.

    Raises ProbeError if the filesystem cannot be statted.
    """
    try:
        if hasattr(os, 'statvfs'):
            st = os.statvfs(path)
            return st.f_bavail * st.f_frsize
        return shutil.disk_usage(path).free
    except OSError as e:
        raise ProbeError(f"Cannot stat filesystem at {path}: {e}", path=path) from e
