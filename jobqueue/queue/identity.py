"""
Worker identity.
"""

import hashlib
import os
import time


class WorkerIdentity:
    """
    Opaque key written as ``workerkey`` on every claim made by this process.

    The key is generated lazily and cached until clear_key() is called.
    It only needs to be practically non-colliding, not globally unique.
    """

    def __init__(self) -> None:
        self._key: str | None = None

    def key(self) -> str:
        """Return the cached key, generating it on first use."""
        if self._key is None:
            seed = f"{time.time_ns()}-{os.getpid()}".encode() + os.urandom(16)
            self._key = hashlib.sha1(seed).hexdigest()
        return self._key

    def clear_key(self) -> None:
        """Force a new key on the next call to key()."""
        self._key = None
