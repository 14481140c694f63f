"""Owner identities used to prove lease ownership."""

from __future__ import annotations

import getpass
import os
import socket


class ProcessIdentity:
    """Identifies the calling process as ``host:user:pid``.

    The value is computed on every call so a forked child never reuses its
    parent's identity.
    """

    def owner(self) -> str:
        hostname = socket.gethostname() or "unknown"
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            # No passwd entry / login name (e.g. some containers)
            user = "unknown"
        return f"{hostname}:{user}:{os.getpid()}"

    def __repr__(self) -> str:
        return f"ProcessIdentity({self.owner()!r})"


class StaticIdentity:
    """Fixed owner string (tests, operator tooling, named workers)."""

    def __init__(self, owner: str):
        if not owner:
            raise ValueError("owner must be a non-empty string")
        self._owner = owner

    def owner(self) -> str:
        return self._owner

    def __repr__(self) -> str:
        return f"StaticIdentity({self._owner!r})"
