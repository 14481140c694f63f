"""Rate limiting for the stale-lock sweep.

The last sweep time lives in a small file next to nothing else, so deciding
whether to sweep never depends on the state of the lease table.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class CleanupMarker:
    """Epoch timestamp of the last sweep, persisted in a file"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def last_cleanup(self) -> Optional[float]:
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot read sweep marker {self.path}: {e}")
            return None

        try:
            return float(raw)
        except ValueError:
            return None

    def record(self, when: float) -> None:
        """Write the sweep time (atomic replace so readers never see half a value)"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            tmp.write_text(repr(float(when)), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning(f"Cannot write sweep marker {self.path}: {e}")
            tmp.unlink(missing_ok=True)

    def is_due(self, now: float, interval: float) -> bool:
        last = self.last_cleanup()
        if last is None:
            return True
        # A marker from the future (clock moved back) must not block sweeps forever
        return (now - last) >= interval or last > now
