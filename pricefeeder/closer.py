"""A termination signal that may safely be closed more than once."""

from __future__ import annotations

import threading
from typing import Optional


class Closer:
    """Signals termination; closing it again has no further effect."""

    def __init__(self) -> None:
        self._done = threading.Event()

    def close(self) -> None:
        """Close the closer, releasing every waiter."""
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until closed or the timeout passes; return whether it is closed."""
        return self._done.wait(timeout)

    def is_closed(self) -> bool:
        return self._done.is_set()