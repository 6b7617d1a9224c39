"""
Process-wide record of which SoundTouch speaker is currently selected.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class DeviceSelection:
    """
    Thread-safe holder for the selected device's hostname.

    An empty string means no device is selected. Writes always overwrite;
    callers that act on the hostname should read it once and keep that value
    for the rest of their operation.
    """

    def __init__(self, hostname: str = ""):
        self._hostname = hostname
        self._lock = threading.Lock()

    def get(self) -> str:
        """Return the selected hostname, or "" if none."""
        with self._lock:
            return self._hostname

    def set(self, hostname: str) -> None:
        """Select a hostname. No check is made that it was ever discovered."""
        with self._lock:
            self._hostname = hostname
        logger.info("Device selected: %s", hostname or "<none>")

    def select_default(self, hostname: str) -> bool:
        """
        Select hostname only if nothing is selected yet.

        Returns:
            True if the selection was written
        """
        with self._lock:
            if self._hostname:
                return False
            self._hostname = hostname
        logger.info("Selected default device: %s", hostname)
        return True

    def __repr__(self) -> str:
        return f"DeviceSelection({self.get()!r})"


# Shared by the scanner, the API routes and every live session
selection = DeviceSelection()
