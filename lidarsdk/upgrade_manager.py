"""Firmware upgrade of several lidars from one firmware file."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable

from .firmware import Firmware, FirmwareError
from .upgrader import LidarUpgrader, UpgradeCommands, UpgradeProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, UpgradeProgress], None]


class UpgradeManager:
    """Loads a firmware file and upgrades lidars with it.

    Commands go out through ``commands``, an object with the methods that
    LidarUpgrader expects.
    """

    def __init__(self, commands: UpgradeCommands) -> None:
        self._commands = commands
        self.firmware = Firmware()
        self._loaded = False
        self._callback: ProgressCallback | None = None
        self._lock = threading.Lock()

    def __enter__(self) -> UpgradeManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close_firmware()

    def set_firmware_path(self, path: str | os.PathLike[str]) -> None:
        """Open and check the firmware file; raise FirmwareError if it is unusable."""
        firmware = Firmware()
        try:
            firmware.open(path)
        except FirmwareError:
            logger.error("Open firmware_path fail")
            raise
        with self._lock:
            self.firmware.close()
            self.firmware = firmware
            self._loaded = True

    def set_progress_callback(self, callback: ProgressCallback | None) -> None:
        """Set the function told ``(handle, progress)`` for every upgrade event."""
        self._callback = callback

    def upgrade(self, handles: Iterable[int]) -> dict[int, bool]:
        """Upgrade every lidar in handles at once and wait until all are done.

        Returns whether each lidar's upgrade succeeded, by handle.
        """
        handles = list(handles)
        if handles and not self._loaded:
            raise FirmwareError("no firmware loaded")

        callback = self._callback

        def observer(handle: int, progress: UpgradeProgress) -> None:
            if callback is not None:
                callback(handle, progress)

        upgraders = []
        for handle in handles:
            upgrader = LidarUpgrader(self.firmware, handle, self._commands)
            upgrader.add_progress_observer(observer)
            upgraders.append(upgrader)

        for upgrader in upgraders:
            upgrader.start()

        self.close_firmware()

        return {upgrader.handle: upgrader.wait() for upgrader in upgraders}

    def close_firmware(self) -> None:
        """Close the firmware file; the data already read stays in memory."""
        self.firmware.close()