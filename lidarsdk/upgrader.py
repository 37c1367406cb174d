"""State machine that upgrades the firmware of one lidar."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Protocol

from .firmware import (
    ENL_FILE_VERSION_V3,
    GENERAL_TRY_COUNT_LIMIT,
    GET_PROCESS_TRY_COUNT_LIMIT,
    SYSTEM_IS_NOT_READY,
    Firmware,
)

logger = logging.getLogger(__name__)

STATUS_SUCCESS = 0
STATUS_FAILURE = -1

# Return code of a start-upgrade request while the lidar erases its flash.
ERASE_FIRMWARE = 0x34

XFER_CHUNK_LENGTH = 1024

_XFER_DELAY = 0.005
_ERASE_RETRY_DELAY = 1


class UpgradeState(IntEnum):
    """States of the upgrade state machine."""

    IDLE = 0
    REQUEST = 1
    XFER_FIRMWARE = 2
    COMPLETE_XFER_FIRMWARE = 3
    GET_UPGRADE_PROGRESS = 4
    COMPLETE = 5
    TIMEOUT = 6
    ERR = 7
    UNDEF = 8


class FsmEvent(IntEnum):
    """Events that drive the upgrade state machine."""

    REQUEST_UPGRADE = 0
    XFER_FIRMWARE = 1
    COMPLETE_XFER_FIRMWARE = 2
    GET_UPGRADE_PROGRESS = 3
    COMPLETE = 4
    REINIT = 5
    TIMEOUT = 6
    ERR = 7
    UNDEF = 8


@dataclass(frozen=True)
class UpgradeProgress:
    """The event just handled and the overall progress in percent."""

    event: FsmEvent
    progress: int


ResponseCallback = Callable[[int, Any], None]
ProgressObserver = Callable[[int, UpgradeProgress], None]


class UpgradeCommands(Protocol):
    """Sends upgrade commands to a lidar.

    Each method returns a send status, 0 meaning success, and later calls
    ``callback(status, response)`` with the lidar's answer.
    """

    def start_upgrade(self, handle: int, request: dict, callback: ResponseCallback) -> int: ...

    def xfer_firmware(self, handle: int, request: dict, callback: ResponseCallback) -> int: ...

    def complete_xfer_firmware(
        self, handle: int, request: dict, callback: ResponseCallback
    ) -> int: ...

    def get_upgrade_progress(self, handle: int, callback: ResponseCallback) -> int: ...

    def request_reboot(self, handle: int, callback: ResponseCallback) -> int: ...


class LidarUpgrader:
    """Drives the firmware upgrade of the lidar with the given handle."""

    def __init__(self, firmware: Firmware, handle: int, commands: UpgradeCommands) -> None:
        self.firmware = firmware
        self.handle = handle
        self.state = UpgradeState.IDLE
        self.read_offset = 0
        self.read_length = XFER_CHUNK_LENGTH
        self.try_count = 0
        self._commands = commands
        self._upgrade_error = 0
        self._progress = 0
        self._observer: ProgressObserver | None = None
        self._lock = threading.RLock()
        self._done = threading.Event()
        self._thread: threading.Thread | None = None

    def add_progress_observer(self, observer: ProgressObserver | None) -> None:
        """Set the function told of every handled event."""
        self._observer = observer

    def start(self) -> bool:
        """Begin the upgrade on a background thread."""
        self._done.clear()
        self._thread = threading.Thread(
            target=self.handle_event, args=(FsmEvent.REQUEST_UPGRADE, 10), daemon=True
        )
        self._thread.start()
        return True

    def wait(self) -> bool:
        """Block until the upgrade succeeds or fails; return whether it succeeded."""
        if self._thread is None:
            raise RuntimeError("upgrade was not started")
        self._done.wait()
        self._thread.join()
        self._thread = None
        if self.is_error():
            logger.error("Lidar[%d] upgrade error, try again please!", self.handle)
            return False
        logger.info("Lidar[%d] upgrade successfully.", self.handle)
        return True

    def is_complete(self) -> bool:
        """Whether the state machine is back at rest."""
        return self.state == UpgradeState.IDLE

    def is_error(self) -> bool:
        """Whether the upgrade ended in a timeout or an error."""
        return self.state in (UpgradeState.TIMEOUT, UpgradeState.ERR)

    def _change_state(self, event: FsmEvent) -> None:
        if event < FsmEvent.UNDEF:
            self.state = UpgradeState(int(event))

    def handle_event(self, event: int, progress: int) -> None:
        """Advance the state machine by one event and notify the observer."""
        event = FsmEvent(event)
        handler = None
        with self._lock:
            if event in (FsmEvent.TIMEOUT, FsmEvent.ERR):
                self._change_state(event)
            logger.debug("Lidar[%d] state %s | event %s", self.handle, self.state.name, event.name)
            transition = _TRANSITIONS.get((self.state, event))
            if transition is not None:
                handler, self.state = transition
                logger.debug("Lidar[%d] new state %s", self.handle, self.state.name)

        if handler is not None:
            handler(self)

        if self._observer is not None:
            self._observer(self.handle, UpgradeProgress(event, progress))

        if self.is_complete() or self.is_error():
            self._done.set()

    def start_upgrade(self) -> int:
        """Ask the lidar to prepare for receiving firmware."""
        self.read_offset = 0
        self._upgrade_error = 0
        self._progress = 0
        header = self.firmware.header
        request = {
            "firmware_type": header.firmware_type,
            "firmware_length": header.firmware_length,
            "encrypt_type": header.encrypt_type,
            "dev_type": header.device_type,
        }
        logger.info("Start upgrade, the lidar[%d] device type [%d]", self.handle, header.device_type)
        if self.firmware.package_version == ENL_FILE_VERSION_V3:
            request["firmware_version"] = header.firmware_version
            request["firmware_buildtime"] = header.modify_time
            request["hw_whitelist"] = bytes(header.hw_whitelist)
        return self._commands.start_upgrade(self.handle, request, self.on_start_upgrade_response)

    def xfer_firmware(self) -> int:
        """Send the next chunk of firmware data."""
        firmware_length = self.firmware.header.firmware_length
        if self.read_offset >= firmware_length:
            logger.error(
                "The lidar[%d] xfer firmware failed, firmware_length[%d], read_offset[%d].",
                self.handle, firmware_length, self.read_offset,
            )
            return STATUS_FAILURE
        length = min(self.read_length, firmware_length - self.read_offset)
        request = {
            "offset": self.read_offset,
            "length": length,
            "encrypt_type": self.firmware.header.encrypt_type,
            "data": bytes(self.firmware.data[self.read_offset:self.read_offset + length]),
        }
        time.sleep(_XFER_DELAY)
        logger.info("The lidar[%d] xfer firmware read offset %d", self.handle, self.read_offset)
        return self._commands.xfer_firmware(self.handle, request, self.on_xfer_response)

    def complete_xfer_firmware(self) -> int:
        """Tell the lidar that all data was sent, with the firmware checksum."""
        header = self.firmware.header
        request = {
            "checksum_type": header.checksum_type,
            "checksum_length": header.checksum_length,
            "checksum": bytes(header.checksum[:header.checksum_length]),
        }
        return self._commands.complete_xfer_firmware(
            self.handle, request, self.on_complete_xfer_response
        )

    def get_upgrade_progress(self) -> int:
        """Ask the lidar how far it is in applying the firmware."""
        return self._commands.get_upgrade_progress(self.handle, self.on_progress_response)

    def upgrade_complete(self) -> int:
        """Ask the lidar to reboot into the new firmware."""
        return self._commands.request_reboot(self.handle, self.on_reboot_response)

    def _retry(self, limit: int, event: FsmEvent, progress: int, what: str) -> None:
        self.try_count += 1
        if self.try_count < limit:
            self.handle_event(event, progress)
        else:
            self.try_count = 0
            self.handle_event(FsmEvent.ERR, 100)
            logger.error("%s failed, the lidar[%d] exceed limit!", what, self.handle)

    def on_start_upgrade_response(self, status: int, response: Any) -> None:
        """Handle the answer to a start-upgrade request."""
        if status != STATUS_SUCCESS:
            logger.warning("Start upgrade of lidar[%d] timed out[%d], try again!", self.handle, self.try_count)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.REQUEST_UPGRADE, 10, "Start upgrade")
            return
        self.try_count = 0
        ret_code = response.ret_code
        if ret_code == 0:
            logger.info("Start upgrade succ, the lidar[%d] start to xfer data!", self.handle)
            self.handle_event(FsmEvent.XFER_FIRMWARE, 20)
        elif ret_code == SYSTEM_IS_NOT_READY:
            logger.info("Start upgrade failed, the lidar[%d] is busy, try again!", self.handle)
            self.handle_event(FsmEvent.REQUEST_UPGRADE, 10)
        elif ret_code == ERASE_FIRMWARE:
            time.sleep(_ERASE_RETRY_DELAY)
            logger.info("Start upgrade, erase lidar[%d] firmware!", self.handle)
            self.handle_event(FsmEvent.REQUEST_UPGRADE, 10)
        else:
            logger.error("Start upgrade failed, the lidar[%d] ret_code[%d]", self.handle, ret_code)
            self.handle_event(FsmEvent.ERR, 100)

    def on_xfer_response(self, status: int, response: Any) -> None:
        """Handle the answer to a firmware data chunk."""
        if status != STATUS_SUCCESS:
            logger.warning("Xfer firmware of lidar[%d] timed out, try_count:%d", self.handle, self.try_count)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.XFER_FIRMWARE, 20, "Xfer firmware")
            return
        self.try_count = 0
        if response.ret_code:
            logger.error("The lidar[%d] Xfer firmware fail[%d]", self.handle, response.ret_code)
            self.handle_event(FsmEvent.ERR, 100)
            return
        self.read_offset += self.read_length
        if self.read_offset < self.firmware.header.firmware_length:
            self.handle_event(FsmEvent.XFER_FIRMWARE, 20)
        else:
            logger.info("Xfer firmware succ, the lidar[%d] last offset[%d]", self.handle, self.read_offset)
            self.handle_event(FsmEvent.COMPLETE_XFER_FIRMWARE, 40)

    def on_complete_xfer_response(self, status: int, response: Any) -> None:
        """Handle the answer to the end-of-transfer request."""
        if status != STATUS_SUCCESS:
            logger.warning("Complete xfer of lidar[%d] timed out, try_count:%d", self.handle, self.try_count)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.COMPLETE_XFER_FIRMWARE, 50, "Complete xfer")
            return
        self.try_count = 0
        if response.ret_code:
            logger.error("Complete xfer failed, the lidar[%d] ret_code:%d.", self.handle, response.ret_code)
            self.handle_event(FsmEvent.ERR, 100)
        else:
            logger.info("The lidar[%d] complete xfer succ.", self.handle)
            self.handle_event(FsmEvent.GET_UPGRADE_PROGRESS, 50)

    def on_progress_response(self, status: int, response: Any) -> None:
        """Handle the answer to a progress query."""
        if status != STATUS_SUCCESS:
            self._retry(
                GET_PROCESS_TRY_COUNT_LIMIT,
                FsmEvent.GET_UPGRADE_PROGRESS,
                self._progress // 2 + 50,
                "Get progress",
            )
            return
        self.try_count = 0
        if response.ret_code:
            logger.error("Get progress failed, the lidar[%d] ret_code:%d.", self.handle, response.ret_code)
            self.handle_event(FsmEvent.ERR, 100)
            return
        progress = response.progress
        logger.info("The lidar[%d] get progress[%d]", self.handle, progress)
        if progress < 100:
            self.handle_event(FsmEvent.GET_UPGRADE_PROGRESS, progress // 2 + 50)
        else:
            self.handle_event(FsmEvent.COMPLETE, 100)

    def on_reboot_response(self, status: int, response: Any) -> None:
        """Handle the answer to the final reboot request."""
        if status != STATUS_SUCCESS:
            logger.warning("Reboot of lidar[%d] timed out, try_count:%d", self.handle, self.try_count)
            self.try_count += 1
            if self.try_count < GENERAL_TRY_COUNT_LIMIT:
                self.handle_event(FsmEvent.COMPLETE, 100)
            else:
                self.try_count = 0
                self.handle_event(FsmEvent.REINIT, 100)
                logger.error("Upgrade complete failed, the lidar[%d] reboot exceed limit!", self.handle)
            return
        self.try_count = 0
        if response.ret_code:
            logger.error("Upgrade complete failed, the lidar[%d] ret_code[%d] reboot fail!", self.handle, response.ret_code)
            self.handle_event(FsmEvent.ERR, 100)
        else:
            logger.info("The lidar[%d] upgrade complete succ.", self.handle)
            self.handle_event(FsmEvent.REINIT, 100)


_TRANSITIONS: dict[
    tuple[UpgradeState, FsmEvent],
    tuple[Callable[[LidarUpgrader], int] | None, UpgradeState],
] = {
    (UpgradeState.IDLE, FsmEvent.REQUEST_UPGRADE): (LidarUpgrader.start_upgrade, UpgradeState.REQUEST),
    (UpgradeState.REQUEST, FsmEvent.REQUEST_UPGRADE): (LidarUpgrader.start_upgrade, UpgradeState.REQUEST),
    (UpgradeState.REQUEST, FsmEvent.XFER_FIRMWARE): (LidarUpgrader.xfer_firmware, UpgradeState.XFER_FIRMWARE),
    (UpgradeState.XFER_FIRMWARE, FsmEvent.XFER_FIRMWARE): (
        LidarUpgrader.xfer_firmware, UpgradeState.XFER_FIRMWARE),
    (UpgradeState.XFER_FIRMWARE, FsmEvent.COMPLETE_XFER_FIRMWARE): (
        LidarUpgrader.complete_xfer_firmware, UpgradeState.COMPLETE_XFER_FIRMWARE),
    (UpgradeState.COMPLETE_XFER_FIRMWARE, FsmEvent.COMPLETE_XFER_FIRMWARE): (
        LidarUpgrader.complete_xfer_firmware, UpgradeState.COMPLETE_XFER_FIRMWARE),
    (UpgradeState.COMPLETE_XFER_FIRMWARE, FsmEvent.GET_UPGRADE_PROGRESS): (
        LidarUpgrader.get_upgrade_progress, UpgradeState.GET_UPGRADE_PROGRESS),
    (UpgradeState.GET_UPGRADE_PROGRESS, FsmEvent.GET_UPGRADE_PROGRESS): (
        LidarUpgrader.get_upgrade_progress, UpgradeState.GET_UPGRADE_PROGRESS),
    (UpgradeState.GET_UPGRADE_PROGRESS, FsmEvent.COMPLETE): (
        LidarUpgrader.upgrade_complete, UpgradeState.COMPLETE),
    (UpgradeState.COMPLETE, FsmEvent.COMPLETE): (LidarUpgrader.upgrade_complete, UpgradeState.COMPLETE),
    (UpgradeState.COMPLETE, FsmEvent.REINIT): (None, UpgradeState.IDLE),
}