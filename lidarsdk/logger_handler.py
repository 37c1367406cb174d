"""Writing of log files that a lidar pushes to the host, one file at a time."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import BinaryIO

from .file_manager import directory_exists, make_directory, unhide_file

logger = logging.getLogger(__name__)

_WRITE_INTERVAL = 0.1


class Flag(IntEnum):
    """What a pushed log packet asks the host to do."""

    TRANSFER_DATA = 0
    CREATE_FILE = 1
    END_FILE = 2


@dataclass(frozen=True)
class LogPacket:
    """One chunk of a log file pushed by a lidar."""

    log_type: int
    file_index: int
    trans_index: int
    data: bytes = b""
    flag: int = Flag.TRANSFER_DATA


@dataclass
class _CurrentFile:
    flag: int = Flag.TRANSFER_DATA
    file_index: int = 0
    trans_index: int = 0
    fp: BinaryIO | None = None
    file_name: str = ""


def current_format_time() -> str:
    """The local time formatted as used in log file names."""
    return time.strftime("%Y-%m-%d_%H-%M-%S", time.localtime())


class LoggerHandler:
    """Stores the log files of one lidar below a root directory.

    Packets are queued by store_log_bag and written by write, either
    directly or from the background thread that start launches.
    """

    def __init__(self, log_root_path: str | os.PathLike[str], serial_num: str) -> None:
        self.log_root_path = os.fspath(log_root_path)
        self.serial_num = serial_num
        self._branch_paths: dict[int, str] = {}
        self._files: defaultdict[int, _CurrentFile] = defaultdict(_CurrentFile)
        self._queue: deque[LogPacket] = deque()
        self._queue_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> LoggerHandler:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        """Start the background thread that writes queued packets."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._save_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and close every open file."""
        if self._thread is not None:
            self._stop_event.set()
            self._thread.join()
            self._thread = None
        for current in self._files.values():
            if current.fp is not None:
                current.fp.close()
                current.fp = None

    def _save_loop(self) -> None:
        while not self._stop_event.is_set():
            self.write()
            self._stop_event.wait(_WRITE_INTERVAL)

    def store_log_bag(self, packet: LogPacket, flag: int) -> None:
        """Queue a packet to be handled as the given flag."""
        logger.info("Transform Data Length : %d", len(packet.data))
        with self._queue_lock:
            self._queue.append(replace(packet, data=bytes(packet.data), flag=int(flag)))

    def _branch_path(self, log_type: int) -> str:
        return os.path.join(self.log_root_path, f"type_{log_type}")

    def _close_current(self, log_type: int, current: _CurrentFile) -> None:
        if current.fp is None:
            return
        current.fp.close()
        current.fp = None
        unhide_file(self._branch_paths[log_type], current.file_name)

    def create_file(self, packet: LogPacket) -> None:
        """Open a new hidden log file and write the packet's data to it."""
        log_type = packet.log_type
        branch = self._branch_path(log_type)
        self._branch_paths[log_type] = branch
        if not directory_exists(branch) and not make_directory(branch):
            logger.error("Can't Create Dir %s", branch)
            return

        current = self._files[log_type]
        if current.fp is not None:
            if current.trans_index + 1 != packet.trans_index:
                logger.warning(
                    "The terminal command to end the %drd log file has been lost.",
                    current.file_index,
                )
            self._close_current(log_type, current)

        file_name = (
            f".{current_format_time()}_{self.serial_num}_{log_type}_{packet.file_index}.dat"
        )
        file_path = os.path.join(branch, file_name)
        logger.info("file path : %s", file_path)
        try:
            current.fp = open(file_path, "ab")
        except OSError as exc:
            logger.error("Can't open log file %s: %s", file_path, exc)
            current.fp = None
        if current.fp is not None:
            current.fp.write(packet.data)
            current.fp.flush()
        current.flag = packet.flag
        current.file_index = packet.file_index
        current.trans_index = packet.trans_index
        current.file_name = file_name
        logger.info("Create File index: %d", packet.file_index)

    def write_file(self, packet: LogPacket) -> None:
        """Append the packet's data to the open file of its log type."""
        log_type = packet.log_type
        current = self._files[log_type]
        if current.file_index != packet.file_index:
            logger.warning(
                "Log Type: %d, File Index error: last file index: %d, current file index: %d",
                log_type, current.file_index, packet.file_index,
            )
            return
        if current.trans_index + 1 != packet.trans_index and packet.trans_index != 1:
            logger.warning(
                "Log Type: %d, Trans Index error: last trans index: %d, current trans index: %d",
                log_type, current.trans_index, packet.trans_index,
            )
        if current.fp is not None:
            current.fp.write(packet.data)
            current.fp.flush()
        else:
            logger.error(
                "The starting file command was not sent from lidar. trans_index: %d",
                packet.trans_index,
            )
        current.flag = packet.flag
        current.trans_index = packet.trans_index

    def stop_file(self, packet: LogPacket) -> None:
        """Close the open file of the packet's log type and make it visible."""
        log_type = packet.log_type
        current = self._files[log_type]
        if current.flag == Flag.END_FILE and current.trans_index + 1 != packet.trans_index:
            logger.error(
                "Multiple terminal commands to close the log files with discontinuous trans_index."
            )
        self._close_current(log_type, current)
        current.flag = packet.flag
        current.trans_index = packet.trans_index

    def write(self) -> None:
        """Handle every packet queued so far, in order."""
        with self._queue_lock:
            pending, self._queue = self._queue, deque()

        for packet in pending:
            current = self._files[packet.log_type]
            if packet.trans_index < current.trans_index and packet.flag != Flag.CREATE_FILE:
                continue
            if packet.flag == Flag.CREATE_FILE:
                self.create_file(packet)
            elif packet.flag == Flag.END_FILE:
                self.stop_file(packet)
            elif packet.flag == Flag.TRANSFER_DATA:
                self.write_file(packet)