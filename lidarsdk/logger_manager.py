"""Coordination of the log files that lidars push to the host."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from .config import LoggerCfg
from .file_manager import (
    collect_file_names,
    dir_total_size,
    directory_exists,
    make_directory,
    unhide_files,
)
from .logger_handler import Flag, LoggerHandler, LogPacket

logger = logging.getLogger(__name__)

STATUS_SUCCESS = 0

COMMAND_ID_PUSH_LOG = 0x0201
COMMAND_ID_COLLECTION_LOG = 0x0202

MAX_EXCEPTION_LOG_CACHE_SIZE_MB = 200
EXCEPTION_LOG_CACHE_RATIO = 1
REALTIME_LOG_CACHE_RATIO = 3
_MAX_CACHE_SIZE_MB = 1_000_000_000
_MB = 1024 * 1024

_CYCLE_DELETE_INTERVAL = 600.0

# Bits of the flag carried by a pushed log packet.
PUSH_FLAG_NEED_ACK = 1 << 0
PUSH_FLAG_CREATE_FILE = 1 << 1
PUSH_FLAG_END_FILE = 1 << 2

Sender = Callable[[int, int, dict, Any], int]


class LogType(IntEnum):
    """Kinds of log a lidar can collect."""

    REAL_TIME = 0
    EXCEPTION = 1


@dataclass
class DeviceInfo:
    """What the logger needs to know about a detected lidar."""

    sn: str
    dev_type: int = 0
    lidar_ip: str = ""
    cmd_port: int = 0


class LoggerManager:
    """Starts and stops lidar logging and saves the pushed log files.

    Commands go out through ``sender(handle, command_id, payload, callback)``,
    which returns a status code, 0 meaning success.
    """

    def __init__(self, sender: Sender) -> None:
        self._sender = sender
        self.enabled = False
        self.log_root_path = "./"
        self.max_realtime_log_cache_size = 150 * _MB
        self.max_exception_log_cache_size = 50 * _MB
        self._devices: dict[int, DeviceInfo] = {}
        self._handlers: dict[int, LoggerHandler] = {}
        self._cycle_enabled = False
        self._cycle_thread: threading.Thread | None = None
        self._cond = threading.Condition()
        self._wake = False
        self._destroyed = False

    @property
    def devices(self) -> dict[int, DeviceInfo]:
        """The devices currently known to the logger, by handle."""
        return dict(self._devices)

    def init(self, cfg: LoggerCfg | None) -> None:
        """Apply a logger configuration; raise OSError if the log directory can not be made."""
        if cfg is None or not cfg.lidar_log_enable:
            self.enabled = False
            return
        size = cfg.lidar_log_cache_size
        if size == 0 or size > _MAX_CACHE_SIZE_MB:
            self.enabled = False
            return

        self.enabled = True
        ratio_sum = EXCEPTION_LOG_CACHE_RATIO + REALTIME_LOG_CACHE_RATIO
        if size > MAX_EXCEPTION_LOG_CACHE_SIZE_MB * ratio_sum // EXCEPTION_LOG_CACHE_RATIO:
            self.max_exception_log_cache_size = MAX_EXCEPTION_LOG_CACHE_SIZE_MB * _MB
            self.max_realtime_log_cache_size = (size - MAX_EXCEPTION_LOG_CACHE_SIZE_MB) * _MB
        else:
            self.max_realtime_log_cache_size = (size * REALTIME_LOG_CACHE_RATIO // ratio_sum) * _MB
            self.max_exception_log_cache_size = (size * EXCEPTION_LOG_CACHE_RATIO // ratio_sum) * _MB

        self._init_save_path(cfg.lidar_log_path)

        try:
            unhide_files(cfg.lidar_log_path)
        except (OSError, ValueError):
            logger.error("Change hidden files to normal files failed")

        self._cycle_enabled = True
        self._cycle_thread = threading.Thread(target=self._cycle_delete, daemon=True)
        self._cycle_thread.start()

    def _init_save_path(self, log_path: str) -> None:
        root = os.path.join(log_path, "lidar_log")
        if not directory_exists(root) and not make_directory(root):
            self.enabled = False
            raise OSError(f"Can't Create Dir {root}")
        self.log_root_path = root

    def add_device(self, handle: int, info: DeviceInfo) -> None:
        """Remember a device, unless one is already known under that handle."""
        self._devices.setdefault(handle, info)

    def remove_device(self, handle: int) -> None:
        """Forget a device."""
        self._devices.pop(handle, None)

    def start_logger(self, handle: int, log_type: int, callback: Any = None) -> int:
        """Ask a lidar to start pushing a log; returns the send status."""
        if not self.enabled:
            logger.info("Disable logger.")
            return STATUS_SUCCESS
        logger.info("Start Logger handler: %d, log_type: %d", handle, int(log_type))
        payload = {"log_type": int(log_type), "enable": True}
        return self._sender(handle, COMMAND_ID_COLLECTION_LOG, payload, callback)

    def stop_logger(self, handle: int, log_type: int, callback: Any = None) -> int:
        """Ask a lidar to stop pushing a log; returns the send status."""
        logger.info("Stop Logger handler: %d, log_type: %d", handle, int(log_type))
        payload = {"log_type": int(log_type), "enable": False}
        return self._sender(handle, COMMAND_ID_COLLECTION_LOG, payload, callback)

    def handle_push(self, handle: int, packet: LogPacket | None) -> None:
        """Handle a log packet pushed by a lidar.

        ``packet.flag`` carries the push flag bits: bit 0 asks for an
        acknowledgement, bit 1 starts a file and bit 2 ends one.
        """
        if not self.enabled or packet is None:
            return
        flag = int(packet.flag)
        if flag & PUSH_FLAG_NEED_ACK:
            ack = {
                "ret_code": 0,
                "log_type": packet.log_type,
                "file_index": packet.file_index,
                "trans_index": packet.trans_index,
            }
            self._sender(handle, COMMAND_ID_PUSH_LOG, ack, None)

        if flag & PUSH_FLAG_CREATE_FILE:
            self._on_create(handle, packet)
        elif flag & PUSH_FLAG_END_FILE:
            self._on_stopped(handle, packet)
        else:
            self._on_transfer(handle, packet)

    def _on_create(self, handle: int, packet: LogPacket) -> None:
        if handle not in self._handlers and handle in self._devices:
            handler = LoggerHandler(self.log_root_path, self._devices[handle].sn)
            handler.start()
            self._handlers[handle] = handler
        handler = self._handlers.get(handle)
        if handler is None:
            logger.error("LogType : %d unknown device %d", packet.log_type, handle)
            return
        handler.store_log_bag(packet, Flag.CREATE_FILE)

    def _on_stopped(self, handle: int, packet: LogPacket) -> None:
        handler = self._handlers.get(handle)
        if handler is None:
            logger.info("LogType: %d Stop! File doesn't create", packet.log_type)
            return
        handler.store_log_bag(packet, Flag.END_FILE)
        self._notify_cycle()

    def _on_transfer(self, handle: int, packet: LogPacket) -> None:
        handler = self._handlers.get(handle)
        if handler is None:
            logger.error("LogType : %d File doesn't create", packet.log_type)
            return
        handler.store_log_bag(packet, Flag.TRANSFER_DATA)

    def _notify_cycle(self) -> None:
        with self._cond:
            self._wake = True
            self._cond.notify()

    def _prune(self, path: str, limit: int) -> None:
        if not directory_exists(path) or dir_total_size(path) <= limit:
            return
        try:
            files = collect_file_names(path)
        except OSError:
            logger.error("Can not get filenames in this directory: %s", path)
            return
        for _, name in files:
            if dir_total_size(path) <= limit:
                break
            try:
                os.remove(os.path.join(path, name))
            except OSError:
                pass

    def _cycle_delete(self) -> None:
        realtime = os.path.join(self.log_root_path, f"type_{int(LogType.REAL_TIME)}")
        exception = os.path.join(self.log_root_path, f"type_{int(LogType.EXCEPTION)}")
        while self._cycle_enabled:
            with self._cond:
                self._cond.wait_for(lambda: self._wake, timeout=_CYCLE_DELETE_INTERVAL)
                self._prune(realtime, self.max_realtime_log_cache_size)
                self._prune(exception, self.max_exception_log_cache_size)
                self._wake = False

    def stop_callback(self, status: int, handle: int, response: Any) -> None:
        """Handle the answer to a stop request, retrying until it succeeds."""
        if status != STATUS_SUCCESS:
            logger.error("Lidar:%d stop logger failed, the status:%d", handle, status)
        elif response is None:
            logger.error("Lidar:%d stop logger failed, the response is missing.", handle)
        elif getattr(response, "ret_code", 0) != 0:
            logger.error("Lidar:%d stop logger failed, the ret_code:%d.", handle, response.ret_code)
        else:
            logger.info("The lidar:%d stop logger succ.", handle)
            self.remove_device(handle)
            return
        self.stop_logger(handle, LogType.REAL_TIME, self.stop_callback)

    def _stop_all_loggers(self) -> None:
        if not self.enabled:
            return
        for handle in list(self._devices):
            self.stop_logger(handle, LogType.REAL_TIME, None)

    def destroy(self) -> None:
        """Stop all threads and loggers and make every saved file visible."""
        if self._destroyed:
            return
        self._cycle_enabled = False
        self._notify_cycle()
        if self._cycle_thread is not None:
            self._cycle_thread.join()
            self._cycle_thread = None

        for handler in self._handlers.values():
            handler.stop()
        self._handlers.clear()

        self._stop_all_loggers()
        if self.enabled:
            try:
                unhide_files(self.log_root_path)
            except (OSError, ValueError):
                logger.error("Change hidden files to normal files failed")
        self.enabled = False
        self._destroyed = True

    def __enter__(self) -> LoggerManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()