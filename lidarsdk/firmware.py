"""Reading and checking of encrypted lidar firmware files."""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass, field, fields
from typing import BinaryIO, ClassVar

logger = logging.getLogger(__name__)

MD5_SIGNATURE_LENGTH = 16
ENL_FILE_VERSION_V2 = 0x02000000
ENL_FILE_VERSION_V3 = 0x03000000

GENERAL_TRY_COUNT_LIMIT = 10
GET_PROCESS_TRY_COUNT_LIMIT = 30
GET_PROGRESS_TRY_COUNT_LIMIT = 10

# Return codes of a start-upgrade request.
EVERYTHING_IS_OK = 0
FIRMWARE_OUT_OF_LENGTH = 1
SYSTEM_IS_NOT_READY = 2
FIRMWARE_TYPE_MISMATCH = 3
UPGRADE_STATE_MISMATCH = 4

_HEADER_STRUCT = struct.Struct("<IIIBBB2sBH128s128sQH")
TAIL_SIZE = MD5_SIGNATURE_LENGTH


class FirmwareError(Exception):
    """Raised when a firmware file can not be opened or is malformed."""


def crc16_mcrf4xx(data: bytes) -> int:
    """CRC-16/MCRF4XX: reflected polynomial 0x1021, initial value 0xFFFF."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            crc = (crc >> 1) ^ 0x8408 if crc & 1 else crc >> 1
    return crc


@dataclass
class FirmwareHeader:
    """The fixed-size header at the start of a firmware file."""

    SIZE: ClassVar[int] = _HEADER_STRUCT.size

    file_version: int = 0
    firmware_version: int = 0
    firmware_length: int = 0
    firmware_type: int = 0
    device_type: int = 0
    encrypt_type: int = 0
    rsvd: bytes = bytes(2)
    checksum_type: int = 0
    checksum_length: int = 0
    checksum: bytes = field(default=bytes(128))
    hw_whitelist: bytes = field(default=bytes(128))
    modify_time: int = 0
    header_checksum: int = 0

    @classmethod
    def unpack(cls, data: bytes) -> FirmwareHeader:
        """Decode a header from the first SIZE bytes of data."""
        if len(data) < cls.SIZE:
            raise FirmwareError(f"firmware header needs {cls.SIZE} bytes, got {len(data)}")
        values = _HEADER_STRUCT.unpack_from(data)
        return cls(*values)

    def pack(self) -> bytes:
        """Encode the header into its SIZE bytes."""
        values = [getattr(self, f.name) for f in fields(self)]
        return _HEADER_STRUCT.pack(*values)

    def computed_checksum(self) -> int:
        """CRC of the header bytes that precede the header checksum."""
        return crc16_mcrf4xx(self.pack()[:-2])


MIN_FILE_SIZE = FirmwareHeader.SIZE + TAIL_SIZE + 1


class Firmware:
    """A firmware file: header, raw firmware data and signature tail."""

    def __init__(self) -> None:
        self.header = FirmwareHeader()
        self.data = b""
        self.tail = bytes(TAIL_SIZE)
        self.file_size = 0
        self._file: BinaryIO | None = None

    def __enter__(self) -> Firmware:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def package_version(self) -> int:
        """The file format version from the header."""
        return self.header.file_version

    def open(self, path: str | os.PathLike[str] | None) -> None:
        """Open a firmware file and read it, checking the header checksum."""
        if path is None:
            raise FirmwareError("no firmware path given")
        self.close()
        try:
            stream = open(path, "rb")
        except OSError as exc:
            raise FirmwareError(f"Open {os.fspath(path)} firmware file fail") from exc
        try:
            self._read(stream)
        except BaseException:
            stream.close()
            raise
        self._file = stream

    def _read(self, stream: BinaryIO) -> None:
        self.file_size = os.fstat(stream.fileno()).st_size
        if self.file_size < MIN_FILE_SIZE:
            raise FirmwareError("Firmware file size is too small")

        raw = stream.read(FirmwareHeader.SIZE)
        header = FirmwareHeader.unpack(raw)
        logger.info("This firmware is used for device[%d].", header.device_type)
        crc = crc16_mcrf4xx(raw[:-2])
        if crc != header.header_checksum:
            raise FirmwareError(
                f"Header checksum[{crc:04x} {header.header_checksum:04x}] error"
            )
        self.header = header

        logger.info("Firmware raw data size : %d", header.firmware_length)
        self.data = stream.read(header.firmware_length)
        self.tail = stream.read(TAIL_SIZE)
        if len(self.data) == header.firmware_length and len(self.tail) == TAIL_SIZE:
            logger.info("All firmware data have be read successfully.")
        else:
            logger.warning("Read firmware fail[%d]!", len(self.data) + len(self.tail))

    def close(self) -> None:
        """Close the underlying file; data already read stays available."""
        if self._file is not None:
            self._file.close()
            self._file = None