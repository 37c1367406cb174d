import pytest

from lidarsdk.firmware import (
    ENL_FILE_VERSION_V3,
    MIN_FILE_SIZE,
    TAIL_SIZE,
    Firmware,
    FirmwareError,
    FirmwareHeader,
    crc16_mcrf4xx,
)


def _header(length, **kwargs):
    header = FirmwareHeader(
        file_version=ENL_FILE_VERSION_V3,
        firmware_version=0x01020304,
        firmware_length=length,
        firmware_type=1,
        device_type=10,
        encrypt_type=2,
        checksum_type=1,
        checksum_length=16,
        checksum=bytes(range(16)) + bytes(112),
        hw_whitelist=b"\x01" * 128,
        modify_time=1234567890,
        **kwargs,
    )
    header.header_checksum = header.computed_checksum()
    return header


def _write_firmware(path, payload, header=None, tail=b"S" * TAIL_SIZE):
    header = header or _header(len(payload))
    path.write_bytes(header.pack() + payload + tail)
    return header


def test_crc16_mcrf4xx_check_value():
    assert crc16_mcrf4xx(b"123456789") == 0x6F91


def test_crc16_of_empty_is_initial_value():
    assert crc16_mcrf4xx(b"") == 0xFFFF


def test_header_size():
    assert FirmwareHeader.SIZE == 286
    assert len(FirmwareHeader().pack()) == FirmwareHeader.SIZE


def test_header_round_trip():
    header = _header(4096)
    assert FirmwareHeader.unpack(header.pack()) == header


def test_header_unpack_too_short():
    with pytest.raises(FirmwareError):
        FirmwareHeader.unpack(b"\x00" * 10)


def test_open_reads_everything(tmp_path):
    payload = bytes(range(256)) * 4
    path = tmp_path / "fw.bin"
    header = _write_firmware(path, payload)
    with Firmware() as fw:
        fw.open(path)
        assert fw.header == header
        assert fw.data == payload
        assert fw.tail == b"S" * TAIL_SIZE
        assert fw.package_version == ENL_FILE_VERSION_V3
        assert fw.file_size == FirmwareHeader.SIZE + len(payload) + TAIL_SIZE


def test_open_rejects_bad_checksum(tmp_path):
    header = _header(8)
    header.header_checksum ^= 0x1
    path = tmp_path / "bad.bin"
    _write_firmware(path, b"12345678", header=header)
    with pytest.raises(FirmwareError):
        Firmware().open(path)


def test_open_rejects_small_file(tmp_path):
    path = tmp_path / "small.bin"
    path.write_bytes(b"\x00" * (MIN_FILE_SIZE - 1))
    with pytest.raises(FirmwareError):
        Firmware().open(path)


def test_open_missing_file(tmp_path):
    with pytest.raises(FirmwareError):
        Firmware().open(tmp_path / "missing.bin")


def test_open_none_path():
    with pytest.raises(FirmwareError):
        Firmware().open(None)


def test_data_kept_after_close(tmp_path):
    payload = b"firmware-bytes"
    path = tmp_path / "fw.bin"
    _write_firmware(path, payload)
    fw = Firmware()
    fw.open(path)
    fw.close()
    assert fw.data == payload


def test_short_data_is_tolerated(tmp_path):
    header = _header(1000)
    path = tmp_path / "short.bin"
    path.write_bytes(header.pack() + b"x" * 100)
    fw = Firmware()
    fw.open(path)
    fw.close()
    assert fw.data == b"x" * 100
    assert fw.tail == b""