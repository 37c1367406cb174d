from types import SimpleNamespace

import pytest

from lidarsdk.firmware import FirmwareError, FirmwareHeader
from lidarsdk.upgrade_manager import UpgradeManager
from lidarsdk.upgrader import FsmEvent

FIRMWARE_DATA = bytes(range(40))


class FakeCommands:
    """Answers every command at once, successfully unless told otherwise."""

    def __init__(self, start_ret_code=0):
        self.start_ret_code = start_ret_code
        self.start_requests = []
        self.xfer_requests = []
        self.reboots = []

    def start_upgrade(self, handle, request, callback):
        self.start_requests.append((handle, request))
        callback(0, SimpleNamespace(ret_code=self.start_ret_code))
        return 0

    def xfer_firmware(self, handle, request, callback):
        self.xfer_requests.append((handle, request))
        callback(0, SimpleNamespace(ret_code=0))
        return 0

    def complete_xfer_firmware(self, handle, request, callback):
        callback(0, SimpleNamespace(ret_code=0))
        return 0

    def get_upgrade_progress(self, handle, callback):
        callback(0, SimpleNamespace(ret_code=0, progress=100))
        return 0

    def request_reboot(self, handle, callback):
        self.reboots.append(handle)
        callback(0, SimpleNamespace(ret_code=0))
        return 0


@pytest.fixture
def firmware_path(tmp_path):
    header = FirmwareHeader(
        file_version=0x02000000,
        firmware_length=len(FIRMWARE_DATA),
        device_type=10,
        checksum_length=16,
        checksum=bytes(range(16)) + bytes(112),
    )
    header.header_checksum = header.computed_checksum()
    path = tmp_path / "fw.bin"
    path.write_bytes(header.pack() + FIRMWARE_DATA + bytes(16))
    return path


def test_missing_firmware_file_raises(tmp_path):
    manager = UpgradeManager(FakeCommands())
    with pytest.raises(FirmwareError):
        manager.set_firmware_path(tmp_path / "missing.bin")


def test_upgrade_without_firmware_raises():
    manager = UpgradeManager(FakeCommands())
    with pytest.raises(FirmwareError):
        manager.upgrade([1])


def test_upgrade_no_handles_returns_empty(firmware_path):
    manager = UpgradeManager(FakeCommands())
    manager.set_firmware_path(firmware_path)
    assert manager.upgrade([]) == {}


def test_upgrade_succeeds_for_every_handle(firmware_path):
    commands = FakeCommands()
    manager = UpgradeManager(commands)
    manager.set_firmware_path(firmware_path)
    events = []
    manager.set_progress_callback(lambda handle, progress: events.append((handle, progress)))

    result = manager.upgrade([1, 2])

    assert result == {1: True, 2: True}
    assert sorted(commands.reboots) == [1, 2]
    for handle in (1, 2):
        handle_events = [p.event for h, p in events if h == handle]
        assert FsmEvent.REINIT in handle_events
        assert FsmEvent.REQUEST_UPGRADE in handle_events


def test_firmware_data_is_sent(firmware_path):
    commands = FakeCommands()
    manager = UpgradeManager(commands)
    manager.set_firmware_path(firmware_path)
    manager.upgrade([7])
    sent = b"".join(req["data"] for _, req in commands.xfer_requests)
    assert sent == FIRMWARE_DATA
    assert commands.start_requests[0][1]["firmware_length"] == len(FIRMWARE_DATA)
    assert commands.start_requests[0][1]["dev_type"] == 10


def test_upgrade_without_callback(firmware_path):
    manager = UpgradeManager(FakeCommands())
    manager.set_firmware_path(firmware_path)
    assert manager.upgrade([3]) == {3: True}
    assert manager.firmware.data == FIRMWARE_DATA