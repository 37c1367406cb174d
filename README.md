# lidarsdk

Host-side building blocks for working with networked lidar sensors:

- **Configuration**: `lidarsdk.config` reads the JSON configuration file that
  describes the lidars, the host network endpoints and device log collection
  (`load_config`, `parse_config`). Both return an `SdkConfig` and raise
  `ConfigError` when the document is missing or malformed.
- **Parameter checks**: `lidarsdk.params_check.check_params` raises
  `ParamsCheckError` when lidar IP addresses conflict, when a custom lidar has
  no address, or when a multicast address is outside the multicast range.
  For MID360 devices it also resets the lidar-side ports to their fixed
  values (56100, 56200, 56300, 56400, 56500) in place.
- **Device log collection**: `lidarsdk.logger_manager.LoggerManager` asks
  lidars to start and stop pushing logs and saves the pushed log files through
  `lidarsdk.logger_handler.LoggerHandler`. A background thread keeps the
  real-time and exception log directories within their size limits and
  removes the oldest files first. `lidarsdk.file_manager` holds the file
  system helpers used for this.
- **Firmware packages**: `lidarsdk.firmware.Firmware` reads a firmware file
  (header, firmware data, signature tail) and checks the header checksum
  with CRC-16/MCRF4XX (`crc16_mcrf4xx`).
- **Firmware upgrade**: `lidarsdk.upgrader.LidarUpgrader` is the state
  machine that upgrades one lidar; `lidarsdk.upgrade_manager.UpgradeManager`
  upgrades several lidars at once from one firmware file.

## Installation

```
pip install .
```

Python 3.10 or newer is required. The package has no runtime dependencies.

## Loading and checking a configuration

```python
from lidarsdk.config import ConfigError, load_config
from lidarsdk.params_check import ParamsCheckError, check_params

try:
    cfg = load_config("mid360_config.json")
    check_params(cfg.lidars, cfg.custom_lidars)
except (ConfigError, ParamsCheckError) as exc:
    print("bad configuration:", exc)
```

A minimal configuration:

```json
{
  "lidar_log_enable": true,
  "lidar_log_cache_size_MB": 500,
  "lidar_log_path": "./logs",
  "MID360": {
    "lidar_net_info": {
      "cmd_data_port": 56100, "push_msg_port": 56200,
      "point_data_port": 56300, "imu_data_port": 56400,
      "log_data_port": 56500
    },
    "host_net_info": [{
      "lidar_ip": ["192.168.1.12"],
      "host_ip": "192.168.1.5",
      "cmd_data_port": 56101, "push_msg_port": 56201,
      "point_data_port": 56301, "imu_data_port": 56401,
      "log_data_port": 56501
    }]
  }
}
```

The device sections are `HAP` and `MID360`. If `host_net_info` is an array,
each entry that lists `lidar_ip` addresses adds one entry to
`custom_lidars` per address; an entry without `lidar_ip`, or a single
`host_net_info` object, adds an entry to `lidars`. Either `host_ip` or
`cmd_data_ip` must be given; `host_ip` wins when both are. `multicast_ip`
is optional.

Without `lidar_log_enable`, logging is off. With it, `lidar_log_cache_size_MB`
and `lidar_log_path` are required. `master_sdk` defaults to `true`.

## Collecting device logs

`LoggerManager` sends commands through a function you supply,
`sender(handle, command_id, payload, callback)`, which returns a status code
(0 for success). Payloads are plain dictionaries.

```python
from lidarsdk.config import LoggerCfg
from lidarsdk.logger_handler import LogPacket
from lidarsdk.logger_manager import DeviceInfo, LoggerManager, LogType

def sender(handle, command_id, payload, callback):
    ...  # put the command on the wire
    return 0

with LoggerManager(sender) as manager:
    manager.init(LoggerCfg(lidar_log_enable=True, lidar_log_cache_size=400,
                           lidar_log_path="./logs"))
    manager.add_device(1, DeviceInfo(sn="SN-EXAMPLE-0001"))
    manager.start_logger(1, LogType.REAL_TIME)
    # For each log packet the lidar pushes:
    manager.handle_push(1, LogPacket(log_type=0, file_index=1, trans_index=0,
                                     data=b"...", flag=0b011))
```

The `flag` of a pushed packet carries bits: bit 0 asks for an
acknowledgement (sent through `sender`), bit 1 starts a new file, bit 2 ends
the current one; with neither, the data is appended. Files are written below
`<lidar_log_path>/lidar_log/type_<log_type>/` as hidden files named
`.<time>_<serial>_<log_type>_<file_index>.dat` and made visible when they
are closed. `destroy()` (also on leaving the `with` block) stops the
threads, asks known devices to stop real-time logging and unhides every
remaining file.

## Reading a firmware package

```python
from lidarsdk.firmware import Firmware, FirmwareError

with Firmware() as fw:
    try:
        fw.open("firmware.bin")
    except FirmwareError as exc:
        print("unusable firmware:", exc)
    else:
        print(fw.header.device_type, fw.header.firmware_length, len(fw.data))
```

`open` raises `FirmwareError` if the file is missing, too short, or its
header checksum does not match. `FirmwareHeader.unpack` and `pack` convert
the header to and from its bytes.

## Upgrading devices

The upgrade runs through an object you supply with these methods, each
returning a send status and later calling `callback(status, response)`:

- `start_upgrade(handle, request, callback)`
- `xfer_firmware(handle, request, callback)`
- `complete_xfer_firmware(handle, request, callback)`
- `get_upgrade_progress(handle, callback)`
- `request_reboot(handle, callback)`

A `response` needs a `ret_code` attribute (0 for success); progress
responses also need `progress` in percent.

```python
from lidarsdk.upgrade_manager import UpgradeManager

manager = UpgradeManager(commands)
manager.set_firmware_path("firmware.bin")
manager.set_progress_callback(lambda handle, p: print(handle, p.event.name, p.progress))
results = manager.upgrade([1, 2])   # {handle: succeeded}
```

`upgrade` starts every lidar at once and blocks until each one has finished
or failed. Timed-out requests are retried a limited number of times before
the upgrade of that lidar is marked as failed.

## What this package does not do

It does no networking of its own: it does not discover lidars, open sockets,
encode or decode the wire protocol, or receive point cloud and IMU data.
Commands and pushed log packets pass through the objects and functions the
caller supplies. There is no command-line tool.

## Running the tests

```
pip install ".[test]"
pytest
```