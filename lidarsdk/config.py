"""Loading of the lidar SDK JSON configuration file."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from os import PathLike
from typing import Any, Mapping

logger = logging.getLogger(__name__)

_UINT32_MAX = 0xFFFFFFFF

_PORT_NAMES = (
    "cmd_data_port",
    "push_msg_port",
    "point_data_port",
    "imu_data_port",
    "log_data_port",
)


class DeviceType(IntEnum):
    """Lidar device types that may appear in a configuration file."""

    MID360 = 9
    HAP = 10


class ConfigError(ValueError):
    """Raised when a configuration document is missing or malformed."""


@dataclass
class LidarNetInfo:
    """Ports on the lidar side, plus the lidar address for custom entries."""

    cmd_data_port: int = 0
    push_msg_port: int = 0
    point_data_port: int = 0
    imu_data_port: int = 0
    log_data_port: int = 0
    lidar_ipaddr: str = ""


@dataclass
class HostNetInfo:
    """Addresses and ports on the host side."""

    host_ip: str = ""
    multicast_ip: str = ""
    cmd_data_port: int = 0
    push_msg_port: int = 0
    point_data_port: int = 0
    imu_data_port: int = 0
    log_data_port: int = 0


@dataclass
class LidarCfg:
    """Network configuration for one lidar, or one group of lidars."""

    device_type: DeviceType
    lidar_net_info: LidarNetInfo = field(default_factory=LidarNetInfo)
    host_net_info: HostNetInfo = field(default_factory=HostNetInfo)


@dataclass
class LoggerCfg:
    """Settings for saving the logs that lidars push to the host."""

    lidar_log_enable: bool = False
    lidar_log_cache_size: int = 0
    lidar_log_path: str = "./"


@dataclass
class FrameworkCfg:
    """Settings for the SDK itself."""

    master_sdk: bool = True


@dataclass
class SdkConfig:
    """Everything a configuration file describes."""

    lidars: list[LidarCfg] = field(default_factory=list)
    custom_lidars: list[LidarCfg] = field(default_factory=list)
    logger: LoggerCfg = field(default_factory=LoggerCfg)
    framework: FrameworkCfg = field(default_factory=FrameworkCfg)


def _is_uint(value: Any) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= _UINT32_MAX
    )


def _parse_framework(doc: Mapping[str, Any]) -> FrameworkCfg:
    if "master_sdk" not in doc:
        logger.info("set master/slave sdk to master sdk by default")
        return FrameworkCfg(master_sdk=True)
    master = doc["master_sdk"]
    if not isinstance(master, bool):
        raise ConfigError("master_sdk must be a boolean")
    logger.info("set master/slave sdk to %s sdk", "master" if master else "slave")
    return FrameworkCfg(master_sdk=master)


def _parse_logger(doc: Mapping[str, Any]) -> LoggerCfg:
    if "lidar_log_enable" not in doc:
        cfg = LoggerCfg()
        path = doc.get("lidar_log_path")
        if isinstance(path, str):
            cfg.lidar_log_path = path
        logger.info("Livox lidar logger disable.")
        return cfg

    enable = doc["lidar_log_enable"]
    if not isinstance(enable, bool):
        raise ConfigError("lidar_log_enable must be a boolean")
    cache_size = doc.get("lidar_log_cache_size_MB")
    if not _is_uint(cache_size):
        raise ConfigError("lidar_log_cache_size_MB is missing or not an unsigned integer")
    path = doc.get("lidar_log_path")
    if not isinstance(path, str):
        raise ConfigError("lidar_log_path is missing or not a string")
    logger.info(
        "Lidar log cfg, lidar_log_enable:%s, lidar_log_cache_size_MB:%s, lidar_log_path:%s",
        enable, cache_size, path,
    )
    return LoggerCfg(lidar_log_enable=enable, lidar_log_cache_size=cache_size, lidar_log_path=path)


def _parse_ports(section: Mapping[str, Any], where: str) -> dict[str, int]:
    ports = {}
    for name in _PORT_NAMES:
        value = section.get(name)
        if not _is_uint(value):
            raise ConfigError(f"{where}: {name} is missing or not an unsigned integer")
        ports[name] = value
    return ports


def _parse_lidar_net_info(device: Mapping[str, Any], lidar_ip: str) -> LidarNetInfo:
    section = device.get("lidar_net_info")
    if not isinstance(section, dict):
        raise ConfigError("lidar_net_info is missing or not an object")
    return LidarNetInfo(lidar_ipaddr=lidar_ip, **_parse_ports(section, "lidar_net_info"))


def _parse_host_net_info(section: Any) -> HostNetInfo:
    if not isinstance(section, dict):
        raise ConfigError("host_net_info entry is not an object")
    if "host_ip" not in section and "cmd_data_ip" not in section:
        raise ConfigError("host_net_info has neither host_ip nor cmd_data_ip")
    for key in ("host_ip", "cmd_data_ip"):
        if key in section and not isinstance(section[key], str):
            raise ConfigError(f"host_net_info: {key} is not a string")
    # host_ip takes precedence over cmd_data_ip when both are given.
    host_ip = section.get("host_ip", section.get("cmd_data_ip"))

    multicast_ip = section.get("multicast_ip", "")
    if not isinstance(multicast_ip, str):
        raise ConfigError("host_net_info: multicast_ip is not a string")

    return HostNetInfo(
        host_ip=host_ip,
        multicast_ip=multicast_ip,
        **_parse_ports(section, "host_net_info"),
    )


def _make_cfg(
    device: Mapping[str, Any], host_section: Any, device_type: DeviceType, lidar_ip: str = ""
) -> LidarCfg:
    return LidarCfg(
        device_type=device_type,
        lidar_net_info=_parse_lidar_net_info(device, lidar_ip),
        host_net_info=_parse_host_net_info(host_section),
    )


def _parse_device(device: Mapping[str, Any], device_type: DeviceType, config: SdkConfig) -> None:
    hosts = device.get("host_net_info")
    if isinstance(hosts, list):
        for entry in hosts:
            lidar_ips = entry.get("lidar_ip") if isinstance(entry, dict) else None
            if not isinstance(lidar_ips, list):
                config.lidars.append(_make_cfg(device, entry, device_type))
                continue
            for lidar_ip in lidar_ips:
                if not isinstance(lidar_ip, str):
                    raise ConfigError("lidar_ip entries must be strings")
                config.custom_lidars.append(_make_cfg(device, entry, device_type, lidar_ip))
    elif isinstance(hosts, dict):
        config.lidars.append(_make_cfg(device, hosts, device_type))
    else:
        raise ConfigError("host_net_info is missing or neither an object nor an array")


def parse_config(document: Any) -> SdkConfig:
    """Build an SdkConfig from an already decoded JSON document."""
    if not isinstance(document, dict):
        raise ConfigError("configuration document must be a JSON object")
    config = SdkConfig(
        framework=_parse_framework(document),
        logger=_parse_logger(document),
    )
    for device_type in (DeviceType.HAP, DeviceType.MID360):
        section = document.get(device_type.name)
        if isinstance(section, dict):
            _parse_device(section, device_type, config)
    return config


def load_config(path: str | PathLike[str]) -> SdkConfig:
    """Read and parse a JSON configuration file."""
    try:
        with open(path, "rb") as handle:
            document = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"can not open json config file: {path}") from exc
    except ValueError as exc:
        raise ConfigError(f"config file {path} is not valid JSON") from exc
    return parse_config(document)