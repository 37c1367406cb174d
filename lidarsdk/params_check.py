"""Consistency checks on a parsed lidar configuration."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from .config import DeviceType, LidarCfg, LidarNetInfo

logger = logging.getLogger(__name__)

MID360_CMD_PORT = 56100
MID360_PUSH_MSG_PORT = 56200
MID360_POINT_CLOUD_PORT = 56300
MID360_IMU_DATA_PORT = 56400
MID360_LOG_PORT = 56500

_MID360_PORTS = (
    ("cmd_data_port", MID360_CMD_PORT, "command data"),
    ("push_msg_port", MID360_PUSH_MSG_PORT, "push msg"),
    ("point_data_port", MID360_POINT_CLOUD_PORT, "point cloud"),
    ("imu_data_port", MID360_IMU_DATA_PORT, "imu data"),
    ("log_data_port", MID360_LOG_PORT, "log"),
)

_MULTICAST_LOW = 0xE0000000
_MULTICAST_HIGH = 0xEFFFFFFF


class ParamsCheckError(ValueError):
    """Raised when a lidar configuration fails a consistency check."""


def ip_to_bytes(ip: str) -> bytes:
    """Convert a dotted IPv4 address into its four bytes."""
    parts = ip.split(".")
    if len(parts) != 4:
        raise ParamsCheckError(f"invalid ip address: {ip!r}")
    try:
        values = [int(part, 10) for part in parts]
    except ValueError as exc:
        raise ParamsCheckError(f"invalid ip address: {ip!r}") from exc
    if any(not 0 <= value <= 255 for value in values):
        raise ParamsCheckError(f"invalid ip address: {ip!r}")
    return bytes(values)


def _check_lidar_ips(lidars: Iterable[LidarCfg], custom_lidars: Iterable[LidarCfg]) -> None:
    seen: set[str] = set()
    for cfg in lidars:
        ip = cfg.lidar_net_info.lidar_ipaddr
        if not ip:
            continue
        if ip in seen:
            raise ParamsCheckError(f"lidar ip conflict, the lidar ip: {ip}")
        seen.add(ip)

    for cfg in custom_lidars:
        ip = cfg.lidar_net_info.lidar_ipaddr
        if not ip:
            raise ParamsCheckError("custom lidar ipaddr is empty")
        if ip in seen:
            raise ParamsCheckError(f"lidar ip conflict, the lidar ip: {ip}")
        seen.add(ip)


def _fix_ports(device_type: int, net_info: LidarNetInfo) -> None:
    if device_type != DeviceType.MID360:
        return
    for attr, required, label in _MID360_PORTS:
        if getattr(net_info, attr) != required:
            logger.error("Mid360 lidar %s port must be %d", label, required)
            setattr(net_info, attr, required)


def _check_multicast(cfg: LidarCfg, describe: str) -> None:
    multicast_ip = cfg.host_net_info.multicast_ip
    if not multicast_ip:
        logger.info("%s point cloud data and IMU data unicast is enabled.", describe)
        return
    net_ip = int.from_bytes(ip_to_bytes(multicast_ip), "big")
    if net_ip <= _MULTICAST_LOW or net_ip > _MULTICAST_HIGH:
        raise ParamsCheckError(f"lidar multicast ip error: {multicast_ip}")
    logger.info("%s point cloud and IMU data multicast ip: %s", describe, multicast_ip)


def check_params(
    lidars: Sequence[LidarCfg] | None, custom_lidars: Sequence[LidarCfg] | None
) -> None:
    """Validate lidar configurations, correcting Mid360 ports in place.

    Raises ParamsCheckError when addresses conflict, a custom lidar has no
    address, or a multicast address is outside the multicast range.
    """
    if lidars is None and custom_lidars is None:
        raise ParamsCheckError("all params are missing")
    lidars = list(lidars or [])
    custom_lidars = list(custom_lidars or [])
    if not lidars and not custom_lidars:
        raise ParamsCheckError("all livox lidars config is empty")

    _check_lidar_ips(lidars, custom_lidars)

    for cfg in (*lidars, *custom_lidars):
        _fix_ports(cfg.device_type, cfg.lidar_net_info)

    for cfg in lidars:
        _check_multicast(cfg, f"Device type:{int(cfg.device_type)}")
    for cfg in custom_lidars:
        _check_multicast(cfg, f"Lidar ip:{cfg.lidar_net_info.lidar_ipaddr}")