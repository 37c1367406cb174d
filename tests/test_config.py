import json

import pytest

from lidarsdk.config import (
    ConfigError,
    DeviceType,
    FrameworkCfg,
    HostNetInfo,
    LidarNetInfo,
    LoggerCfg,
    SdkConfig,
    load_config,
    parse_config,
)

LIDAR_PORTS = {
    "cmd_data_port": 56100,
    "push_msg_port": 56200,
    "point_data_port": 56300,
    "imu_data_port": 56400,
    "log_data_port": 56500,
}

HOST_PORTS = {
    "cmd_data_port": 56101,
    "push_msg_port": 56201,
    "point_data_port": 56301,
    "imu_data_port": 56401,
    "log_data_port": 56501,
}


def old_style(host_extra=None):
    host = {"host_ip": "192.168.1.5", **HOST_PORTS}
    host.update(host_extra or {})
    return {"lidar_net_info": dict(LIDAR_PORTS), "host_net_info": host}


def test_empty_document_gives_defaults():
    config = parse_config({})
    assert config == SdkConfig()
    assert config.framework.master_sdk is True
    assert config.logger == LoggerCfg(False, 0, "./")


def test_master_sdk_false():
    assert parse_config({"master_sdk": False}).framework == FrameworkCfg(master_sdk=False)


def test_master_sdk_must_be_bool():
    with pytest.raises(ConfigError):
        parse_config({"master_sdk": 1})


def test_logger_enabled():
    config = parse_config(
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": 500, "lidar_log_path": "/tmp/logs"}
    )
    assert config.logger == LoggerCfg(True, 500, "/tmp/logs")


def test_logger_path_without_enable():
    config = parse_config({"lidar_log_path": "/var/log"})
    assert config.logger == LoggerCfg(False, 0, "/var/log")


@pytest.mark.parametrize(
    "doc",
    [
        {"lidar_log_enable": "yes", "lidar_log_cache_size_MB": 5, "lidar_log_path": "x"},
        {"lidar_log_enable": True, "lidar_log_path": "x"},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": -1, "lidar_log_path": "x"},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": 1.5, "lidar_log_path": "x"},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": 5},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": 5, "lidar_log_path": 3},
    ],
)
def test_logger_errors(doc):
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_old_style_mid360():
    config = parse_config({"MID360": old_style({"multicast_ip": "224.1.1.5"})})
    assert config.custom_lidars == []
    assert len(config.lidars) == 1
    cfg = config.lidars[0]
    assert cfg.device_type is DeviceType.MID360
    assert cfg.lidar_net_info == LidarNetInfo(**LIDAR_PORTS)
    assert cfg.host_net_info == HostNetInfo(
        host_ip="192.168.1.5", multicast_ip="224.1.1.5", **HOST_PORTS
    )


def test_hap_parsed_before_mid360():
    config = parse_config({"MID360": old_style(), "HAP": old_style()})
    assert [c.device_type for c in config.lidars] == [DeviceType.HAP, DeviceType.MID360]


def test_new_style_with_lidar_ips():
    host = {"host_ip": "192.168.1.5", "lidar_ip": ["192.168.1.10", "192.168.1.11"], **HOST_PORTS}
    plain = {"cmd_data_ip": "192.168.1.6", **HOST_PORTS}
    doc = {"HAP": {"lidar_net_info": dict(LIDAR_PORTS), "host_net_info": [host, plain]}}
    config = parse_config(doc)
    assert [c.lidar_net_info.lidar_ipaddr for c in config.custom_lidars] == [
        "192.168.1.10",
        "192.168.1.11",
    ]
    assert all(c.host_net_info.host_ip == "192.168.1.5" for c in config.custom_lidars)
    assert len(config.lidars) == 1
    assert config.lidars[0].host_net_info.host_ip == "192.168.1.6"
    assert config.lidars[0].lidar_net_info.lidar_ipaddr == ""


def test_host_ip_wins_over_cmd_data_ip():
    config = parse_config({"HAP": old_style({"cmd_data_ip": "10.0.0.2"})})
    assert config.lidars[0].host_net_info.host_ip == "192.168.1.5"


def test_lidar_ip_entries_must_be_strings():
    host = {"host_ip": "192.168.1.5", "lidar_ip": [7], **HOST_PORTS}
    with pytest.raises(ConfigError):
        parse_config({"HAP": {"lidar_net_info": dict(LIDAR_PORTS), "host_net_info": [host]}})


def test_missing_host_net_info():
    with pytest.raises(ConfigError):
        parse_config({"HAP": {"lidar_net_info": dict(LIDAR_PORTS)}})


def test_non_object_device_section_is_ignored():
    assert parse_config({"HAP": [1, 2]}).lidars == []


@pytest.mark.parametrize("port", sorted(LIDAR_PORTS))
def test_missing_lidar_port(port):
    doc = old_style()
    del doc["lidar_net_info"][port]
    with pytest.raises(ConfigError):
        parse_config({"MID360": doc})


@pytest.mark.parametrize("port", sorted(HOST_PORTS))
def test_missing_host_port(port):
    doc = old_style()
    del doc["host_net_info"][port]
    with pytest.raises(ConfigError):
        parse_config({"MID360": doc})


def test_host_without_any_ip():
    doc = old_style()
    del doc["host_net_info"]["host_ip"]
    with pytest.raises(ConfigError):
        parse_config({"MID360": doc})


@pytest.mark.parametrize(
    "extra", [{"host_ip": 1}, {"cmd_data_ip": None}, {"multicast_ip": 224}]
)
def test_host_ip_fields_must_be_strings(extra):
    with pytest.raises(ConfigError):
        parse_config({"MID360": old_style(extra)})


def test_port_must_not_be_bool():
    doc = old_style()
    doc["lidar_net_info"]["cmd_data_port"] = True
    with pytest.raises(ConfigError):
        parse_config({"MID360": doc})


def test_document_must_be_object():
    with pytest.raises(ConfigError):
        parse_config([1, 2, 3])


def test_load_config_round_trip(tmp_path):
    doc = {"master_sdk": True, "HAP": old_style()}
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps(doc))
    assert load_config(path) == parse_config(doc)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.json")


def test_load_config_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(path)