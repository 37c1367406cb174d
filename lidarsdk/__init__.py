"""Configuration checks, device log collection and firmware upgrade for networked lidars."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "params_check",
    "file_manager",
    "logger_handler",
    "firmware",
    "logger_manager",
    "upgrader",
    "upgrade_manager",
]