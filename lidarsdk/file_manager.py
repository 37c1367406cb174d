"""File system helpers for the lidar log directories."""

from __future__ import annotations

import logging
import os
import stat
from os import PathLike

logger = logging.getLogger(__name__)

# Log file names start with a "%Y-%m-%d_%H-%M-%S" timestamp.
TIME_PREFIX_LENGTH = 19

StrPath = "str | PathLike[str]"


def dir_total_size(path: str | PathLike[str]) -> int:
    """Total size in bytes of a file, or of every file below a directory."""
    try:
        st = os.stat(path)
    except OSError:
        logger.error("get directory stat error: %s", path)
        return 0
    if stat.S_ISREG(st.st_mode):
        return st.st_size
    if not stat.S_ISDIR(st.st_mode):
        logger.warning("unknown directory type: %s", path)
        return 0
    try:
        with os.scandir(path) as entries:
            children = [entry.path for entry in entries]
    except OSError:
        logger.error("opendir: %s failed", path)
        return 0
    return sum(dir_total_size(child) for child in children)


def file_sort_key(name: str) -> str:
    """The timestamp prefix of a log file name, used to order files by age."""
    if not name:
        raise ValueError("file name is empty")
    return name[:TIME_PREFIX_LENGTH]


def _collect(path: str, found: list[tuple[str, str]]) -> None:
    with os.scandir(path) as entries:
        for entry in entries:
            if entry.is_symlink():
                continue
            if entry.is_file(follow_symlinks=False):
                if entry.name.startswith("."):
                    continue
                found.append((file_sort_key(entry.name), entry.name))
            elif entry.is_dir(follow_symlinks=False):
                try:
                    _collect(entry.path, found)
                except OSError:
                    logger.error("opendir: %s failed", entry.path)


def collect_file_names(path: str | PathLike[str]) -> list[tuple[str, str]]:
    """Visible regular files below path as (timestamp key, name), oldest first.

    Files with equal keys keep the order they were found in.
    """
    found: list[tuple[str, str]] = []
    _collect(os.fspath(path), found)
    return sorted(found, key=lambda item: item[0])


def unhide_file(dir_name: str | PathLike[str], file_name: str) -> bool:
    """Rename a hidden file to the name without its leading dot.

    An existing file of the visible name is replaced. Returns whether the
    rename took place.
    """
    if not file_name or not file_name.startswith("."):
        return False
    source = os.path.join(os.fspath(dir_name), file_name)
    if not os.path.exists(source):
        logger.warning("The file to be renamed : %s does not exist", file_name)
        return False
    visible = file_name[1:]
    target = os.path.join(os.fspath(dir_name), visible)
    if os.path.exists(target):
        try:
            os.remove(target)
        except OSError as exc:
            logger.warning("Failed to remove the existing file: %s. errno: %s", visible, exc.errno)
    try:
        os.rename(source, target)
    except OSError as exc:
        logger.warning("Rename hidden file %s failed. errno: %s", file_name, exc.errno)
        return False
    return True


def unhide_files(path: str | PathLike[str]) -> list[str]:
    """Unhide every hidden regular file below path; return the new paths."""
    path = os.fspath(path)
    if not path:
        raise ValueError("directory name is empty")
    renamed: list[str] = []
    with os.scandir(path) as entries:
        listing = list(entries)
    for entry in listing:
        if entry.is_symlink():
            continue
        if entry.is_file(follow_symlinks=False):
            if entry.name.startswith(".") and unhide_file(path, entry.name):
                renamed.append(os.path.join(path, entry.name[1:]))
        elif entry.is_dir(follow_symlinks=False):
            try:
                renamed.extend(unhide_files(entry.path))
            except OSError:
                logger.error("opendir: %s failed", entry.path)
    return renamed


def delete_hidden_files(path: str | PathLike[str]) -> list[str]:
    """Remove every hidden regular file below path; return the removed paths."""
    path = os.fspath(path)
    removed: list[str] = []
    with os.scandir(path) as entries:
        listing = list(entries)
    for entry in listing:
        if entry.is_symlink():
            continue
        if entry.is_file(follow_symlinks=False):
            if not entry.name.startswith("."):
                continue
            try:
                os.remove(entry.path)
            except OSError:
                continue
            removed.append(entry.path)
        elif entry.is_dir(follow_symlinks=False):
            try:
                removed.extend(delete_hidden_files(entry.path))
            except OSError:
                logger.error("opendir: %s failed", entry.path)
    return removed


def make_directory(path: str | PathLike[str]) -> bool:
    """Create one directory; return whether it was created."""
    try:
        os.mkdir(path, 0o777)
    except OSError:
        return False
    return True


def directory_exists(path: str | PathLike[str]) -> bool:
    """Whether anything exists at path."""
    return os.path.exists(path)