"""Simple config, PID and log files."""

import datetime
import os
from pathlib import Path

COMMENT_CHARS = ("#", ";", "/")
"""A line starting with any of these is a comment."""


class ConfigFileError(OSError):
    """A config file could not be read."""


# CONFIG FILES


def read_config_file(path: str | Path) -> dict[str, str]:
    """Read a config file of `key=value` lines into a dict.

    Blank lines and comment lines are ignored. A line with no `=` gives the key an empty value.
    The value may itself contain `=`; only the first one separates key from value.

    Raises:
        ConfigFileError: If the file can't be read.
    """
    path = Path(path).expanduser()
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigFileError(f"Unable to read config file {str(path)!r}: {exc}") from exc

    data: dict[str, str] = {}
    for line in text.split("\n"):
        line = line.strip()
        if not line or is_comment(line):
            continue
        key, _, value = line.partition("=")
        data[key.strip()] = value.strip()
    return data


def write_config_file(path: str | Path, data: dict[str, str]) -> int:
    """Write `data` to a file as `key=value` lines, preceded by a `timestamp` entry.

    Returns the number of lines written, including the timestamp."""
    lines = [f"timestamp={file_timestamp()}"]
    lines.extend(f"{key}={value}" for key, value in data.items())
    path = Path(path).expanduser()
    with path.open(mode="w") as file:
        for line in lines:
            file.write(line + "\n")
    return len(lines)


# PID FILES


def read_pid_file(path: str | Path) -> str:
    """Read a PID from a file, as a string. Return an empty string if there is no such file."""
    path = Path(path).expanduser()
    if not file_exists(path):
        return ""
    return path.read_text().strip()


def write_pid_to_file(path: str | Path) -> str:
    """Write the PID of this process to a file. Return the PID as a string."""
    pid_str = str(os.getpid())
    path = Path(path).expanduser()
    path.write_text(pid_str)
    return pid_str


# LOG FILES


def write_to_log_file(path: str | Path, text: str, add_timestamp: bool = False) -> None:
    """Append a line of text to a simple log file, creating the file if necessary."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open(mode="a") as file:
        if add_timestamp:
            file.write(file_timestamp() + " ")
        file.write(text + "\n")


# MISC


def file_exists(path: str | Path) -> bool:
    """Whether `path` exists and is not a directory."""
    path = Path(path).expanduser()
    return path.exists() and not path.is_dir()


def file_timestamp(now: datetime.datetime | None = None) -> str:
    """A string suitable for timestamping files, like `"2024-03-07 09:05:01"`. Local time."""
    now = now or datetime.datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S")


def is_comment(line: str) -> bool:
    return line.startswith(COMMENT_CHARS)
