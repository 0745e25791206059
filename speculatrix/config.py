import dataclasses
import json
from pathlib import Path
from typing import Any
from typing import Literal


@dataclasses.dataclass
class MonitorConfig:
    """Container for the SmartParallel monitor's config."""

    SERIAL_PORT: str = "/dev/ttyUSB0"
    BAUD_RATE: int = 9600
    READ_TIMEOUT: float = 0.1
    """pyserial read timeout, in seconds."""
    POLL_DELAY: float = 0.001
    """Sleep between empty reads, in seconds."""
    LOG_FOLDER_PATH_STR: str = "./logs"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    PID_FILE_PATH_STR: str = "./smart_parallel_monitor.pid"
    FRAME_LOG_FILE_PATH_STR: str = "./logs/frames.log"
    EMAIL_CONFIG_PATH_STR: str = ""
    """Email an alert when the port fails, using this config file. Empty means don't."""
    EMAIL_ALERT_RECIPIENT: str = ""

    @property
    def log_folder_path(self) -> Path:
        return Path(self.LOG_FOLDER_PATH_STR).expanduser().resolve()

    @property
    def pid_file_path(self) -> Path:
        return Path(self.PID_FILE_PATH_STR).expanduser().resolve()

    @property
    def frame_log_file_path(self) -> Path:
        return Path(self.FRAME_LOG_FILE_PATH_STR).expanduser().resolve()

    @property
    def email_config_path(self) -> Path | None:
        if not self.EMAIL_CONFIG_PATH_STR:
            return None
        return Path(self.EMAIL_CONFIG_PATH_STR).expanduser().resolve()

    def asdict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def to_json(self, path: Path) -> None:
        """Save the config to a JSON file."""
        comment = "Modify the things in 'config' to change the configuration."
        data = {
            "comment": comment,
            "config": self.asdict(),
        }
        Path(path).write_text(json.dumps(data, indent=4))

    @classmethod
    def from_json(cls, path: Path = Path("./config.json")) -> "MonitorConfig":
        """Load a config from a JSON file. Anything missing from the file keeps its default."""
        path = Path(path).expanduser().resolve()
        json_dict = json.loads(path.read_text())
        config_dict = json_dict["config"]
        return cls(**config_dict)
