"""Watch a SmartParallel and log every frame it sends.

Settings come from `config.json` in the current folder. Run once with `--write-config` to create it."""

import argparse
import getpass
import os
import platform
import sys
from pathlib import Path

import serial
from msu_ssc import ssc_log

from speculatrix.config import MonitorConfig
from speculatrix.email_util import EmailError
from speculatrix.email_util import EmailMessage
from speculatrix.email_util import read_email_config
from speculatrix.file_util import read_pid_file
from speculatrix.file_util import write_pid_to_file
from speculatrix.file_util import write_to_log_file
from speculatrix.smart_parallel import FrameStatus
from speculatrix.smart_parallel import SmartParallel

logger = ssc_log.getChild("monitor")


def handle_exception(exc_type, exc_value, exc_traceback):
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger.critical(
        "Fatal exception occurred, killing the program immediately.", exc_info=(exc_type, exc_value, exc_traceback)
    )


def send_alert(config: MonitorConfig, text: str) -> None:
    """Email `text` to the alert recipient, if email alerts are configured. Never raises."""
    if not config.email_config_path or not config.EMAIL_ALERT_RECIPIENT:
        return
    try:
        email_config = read_email_config(config.email_config_path)
        message = EmailMessage()
        message.set_sender(email_config.user)
        message.set_sender_name("SmartParallel monitor")
        message.add_recipient(config.EMAIL_ALERT_RECIPIENT)
        message.set_subject(f"SmartParallel monitor on {platform.node()}")
        message.body_set(text)
        message.send_email(email_config, logger=logger)
    except EmailError as exc:
        logger.error(f"Unable to send alert email: {exc}", exc_info=exc)


def remove_own_pid_file(path: Path) -> bool:
    """Delete the PID file, but only if it still holds this process's PID. Return whether it was deleted."""
    recorded_pid = read_pid_file(path)
    if recorded_pid != str(os.getpid()):
        if recorded_pid:
            logger.warning(f"PID file {str(path)!r} now belongs to PID {recorded_pid}. Leaving it alone.")
        return False
    path.unlink(missing_ok=True)
    return True


def monitor(config: MonitorConfig) -> int:
    existing_pid = read_pid_file(config.pid_file_path)
    if existing_pid:
        logger.warning(f"PID file {str(config.pid_file_path)!r} already exists (PID {existing_pid}). Overwriting.")
    pid = write_pid_to_file(config.pid_file_path)
    logger.info(f"Running as PID {pid}")

    logger.info(f"Opening serial port {config.SERIAL_PORT} at {config.BAUD_RATE} baud")
    try:
        smart_parallel = SmartParallel(
            port=config.SERIAL_PORT,
            baudrate=config.BAUD_RATE,
            timeout=config.READ_TIMEOUT,
            poll_delay=config.POLL_DELAY,
            logger=logger.getChild("smart_parallel"),
        )
    except serial.SerialException as exc:
        logger.error(f"Failed to open serial port. {exc}", exc_info=exc)
        send_alert(config, f"Failed to open serial port {config.SERIAL_PORT}: {exc}")
        return 1

    with smart_parallel:
        if not smart_parallel.ping():
            logger.warning("SmartParallel did not answer a ping. Listening anyway.")
        else:
            logger.info(f"SmartParallel state: {smart_parallel.report_state()!r}")

        while True:
            frame = smart_parallel.read_frame()
            if frame.length:
                write_to_log_file(config.frame_log_file_path, frame.text, add_timestamp=True)
            if frame.status is FrameStatus.TRUNCATED:
                logger.warning(f"Frame truncated at {frame.length:,} bytes")
            elif frame.status in (FrameStatus.STREAM_CLOSED, FrameStatus.STREAM_ERROR):
                logger.error(f"Serial port {config.SERIAL_PORT} failed: {frame.status.name} {frame.error}")
                send_alert(config, f"Serial port {config.SERIAL_PORT} failed: {frame.status.name} {frame.error}")
                return 1
            else:
                logger.info(f"Received {frame.length:,} bytes: {frame.text!r}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, default=Path("./config.json"), help="Path to the JSON config file")
    parser.add_argument("--write-config", action="store_true", help="Write a default config file and exit")
    args = parser.parse_args(argv)

    if args.write_config:
        MonitorConfig().to_json(args.config)
        print(f"Wrote default config to {str(args.config)!r}")
        return 0

    config = MonitorConfig.from_json(args.config)
    ssc_log.init(
        level=config.LOG_LEVEL,
        plain_text_file_path=config.log_folder_path / ssc_log.utc_filename_timestamp(prefix="monitor"),
    )

    logger.debug(f"Python info: {sys.executable=}")
    logger.debug(f"Python info: {sys.version=}")
    logger.debug(f"Invocation info: {sys.argv=} {os.getcwd()=}")
    logger.debug(f"Platform info: {platform.platform()=} {platform.node()=} {getpass.getuser()=}")
    for key, value in config.asdict().items():
        logger.debug(f"  Config entry: {key!r}={value!r}")

    try:
        return monitor(config)
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return 0
    finally:
        remove_own_pid_file(config.pid_file_path)


if __name__ == "__main__":
    sys.excepthook = handle_exception
    sys.exit(main())
