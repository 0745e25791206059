import enum
import time
from typing import TYPE_CHECKING
from typing import NamedTuple

import serial

from speculatrix import create_null_logger
from speculatrix.smart_parallel_enums import Command
from speculatrix.smart_parallel_enums import LineEnding
from speculatrix.smart_parallel_enums import PrintMode

if TYPE_CHECKING:
    import logging


TERMINATOR = 0
"""Terminates every message sent TO the SmartParallel."""

SERIAL_COMMAND_CHAR = 1
"""Precedes a command byte sent to the SmartParallel."""

RECEIVE_TERMINATOR = 10
"""Terminates every message sent FROM the SmartParallel (ASCII LF).

Not the same as `TERMINATOR`. Don't mix them up."""

READ_BUF_SIZE = 1024
"""Maximum size of a received frame, in bytes."""

DEFAULT_COLUMNS = 80
"""Because it's an Epson MX-80."""

DEFAULT_POLL_DELAY = 0.001
"""Seconds to sleep after a read that returned nothing, before reading again."""

INIT = bytes([27, 64])
"""ESC @, initialises an Epson printer."""

LINE_END = bytes([13, 10])
"""CR LF, to send at the end of each line of text."""

TRANSMIT_END = bytes([TERMINATOR])

SET_TABS = bytes([1, 64])


class FrameStatus(enum.Enum):
    """Why `check_serial_input` stopped reading."""

    COMPLETE = "complete"
    """A newline was received. The newline is not part of the frame."""
    TRUNCATED = "truncated"
    """The frame hit the maximum size before a newline arrived."""
    STREAM_CLOSED = "stream_closed"
    """The stream reported end-of-stream."""
    STREAM_ERROR = "stream_error"
    """The stream raised an I/O error. See `FrameResult.error`."""
    TIMED_OUT = "timed_out"
    """The caller's deadline passed with no terminator."""


class FrameResult(NamedTuple):
    """One frame read from the SmartParallel."""

    length: int
    text: str
    status: FrameStatus
    error: BaseException | None = None

    @property
    def data(self) -> bytes:
        """The frame as raw bytes."""
        return self.text.encode("latin-1")

    @property
    def is_complete(self) -> bool:
        return self.status is FrameStatus.COMPLETE


def check_serial_input(
    port,
    read_buf: bytearray | None = None,
    *,
    max_size: int = READ_BUF_SIZE,
    poll_delay: float = DEFAULT_POLL_DELAY,
    timeout: float | None = None,
    logger: "logging.Logger | None" = None,
) -> FrameResult:
    """Pull the next newline-terminated frame from a serial port.

    Reads one byte at a time until a newline arrives, `max_size` bytes have accumulated,
    or the stream fails. I/O errors are NOT raised; they end the frame and are reported
    through `FrameResult.status` and `FrameResult.error`.

    A read that returns nothing (a pyserial read timeout, for instance) is not the end of the
    frame. The reader sleeps `poll_delay` seconds and tries again, forever unless `timeout` is given.

    Args:
        port: Anything with a `read(size) -> bytes` method, usually a `serial.Serial`. Not closed here.
        read_buf (bytearray | None, optional): Buffer to reuse between calls. Cleared before reading.
        max_size (int, optional): Maximum frame size in bytes. Defaults to `READ_BUF_SIZE`.
        poll_delay (float, optional): Sleep after an empty read, in seconds. 0 means don't sleep.
        timeout (float | None, optional): Give up after this many seconds. Defaults to None (never).
        logger (logging.Logger | None, optional): Defaults to a null logger.

    Returns:
        FrameResult: The frame, excluding the terminator, and why reading stopped.
    """
    if max_size < 1:
        raise ValueError(f"max_size must be at least 1, not {max_size}")
    logger = logger or create_null_logger()
    if read_buf is None:
        read_buf = bytearray()

    # Empty the buffer but keep it, so that nothing stale leaks into this frame.
    read_buf.clear()

    deadline = None if timeout is None else time.monotonic() + timeout
    status: FrameStatus | None = None
    error: BaseException | None = None

    while status is None:
        try:
            data = port.read(1)
        except EOFError:
            logger.debug(f"End of stream after {len(read_buf):,} bytes")
            status = FrameStatus.STREAM_CLOSED
            break
        except OSError as exc:
            # serial.SerialException is an OSError
            logger.debug(f"Error reading serial input after {len(read_buf):,} bytes: {exc}", exc_info=exc)
            status = FrameStatus.STREAM_ERROR
            error = exc
            break

        if not data:
            if deadline is not None and time.monotonic() >= deadline:
                logger.debug(f"Timed out after {timeout} seconds with {len(read_buf):,} bytes")
                status = FrameStatus.TIMED_OUT
                break
            if poll_delay > 0:
                time.sleep(poll_delay)
            continue

        byte = data[0]
        if byte == RECEIVE_TERMINATOR:
            status = FrameStatus.COMPLETE
        else:
            read_buf.append(byte)
            if len(read_buf) >= max_size:
                logger.debug(f"Frame truncated at {max_size:,} bytes")
                status = FrameStatus.TRUNCATED

    # latin-1 maps every byte to exactly one character, so len(text) == length.
    text = bytes(read_buf).decode("latin-1")
    return FrameResult(length=len(read_buf), text=text, status=status, error=error)


def build_command(command: Command | int) -> bytes:
    """The bytes to send for a single SmartParallel command."""
    command = Command(command)
    return bytes([SERIAL_COMMAND_CHAR, command.value]) + TRANSMIT_END


def build_text(text: str, *, add_line_end: bool = False) -> bytes:
    """The bytes to send to have the SmartParallel print `text`.

    The text must be ASCII, and must not contain NUL, which would end the message early."""
    data = text.encode(encoding="ascii")
    if bytes([TERMINATOR]) in data:
        raise ValueError(f"Text contains a NUL byte, which would terminate the message early: {text!r}")
    if add_line_end:
        data += LINE_END
    return data + TRANSMIT_END


class SmartParallel:
    """Serial interface to the SmartParallel serial-to-parallel printer adapter.

    The adapter takes NUL-terminated messages and sends back newline-terminated ones.
    Commands are a single byte, preceded by `SERIAL_COMMAND_CHAR`."""

    DEFAULT_BAUDRATE = 9600

    def __init__(
        self,
        *,
        port: str | None = None,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float | None = 0.1,
        poll_delay: float = DEFAULT_POLL_DELAY,
        logger: "logging.Logger | None" = None,
        serial_port: "serial.Serial | None" = None,
    ):
        if port is None and serial_port is None:
            raise ValueError("Must give either `port` or `serial_port`")
        self.port = port if port is not None else getattr(serial_port, "port", None)
        self.baudrate = baudrate
        self.timeout = timeout
        self.poll_delay = poll_delay
        self.logger = logger or create_null_logger()
        self.columns = DEFAULT_COLUMNS

        # Only close the port if we opened it.
        self._owns_serial = serial_port is None
        if serial_port is None:
            serial_port = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                timeout=self.timeout,
            )
        self._serial = serial_port
        self._read_buf = bytearray()

        self.most_recent_communication_time = float("-inf")
        """The most recent time that we received a complete frame, as `time.monotonic()`."""

    def __enter__(self) -> "SmartParallel":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_serial:
            self.logger.debug(f"Closing serial port {self.port}")
            self._serial.close()

    def time_since_last_communication(self) -> float:
        """The time since we last received a complete frame, in seconds."""
        return time.monotonic() - self.most_recent_communication_time

    def write(self, data: bytes) -> None:
        """Write raw bytes to the SmartParallel. Allow exceptions to propagate."""
        self.logger.debug(f"Writing {data!r}")
        self._serial.write(data)

    def read_frame(self, timeout: float | None = None) -> FrameResult:
        """Read the next frame from the SmartParallel, reusing this object's read buffer."""
        result = check_serial_input(
            self._serial,
            self._read_buf,
            poll_delay=self.poll_delay,
            timeout=timeout,
            logger=self.logger,
        )
        if result.is_complete:
            self.most_recent_communication_time = time.monotonic()
        else:
            self.logger.debug(f"Frame ended with status {result.status.name}: {result.text!r}")
        return result

    def send_command(self, command: Command | int) -> None:
        command = Command(command)
        self.logger.info(f"Sending command {command.name}")
        self.write(build_command(command))

    def send_text(self, text: str, *, add_line_end: bool = False) -> None:
        self.write(build_text(text, add_line_end=add_line_end))

    def print_line(self, text: str) -> None:
        """Print a line of text, followed by CR LF."""
        self.send_text(text, add_line_end=True)

    def init_printer(self) -> None:
        """Send the printer's own initialisation sequence through the SmartParallel."""
        self.logger.info("Initialising printer")
        self.write(INIT + TRANSMIT_END)

    def set_print_mode(self, mode: PrintMode) -> None:
        self.send_command(mode.command)
        self.columns = mode.columns

    def set_line_ending(self, ending: LineEnding) -> None:
        self.send_command(ending.command)

    def set_ack(self, enabled: bool) -> None:
        self.send_command(Command.ACK_ENABLE if enabled else Command.ACK_DISABLE)

    def set_autofeed(self, enabled: bool) -> None:
        self.send_command(Command.AUTOFEED_ENABLE if enabled else Command.AUTOFEED_DISABLE)

    def query(self, command: Command | int, timeout: float | None = 1.0) -> FrameResult:
        """Send a command and read the frame that comes back."""
        self.send_command(command)
        return self.read_frame(timeout=timeout)

    def ping(self, timeout: float | None = 1.0) -> bool:
        """Check that the SmartParallel is alive and connected."""
        result = self.query(Command.PING, timeout=timeout)
        if not result.is_complete:
            self.logger.warning(f"No answer to ping from {self.port} ({result.status.name})")
            return False
        self.logger.debug(f"Ping answered: {result.text!r}")
        return True

    def _report(self, command: Command, timeout: float | None) -> str | None:
        result = self.query(command, timeout=timeout)
        if not result.is_complete:
            self.logger.error(f"No report for {command.name} ({result.status.name})")
            return None
        return result.text

    def report_state(self, timeout: float | None = 1.0) -> str | None:
        """Ask the SmartParallel for a status report. Return `None` on any failure."""
        return self._report(Command.REPORT_STATE, timeout)

    def report_ack(self, timeout: float | None = 1.0) -> str | None:
        """Ask whether the SmartParallel is using ACK. Return `None` on any failure."""
        return self._report(Command.REPORT_ACK, timeout)

    def report_autofeed(self, timeout: float | None = 1.0) -> str | None:
        """Ask whether AUTOFEED is enabled. Return `None` on any failure."""
        return self._report(Command.REPORT_AUTOFEED, timeout)
