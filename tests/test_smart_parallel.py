import pytest
import serial
from mock_serial import EOF_MARKER
from mock_serial import MockSerial

from speculatrix import Command
from speculatrix import LineEnding
from speculatrix import PrintMode
from speculatrix import smart_parallel
from speculatrix.smart_parallel import INIT
from speculatrix.smart_parallel import READ_BUF_SIZE
from speculatrix.smart_parallel import FrameResult
from speculatrix.smart_parallel import FrameStatus
from speculatrix.smart_parallel import SmartParallel
from speculatrix.smart_parallel import build_command
from speculatrix.smart_parallel import build_text
from speculatrix.smart_parallel import check_serial_input


@pytest.mark.parametrize(
    "message",
    [
        b"x",
        b"hello world",
        b"Pos= El: -0.03 , Az: -0.03\r",
        bytes(range(11, 256)),
        b"a" * (READ_BUF_SIZE - 1),
    ],
    ids=["one_byte", "ascii", "trailing_cr", "high_bytes", "just_under_cap"],
)
def test_terminated_frame(message: bytes):
    port = MockSerial([message + b"\n"])
    result = check_serial_input(port, bytearray(), poll_delay=0)
    assert (result.length, result.text) == (len(message), message.decode("latin-1"))
    assert result.status is FrameStatus.COMPLETE
    assert result.data == message
    assert result.error is None


def test_truncated_at_cap():
    data = bytes((i % 200) + 20 for i in range(2000))
    port = MockSerial([data])
    result = check_serial_input(port, bytearray(), poll_delay=0)
    assert result.length == READ_BUF_SIZE
    assert result.data == data[:READ_BUF_SIZE]
    assert result.status is FrameStatus.TRUNCATED
    # Nothing past the cap is consumed.
    assert port.read_count == READ_BUF_SIZE


def test_exactly_cap_then_newline_is_truncated():
    port = MockSerial([b"z" * READ_BUF_SIZE + b"\n"])
    result = check_serial_input(port, poll_delay=0)
    assert result.status is FrameStatus.TRUNCATED
    assert result.length == READ_BUF_SIZE
    # The newline is still waiting and makes an empty frame next time.
    second = check_serial_input(port, poll_delay=0)
    assert (second.length, second.text, second.status) == (0, "", FrameStatus.COMPLETE)


def test_custom_max_size():
    port = MockSerial([b"abcdefgh\n"])
    result = check_serial_input(port, max_size=3, poll_delay=0)
    assert (result.length, result.text, result.status) == (3, "abc", FrameStatus.TRUNCATED)


@pytest.mark.parametrize("max_size", [0, -1])
def test_invalid_max_size(max_size: int):
    with pytest.raises(ValueError):
        check_serial_input(MockSerial(), max_size=max_size)


def test_immediate_terminator_is_empty_frame():
    port = MockSerial([b"\n"])
    result = check_serial_input(port, bytearray(b"stale"), poll_delay=0)
    assert (result.length, result.text) == (0, "")
    assert result.status is FrameStatus.COMPLETE


def test_end_of_stream_keeps_partial_frame():
    port = MockSerial([b"12345", EOF_MARKER])
    result = check_serial_input(port, bytearray(), poll_delay=0)
    assert (result.length, result.text) == (5, "12345")
    assert result.status is FrameStatus.STREAM_CLOSED
    assert result.error is None


@pytest.mark.parametrize(
    "exc",
    [
        serial.SerialException("device reports readiness to read but returned no data"),
        OSError(5, "Input/output error"),
    ],
    ids=["serial_exception", "os_error"],
)
def test_stream_error_is_reported_not_raised(exc: Exception):
    port = MockSerial([b"abc", exc])
    result = check_serial_input(port, bytearray(), poll_delay=0)
    assert (result.length, result.text) == (3, "abc")
    assert result.status is FrameStatus.STREAM_ERROR
    assert result.error is exc


def test_programming_errors_propagate():
    port = MockSerial([TypeError("not an I/O problem")])
    with pytest.raises(TypeError):
        check_serial_input(port, poll_delay=0)


def test_buffer_reuse_never_leaks_stale_bytes():
    read_buf = bytearray()
    port = MockSerial([b"a long first message\n", b"short\n"])

    first = check_serial_input(port, read_buf, poll_delay=0)
    assert first.text == "a long first message"
    assert read_buf == b"a long first message"

    second = check_serial_input(port, read_buf, poll_delay=0)
    assert (second.length, second.text) == (5, "short")
    assert read_buf == b"short"


def test_prepopulated_buffer_is_cleared():
    read_buf = bytearray(b"X" * 50)
    port = MockSerial([b"hi", EOF_MARKER])
    result = check_serial_input(port, read_buf, poll_delay=0)
    assert (result.length, result.text) == (2, "hi")
    assert read_buf == b"hi"


def test_empty_reads_are_retried():
    empty_reads = 25
    port = MockSerial([b""] * empty_reads + [b"Q\n"])
    result = check_serial_input(port, poll_delay=0, timeout=5.0)
    assert (result.length, result.text, result.status) == (1, "Q", FrameStatus.COMPLETE)
    assert port.read_count == empty_reads + 2


def test_empty_reads_sleep_between_polls(monkeypatch: pytest.MonkeyPatch):
    sleeps = []
    monkeypatch.setattr(smart_parallel.time, "sleep", sleeps.append)
    port = MockSerial([b"", b"", b"", b"ok\n"])
    result = check_serial_input(port, poll_delay=0.01)
    assert result.text == "ok"
    assert sleeps == [0.01, 0.01, 0.01]


def test_timeout_ends_silent_stream():
    port = MockSerial([b"par"])
    result = check_serial_input(port, poll_delay=0.001, timeout=0.05)
    assert (result.length, result.text) == (3, "par")
    assert result.status is FrameStatus.TIMED_OUT


def test_length_always_matches_text():
    port = MockSerial([bytes([0xFF, 0x00, 0x80, 0x0D]) + b"\n"])
    result = check_serial_input(port, poll_delay=0)
    assert result.length == len(result.text) == 4


def test_frame_result_unpacks():
    length, text, status, error = FrameResult(2, "ok", FrameStatus.COMPLETE)
    assert (length, text, status, error) == (2, "ok", FrameStatus.COMPLETE, None)


# Sending


def test_build_command():
    assert build_command(Command.PING) == b"\x01\x01\x00"
    assert build_command(32) == b"\x01\x20\x00"


def test_build_command_rejects_unknown_command():
    with pytest.raises(ValueError):
        build_command(99)


def test_build_text():
    assert build_text("HELLO") == b"HELLO\x00"
    assert build_text("HELLO", add_line_end=True) == b"HELLO\r\n\x00"


def test_build_text_rejects_nul():
    with pytest.raises(ValueError):
        build_text("bad\x00text")


def test_build_text_rejects_non_ascii():
    with pytest.raises(UnicodeEncodeError):
        build_text("café")


def test_send_and_receive_terminators_differ():
    assert smart_parallel.TERMINATOR == 0
    assert smart_parallel.RECEIVE_TERMINATOR == 10
    assert smart_parallel.TRANSMIT_END == b"\x00"


# SmartParallel device


def make_device(*items) -> tuple[SmartParallel, MockSerial]:
    port = MockSerial(items)
    return SmartParallel(serial_port=port, poll_delay=0), port


def test_device_needs_a_port():
    with pytest.raises(ValueError):
        SmartParallel()


def test_device_takes_port_name_from_serial():
    device, _ = make_device()
    assert device.port == "MOCK0"


def test_read_frame_reuses_buffer_and_tracks_communication():
    device, _ = make_device(b"first frame\n", b"2nd\n")
    assert device.time_since_last_communication() == float("inf")
    assert device.read_frame().text == "first frame"
    assert device.read_frame().text == "2nd"
    assert device.time_since_last_communication() < 5.0


def test_ping_answered():
    device, port = make_device()
    port.on_write = lambda data: port.feed(b"PONG\n")
    assert device.ping(timeout=1.0) is True
    assert port.writes == [b"\x01\x01\x00"]


def test_ping_unanswered():
    device, port = make_device()
    assert device.ping(timeout=0.02) is False


def test_ping_stream_error():
    device, port = make_device(serial.SerialException("gone"))
    assert device.ping(timeout=1.0) is False


def test_report_state():
    device, port = make_device()
    port.on_write = lambda data: port.feed(b"ACK:1 AUTOFEED:0\n")
    assert device.report_state() == "ACK:1 AUTOFEED:0"
    assert port.writes == [build_command(Command.REPORT_STATE)]


def test_report_state_failure_is_none():
    device, port = make_device(b"partial", EOF_MARKER)
    assert device.report_ack() is None


def test_settings_commands():
    device, port = make_device()
    device.set_print_mode(PrintMode.CONDENSED)
    device.set_line_ending(LineEnding.CRLF)
    device.set_ack(False)
    device.set_autofeed(True)
    assert port.writes == [
        b"\x01\x09\x00",
        b"\x01\x13\x00",
        b"\x01\x02\x00",
        b"\x01\x05\x00",
    ]
    assert device.columns == 132


def test_printing():
    device, port = make_device()
    device.init_printer()
    device.print_line("Hello")
    device.send_text("no newline")
    assert port.writes == [INIT + b"\x00", b"Hello\r\n\x00", b"no newline\x00"]


def test_close_only_closes_owned_port():
    device, port = make_device()
    with device:
        pass
    assert port.is_open


def test_opens_and_closes_own_port(monkeypatch: pytest.MonkeyPatch):
    opened = []

    def fake_serial(**kwargs):
        port = MockSerial(port=kwargs["port"])
        opened.append((kwargs, port))
        return port

    monkeypatch.setattr(smart_parallel.serial, "Serial", fake_serial)
    with SmartParallel(port="/dev/ttyUSB3", baudrate=19200, timeout=0.5) as device:
        assert device.port == "/dev/ttyUSB3"
    kwargs, port = opened[0]
    assert kwargs == {"port": "/dev/ttyUSB3", "baudrate": 19200, "timeout": 0.5}
    assert not port.is_open
