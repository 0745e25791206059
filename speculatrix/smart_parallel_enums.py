import enum


class Command(enum.IntEnum):
    """Command bytes understood by the SmartParallel.

    On the wire, each one is preceded by `SERIAL_COMMAND_CHAR` and followed by `TERMINATOR`."""

    PING = 1
    ACK_DISABLE = 2
    ACK_ENABLE = 3
    AUTOFEED_DISABLE = 4
    AUTOFEED_ENABLE = 5
    PRINT_MODE_NORMAL = 8
    PRINT_MODE_CONDENSED = 9
    PRINT_MODE_DOUBLE = 10
    LINE_END_NORMAL = 16
    LINE_END_LF = 17
    LINE_END_CR = 18
    LINE_END_CRLF = 19
    REPORT_STATE = 32
    REPORT_ACK = 33
    REPORT_AUTOFEED = 34


class PrintMode(enum.Enum):
    NORMAL = "normal"
    CONDENSED = "condensed"
    DOUBLE = "double"

    @property
    def command(self) -> Command:
        return {
            PrintMode.NORMAL: Command.PRINT_MODE_NORMAL,
            PrintMode.CONDENSED: Command.PRINT_MODE_CONDENSED,
            PrintMode.DOUBLE: Command.PRINT_MODE_DOUBLE,
        }[self]

    @property
    def columns(self) -> int:
        """Printable columns in this mode, for an Epson MX-80."""
        return {
            PrintMode.NORMAL: 80,
            PrintMode.CONDENSED: 132,
            PrintMode.DOUBLE: 40,
        }[self]


class LineEnding(enum.Enum):
    """What the SmartParallel appends to the end of each printed line."""

    NONE = "none"
    LF = "lf"
    CR = "cr"
    CRLF = "crlf"

    @property
    def command(self) -> Command:
        return {
            LineEnding.NONE: Command.LINE_END_NORMAL,
            LineEnding.LF: Command.LINE_END_LF,
            LineEnding.CR: Command.LINE_END_CR,
            LineEnding.CRLF: Command.LINE_END_CRLF,
        }[self]
