"""
Compose and send simple plain-text emails.

The easiest way to use this is with a config file holding the server details, like:

    host=mail.example.com
    port=465
    user=user@example.com
    pass=top_secret_password
    use_tls=yes

If `port` is missing, 465 is used when `use_tls` is `yes` and 587 otherwise. If `use_tls` is
missing it is taken as `no`. The standard location for the file is `DEFAULT_CONFIG_PATH`.

Example:

    config = read_email_config()
    message = EmailMessage()
    message.add_recipient("recipient@example.com")
    message.set_sender(config.user)
    message.set_sender_name("Mr A Sender")
    message.set_subject("A message just for you")
    message.body_append("IoT Alert")
    message.add_signature("My sig")
    message.send_email(config)
"""

import smtplib
import ssl
from pathlib import Path
from typing import TYPE_CHECKING

import pydantic

from speculatrix import create_null_logger
from speculatrix import file_util

if TYPE_CHECKING:
    import logging


CONFIG_KEYS = ("host", "port", "user", "pass", "use_tls")
DEFAULT_CONFIG_PATH = Path("/etc/email/email_default.cfg")
TLS_PORT = 465
STARTTLS_PORT = 587
CRLF = "\r\n"


class EmailError(Exception):
    pass


class EmailConfigError(EmailError, ValueError):
    """The email config is missing something, or couldn't be read."""


class EmailHeaderError(EmailError, ValueError):
    """The message is missing an essential header."""


class EmailSendError(EmailError, RuntimeError):
    """Sending failed somewhere between connecting and handing over the message."""


class EmailConfig(pydantic.BaseModel):
    """Details of the SMTP server to send through."""

    host: str
    port: int
    user: str
    password: str = pydantic.Field(alias="pass", repr=False)
    use_tls: bool = False
    """Use implicit TLS (usually port 465). Otherwise, plain SMTP upgraded with STARTTLS if offered."""

    model_config = pydantic.ConfigDict(frozen=True, populate_by_name=True)


def email_config_from_map(data: dict[str, str]) -> EmailConfig:
    """Build an `EmailConfig` from a `key=value` map, filling in defaults for `port` and `use_tls`.

    Raises:
        EmailConfigError: Listing every required key that is missing or empty.
    """
    data = dict(data)
    errors = []
    for key in CONFIG_KEYS:
        if data.get(key):
            continue
        if key == "port":
            data["port"] = str(TLS_PORT) if data.get("use_tls") == "yes" else str(STARTTLS_PORT)
        elif key == "use_tls":
            data["use_tls"] = "no"
        else:
            errors.append(f"Missing config value: {key}")
    if errors:
        raise EmailConfigError("; ".join(errors))

    try:
        return EmailConfig(
            host=data["host"],
            port=int(data["port"]),
            user=data["user"],
            password=data["pass"],
            use_tls=data["use_tls"] == "yes",
        )
    except ValueError as exc:
        # pydantic.ValidationError is a ValueError
        raise EmailConfigError(f"Invalid config value: {exc}") from exc


def read_email_config(path: str | Path = DEFAULT_CONFIG_PATH) -> EmailConfig:
    """Read email settings from a `key=value` config file."""
    try:
        data = file_util.read_config_file(path)
    except file_util.ConfigFileError as exc:
        raise EmailConfigError(f"Error reading email config file: {exc}") from exc
    return email_config_from_map(data)


class EmailHeader(pydantic.BaseModel):
    name: str = ""
    """Sender's name"""
    sender: str = ""
    """Sender's email address"""
    to: list[str] = pydantic.Field(default_factory=list)
    """Recipients' email addresses"""
    subject: str = ""

    def check_headers(self) -> list[str]:
        """Check that the essential headers have values. Return a list of the problems, if any."""
        problems = []
        if not self.sender:
            problems.append("Header from field empty")
        if not self.to:
            problems.append("Header to field empty")
        if not self.subject:
            problems.append("Header subject empty")
        return problems

    def validate_headers(self) -> None:
        problems = self.check_headers()
        if problems:
            raise EmailHeaderError("; ".join(problems))


class EmailMessage(pydantic.BaseModel):
    header: EmailHeader = pydantic.Field(default_factory=EmailHeader)
    body: str = ""

    def add_recipient(self, address: str) -> None:
        self.header.to.append(address)

    def set_sender(self, sender: str) -> None:
        self.header.sender = sender

    def set_sender_name(self, name: str) -> None:
        self.header.name = name

    def set_subject(self, subject: str) -> None:
        self.header.subject = subject

    def body_set(self, text: str) -> None:
        """Replace the body with `text`."""
        self.body = text + CRLF

    def body_append(self, text: str) -> None:
        self.body += text + CRLF

    def add_signature(self, signature: str) -> None:
        """Add a signature, separated from the body by a `--` line."""
        self.body += CRLF + "--" + CRLF + signature + CRLF

    def header_string(self, logger: "logging.Logger | None" = None) -> str:
        """The headers as a single string, ending with the blank line that separates them from the body.

        Return an empty string if the essential headers are not all set."""
        problems = self.header.check_headers()
        if problems:
            logger = logger or create_null_logger()
            logger.warning(f"Incomplete email headers: {'; '.join(problems)}")
            return ""

        if self.header.name:
            from_str = f"{self.header.name} <{self.header.sender}>"
        else:
            from_str = self.header.sender
        return (
            f"From: {from_str}{CRLF}"
            f"To: {','.join(self.header.to)}{CRLF}"
            f"Subject: {self.header.subject}{CRLF}{CRLF}"
        )

    def as_string(self) -> str:
        """The whole message, headers and body."""
        return self.header_string() + self.body + CRLF

    def send_email(
        self,
        config: EmailConfig,
        *,
        timeout: float = 30.0,
        logger: "logging.Logger | None" = None,
    ) -> None:
        """Send the message.

        Raises:
            EmailHeaderError: If the essential headers are not all set. Nothing is sent.
            EmailSendError: If anything goes wrong talking to the server.
        """
        logger = logger or create_null_logger()
        try:
            self.header.validate_headers()
        except EmailHeaderError as exc:
            logger.error(f"Error in email headers: {exc}")
            raise

        data = self.as_string().encode("utf-8")
        if config.use_tls:
            self._send_tls(config, data, timeout=timeout, logger=logger)
        else:
            self._send_starttls(config, data, timeout=timeout, logger=logger)

    def _send_tls(self, config: EmailConfig, data: bytes, *, timeout: float, logger: "logging.Logger") -> None:
        # The server's certificate is not verified.
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        failures = []
        for recipient in self.header.to:
            step = "making TLS connection"
            try:
                logger.debug(f"Connecting to {config.host}:{config.port} over TLS to send to {recipient}")
                with smtplib.SMTP_SSL(config.host, config.port, timeout=timeout, context=context) as smtp:
                    step = "authenticating"
                    smtp.login(config.user, config.password)
                    step = "sending message"
                    smtp.sendmail(self.header.sender, [recipient], data)
                logger.info(f"Sent email {self.header.subject!r} to {recipient}")
            except (smtplib.SMTPException, OSError) as exc:
                logger.error(f"Error {step} for {recipient}: {exc}", exc_info=exc)
                failures.append((recipient, step, exc))

        if failures:
            summary = "; ".join(f"{recipient}: error {step}: {exc}" for recipient, step, exc in failures)
            raise EmailSendError(f"Failed to send to {len(failures)} of {len(self.header.to)} recipients. {summary}")

    def _send_starttls(self, config: EmailConfig, data: bytes, *, timeout: float, logger: "logging.Logger") -> None:
        step = "connecting"
        try:
            logger.debug(f"Connecting to {config.host}:{config.port}")
            with smtplib.SMTP(config.host, config.port, timeout=timeout) as smtp:
                step = "starting TLS"
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=ssl.create_default_context())
                    smtp.ehlo()
                else:
                    logger.warning(f"{config.host} does not offer STARTTLS. Sending in the clear.")
                step = "authenticating"
                smtp.login(config.user, config.password)
                step = "sending message"
                smtp.sendmail(self.header.sender, list(self.header.to), data)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"Error {step}: {exc}", exc_info=exc)
            raise EmailSendError(f"Error sending email while {step}: {exc}") from exc
        logger.info(f"Sent email {self.header.subject!r} to {', '.join(self.header.to)}")
