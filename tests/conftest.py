import pytest
from fake_smtp import FakeSMTP

from speculatrix import email_util


@pytest.fixture
def fake_smtp(monkeypatch: pytest.MonkeyPatch) -> type[FakeSMTP]:
    """Replace `smtplib.SMTP` and `smtplib.SMTP_SSL` with a fresh `FakeSMTP` subclass."""

    class _FakeSMTP(FakeSMTP):
        instances = []

    monkeypatch.setattr(email_util.smtplib, "SMTP", _FakeSMTP)
    monkeypatch.setattr(email_util.smtplib, "SMTP_SSL", _FakeSMTP)
    return _FakeSMTP
