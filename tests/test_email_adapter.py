from pathlib import Path

import pytest
from jinja2 import TemplateNotFound

from serverlister.config import DEFAULT_TEMPLATES_DIR
from serverlister.notify.adapters.email_smtp import EmailSMTPAdapter
from serverlister.schemas import EmailPayload


class SMTPConnectionStub:
    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in: tuple[str, str] | None = None
        self.messages = []

    def __enter__(self) -> "SMTPConnectionStub":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, username: str, password: str) -> None:
        self.logged_in = (username, password)

    def send_message(self, message, to_addrs=None) -> None:  # type: ignore[no-untyped-def]
        self.messages.append((message, to_addrs))


class SMTPFactory:
    def __init__(self) -> None:
        self.instances: list[SMTPConnectionStub] = []

    def __call__(self, host: str, port: int) -> SMTPConnectionStub:
        connection = SMTPConnectionStub(host, port)
        self.instances.append(connection)
        return connection


def test_email_adapter_renders_templates(tmp_path: Path):
    (tmp_path / "welcome.txt").write_text("Hello {{ name }}", encoding="utf-8")
    (tmp_path / "welcome.html").write_text("<p>Hello {{ name }}</p>", encoding="utf-8")

    smtp_factory = SMTPFactory()
    adapter = EmailSMTPAdapter(
        host="smtp.test",
        port=587,
        username="user",
        password="secret",
        from_email="lister@example.com",
        templates_dir=tmp_path,
        smtp_factory=smtp_factory,
    )

    result = adapter.send(
        EmailPayload(
            to="ana@example.com",
            subject="Welcome",
            template="welcome",
            context={"name": "Ana"},
            bcc=["audit@example.com"],
        )
    )

    assert result["status"] == "sent"
    assert result["to"] == ["ana@example.com"]
    connection = smtp_factory.instances[0]
    assert connection.started_tls is True
    assert connection.logged_in == ("user", "secret")
    message, to_addrs = connection.messages[0]
    assert message["To"] == "ana@example.com"
    assert "Bcc" not in message
    assert to_addrs == ["ana@example.com", "audit@example.com"]
    assert message.get_body(preferencelist=("html",)).get_content().strip() == "<p>Hello Ana</p>"


def test_plain_text_email_without_credentials_skips_login():
    smtp_factory = SMTPFactory()
    adapter = EmailSMTPAdapter(
        host="smtp.test",
        port=25,
        use_tls=False,
        from_email="lister@example.com",
        smtp_factory=smtp_factory,
    )

    adapter.send(EmailPayload(to=["a@example.com", "b@example.com"], subject="Hi", text="Body"))

    connection = smtp_factory.instances[0]
    assert connection.started_tls is False
    assert connection.logged_in is None
    message, _ = connection.messages[0]
    assert message["To"] == "a@example.com, b@example.com"
    assert message.get_body(preferencelist=("plain",)).get_content().strip() == "Body"


def test_notification_template_is_bundled():
    smtp_factory = SMTPFactory()
    adapter = EmailSMTPAdapter(
        host="smtp.test",
        port=587,
        templates_dir=DEFAULT_TEMPLATES_DIR,
        smtp_factory=smtp_factory,
    )

    adapter.send(
        EmailPayload(
            to="ana@example.com",
            subject="Disk almost full",
            template="notification",
            context={"title": "Disk almost full", "message": "/var at 91%", "html_message": None},
        )
    )

    message, _ = smtp_factory.instances[0].messages[0]
    assert "/var at 91%" in message.get_body(preferencelist=("plain",)).get_content()


def test_unknown_template_raises(tmp_path: Path):
    adapter = EmailSMTPAdapter(
        host="smtp.test", port=587, templates_dir=tmp_path, smtp_factory=SMTPFactory()
    )

    with pytest.raises(TemplateNotFound):
        adapter.send(EmailPayload(to="a@example.com", subject="Hi", template="missing"))
