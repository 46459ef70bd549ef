"""SMTP adapter that sends ``email`` jobs, rendering Jinja2 templates on demand."""
from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any, Callable

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from serverlister.config import DEFAULT_TEMPLATES_DIR
from serverlister.logging import get_logger
from serverlister.schemas import EmailPayload


IMPLICIT_TLS_PORT = 465


def _as_list(value: str | list[str] | None) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [item for item in value if item]


@dataclass(slots=True)
class EmailSMTPAdapter:
    """Render optional email templates and deliver them through an SMTP server."""

    host: str
    port: int
    username: str | None = None
    password: str | None = None
    from_email: str | None = None
    from_name: str = "Server Lister"
    use_tls: bool = True
    templates_dir: Path = DEFAULT_TEMPLATES_DIR
    smtp_factory: Callable[[str, int], smtplib.SMTP] | None = None
    _env: Environment = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._env = Environment(
            loader=FileSystemLoader(self.templates_dir),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        if self.smtp_factory is None:
            self.smtp_factory = (
                smtplib.SMTP_SSL if self.port == IMPLICIT_TLS_PORT else smtplib.SMTP
            )

    def send(self, payload: EmailPayload) -> dict[str, Any]:
        """Send *payload* and return a summary of the delivered message."""

        text_body, html_body = self._render_bodies(payload)
        recipients = _as_list(payload.to)

        message = EmailMessage()
        message["To"] = ", ".join(recipients)
        cc = _as_list(payload.cc)
        if cc:
            message["Cc"] = ", ".join(cc)
        sender = self.from_email or self.username or ""
        message["From"] = formataddr((self.from_name, sender)) if sender else self.from_name
        message["Subject"] = payload.subject.strip()

        message.set_content(text_body or "")
        if html_body:
            message.add_alternative(html_body, subtype="html")

        all_recipients = recipients + cc + _as_list(payload.bcc)
        with self.smtp_factory(self.host, self.port) as client:
            if self.use_tls and self.port != IMPLICIT_TLS_PORT:
                client.starttls()
            if self.username and self.password:
                client.login(self.username, self.password)
            client.send_message(message, to_addrs=all_recipients)

        get_logger(__name__).info(
            "email.smtp.sent",
            recipients=len(all_recipients),
            template=payload.template,
        )
        return {
            "status": "sent",
            "subject": message["Subject"],
            "to": recipients,
            "template": payload.template,
        }

    def _render_bodies(self, payload: EmailPayload) -> tuple[str | None, str | None]:
        if not payload.template:
            return payload.text, payload.html

        context = {
            "subject": payload.subject,
            "sender_name": self.from_name,
            **payload.context,
        }
        text_body = self._env.get_template(f"{payload.template}.txt").render(context)
        try:
            html_template = self._env.get_template(f"{payload.template}.html")
        except TemplateNotFound:
            html_body = payload.html
        else:
            html_body = html_template.render(context)
        return text_body, html_body


__all__ = ["EmailSMTPAdapter"]
