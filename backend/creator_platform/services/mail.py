from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates" / "email"

_templates = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


class Mailer:
    """Renders the transactional e-mail templates and delivers them over SMTP."""

    def __init__(self, settings: Settings) -> None:
        self._host = settings.mail_host
        self._port = settings.mail_port
        self._user = settings.mail_user
        self._password = settings.mail_password
        self._secure = settings.mail_secure
        self._sender = settings.mail_from
        self._frontend_url = settings.frontend_url.rstrip("/")

    def _new_connection(self) -> smtplib.SMTP:
        if self._secure:
            conn: smtplib.SMTP = smtplib.SMTP_SSL(host=self._host, port=self._port, timeout=30)
        else:
            conn = smtplib.SMTP(host=self._host, port=self._port, timeout=30)
            conn.ehlo()
            if conn.has_extn("starttls"):
                conn.starttls()
                conn.ehlo()
        if self._user:
            conn.login(self._user, self._password)
        return conn

    def render(self, template_name: str, **context: Any) -> str:
        context.setdefault("year", datetime.now(timezone.utc).year)
        return _templates.get_template(template_name).render(**context)

    def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        with self._new_connection() as conn:
            conn.send_message(message)
        logger.info("Sent '%s' to %s", subject, to)

    def send_verification_email(self, email: str, code: str, frontend_url: str, name: str) -> None:
        verification_url = f"{frontend_url.rstrip('/')}/verify-email?code={code}"
        html = self.render("verification.html", name=name, verification_url=verification_url)
        self.send(email, "Email Verification", html)

    def send_password_reset_email(self, email: str, reset_token: str) -> None:
        reset_url = f"{self._frontend_url}/reset-password?token={reset_token}"
        html = self.render("password_reset.html", reset_url=reset_url)
        self.send(email, "Password Reset Request", html)

    def send_step_notification(
        self,
        name: str,
        email: str,
        subject: str,
        success: bool,
        overview_url: str,
        step_notify: Optional[str] = None,
    ) -> None:
        html = self.render(
            "step_notification.html",
            name=name,
            subject=subject,
            success=success,
            overview_url=overview_url,
            step_notify=step_notify,
        )
        self.send(email, subject, html)


@lru_cache
def get_mailer() -> Mailer:
    return Mailer(get_settings())
