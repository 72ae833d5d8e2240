"""Mail delivery backends.

Selected by config ``mailer.backend``:
 - ``log``   records the message in memory and logs it (development/tests)
 - ``smtp``  delivers through an SMTP relay
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from .config import Config

log = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class OutgoingMail:
    sender: str
    recipients: tuple[str, ...]
    subject: str
    body: str
    reply_to: str | None = None

    def to_email_message(self) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = self.subject
        if self.reply_to:
            msg["Reply-To"] = self.reply_to
        msg.set_content(self.body)
        return msg


class Mailer(Protocol):
    def send(self, mail: OutgoingMail) -> None: ...


@dataclass
class LogMailer:
    sent: list[OutgoingMail] = field(default_factory=list)

    def send(self, mail: OutgoingMail) -> None:
        self.sent.append(mail)
        log.info(
            "mail delivered (log backend)",
            extra={"to": list(mail.recipients), "subject": mail.subject},
        )


@dataclass
class SmtpMailer:
    """SMTP relay delivery through aiosmtplib, run to completion for each message."""

    host: str
    port: int
    username: str = ""
    password: str = ""
    starttls: bool = True
    timeout: float = 10.0

    async def _deliver(self, message: EmailMessage) -> None:
        smtp_kwargs = {"hostname": self.host, "port": self.port, "start_tls": self.starttls, "timeout": self.timeout}
        async with aiosmtplib.SMTP(**smtp_kwargs) as smtp:
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.send_message(message)

    def send(self, mail: OutgoingMail) -> None:
        try:
            # header values carrying CR/LF are refused here
            message = mail.to_email_message()
        except ValueError as e:
            raise MailDeliveryError(f"invalid message: {e}") from e
        try:
            asyncio.run(self._deliver(message))
        except (aiosmtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(f"SMTP delivery failed: {e}") from e
        log.info("mail delivered (smtp)", extra={"to": list(mail.recipients), "subject": mail.subject})


def build_mailer(cfg: Config) -> Mailer:
    if cfg.mailer_backend == "smtp":
        return SmtpMailer(
            cfg.smtp_host,
            cfg.smtp_port,
            username=cfg.smtp_username,
            password=cfg.smtp_password,
            starttls=cfg.smtp_starttls,
        )
    if cfg.mailer_backend == "log":
        return LogMailer()
    raise ValueError(f"unknown mailer backend: {cfg.mailer_backend}")


__all__ = [
    "LogMailer",
    "MailDeliveryError",
    "Mailer",
    "OutgoingMail",
    "SmtpMailer",
    "build_mailer",
]
