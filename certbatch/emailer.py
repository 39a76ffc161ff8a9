import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from jinja2 import Environment, StrictUndefined

from .constants import DEFAULT_MAIL_BODY, DEFAULT_MAIL_SUBJECT
from .errors import SendError
from .models import RenderedCertificate, SendOutcome

logger = logging.getLogger("certbatch.mailer")

_jinja = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)


@dataclass(frozen=True)
class SmtpSettings:
    host: str | None
    port: int | None
    user: str | None
    password: str | None
    from_addr: str | None
    from_name: str = ""

    @classmethod
    def from_env(cls) -> "SmtpSettings":
        port = os.getenv("SMTP_PORT")
        return cls(
            host=os.getenv("SMTP_HOST"),
            port=int(port) if port else None,
            user=os.getenv("SMTP_USER"),
            password=os.getenv("SMTP_PASS"),
            from_addr=os.getenv("SMTP_FROM_DEFAULT"),
            from_name=os.getenv("SMTP_FROM_NAME", ""),
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.port and self.from_addr)

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_addr}>" if self.from_name else (self.from_addr or "")


@dataclass(frozen=True)
class MailTemplate:
    subject: str = DEFAULT_MAIL_SUBJECT
    body: str = DEFAULT_MAIL_BODY

    @classmethod
    def from_env(cls) -> "MailTemplate":
        return cls(
            subject=os.getenv("CERT_MAIL_SUBJECT", DEFAULT_MAIL_SUBJECT),
            body=os.getenv("CERT_MAIL_BODY", DEFAULT_MAIL_BODY),
        )

    def render(self, name: str) -> tuple[str, str]:
        subject = _jinja.from_string(self.subject).render(name=name)
        body = _jinja.from_string(self.body).render(name=name)
        return subject, body


def build_message(
    settings: SmtpSettings,
    recipient: str,
    subject: str,
    body: str,
    attachment: RenderedCertificate,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["To"] = recipient
    msg["From"] = settings.sender
    msg.set_content(body)
    msg.add_attachment(
        attachment.image_bytes,
        maintype="image",
        subtype="png",
        filename=attachment.file_name,
    )
    return msg


def _connect(settings: SmtpSettings) -> smtplib.SMTP:
    if settings.port == 465:
        server = smtplib.SMTP_SSL(settings.host, settings.port)
    else:
        server = smtplib.SMTP(settings.host, settings.port)
    try:
        if settings.port == 587:
            server.starttls()
        if settings.user and settings.password:
            server.login(settings.user, settings.password)
    except Exception:
        server.close()
        raise
    return server


class Mailer:
    """Send one certificate per call; transport errors become failed outcomes."""

    def __init__(self, settings: SmtpSettings | None = None, template: MailTemplate | None = None):
        self.settings = settings or SmtpSettings.from_env()
        self.template = template or MailTemplate.from_env()

    def send_certificate(self, recipient: str, certificate: RenderedCertificate) -> SendOutcome:
        subject, body = self.template.render(certificate.recipient_name)
        return self.send(recipient, subject, body, certificate)

    def send(
        self,
        recipient: str,
        subject: str,
        body: str,
        attachment: RenderedCertificate,
    ) -> SendOutcome:
        settings = self.settings
        mode = "real"
        if not settings.configured:
            mode = "stub"
            logger.info(
                "[MAIL-OUT] mode=%s to=%s subject=\"%s\" host=%s result=stub",
                mode,
                recipient,
                subject,
                settings.host,
            )
            return SendOutcome(recipient=recipient, ok=False, detail="stub: missing config")

        try:
            msg = build_message(settings, recipient, subject, body, attachment)
            server = _connect(settings)
            try:
                refused = server.send_message(
                    msg, from_addr=settings.from_addr, to_addrs=[recipient]
                )
            finally:
                server.quit()
            if refused:
                raise SendError(f"recipient refused: {refused}")
            logger.info(
                "[MAIL-OUT] mode=%s to=%s subject=\"%s\" host=%s result=sent",
                mode,
                recipient,
                subject,
                settings.host,
            )
            return SendOutcome(recipient=recipient, ok=True, detail="sent")
        except Exception as e:
            logger.info(
                "[MAIL-OUT] mode=%s to=%s subject=\"%s\" host=%s result=%s",
                mode,
                recipient,
                subject,
                settings.host,
                e,
            )
            return SendOutcome(recipient=recipient, ok=False, detail=str(e))
