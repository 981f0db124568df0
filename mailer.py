import asyncio
import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path

from pydantic import BaseModel

from errors import DeliveryError
from profiles import Profile

log = logging.getLogger("certificate.mailer")

SUBJECT = "COVID-19 - Déclaration de déplacement"
BODY = "Attestation de déplacement dérogatoire"


class EmailSettings(BaseModel):
    host: str
    port: int = 587
    user: str | None = None
    password: str | None = None
    sender: str | None = None
    use_ssl: bool = False
    starttls: bool = True

    @property
    def from_address(self) -> str:
        sender = self.sender or self.user
        if not sender:
            raise DeliveryError("Email settings need a 'sender' or a 'user'.")
        return sender


def build_message(settings: EmailSettings, recipient: str, attachment: Path) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.from_address
    message["To"] = recipient
    message["Subject"] = SUBJECT
    message.set_content(BODY)
    message.add_attachment(
        attachment.read_bytes(),
        maintype="application",
        subtype="pdf",
        filename=attachment.name,
    )
    return message


def _send(settings: EmailSettings, message: EmailMessage) -> None:
    if settings.use_ssl:
        smtp = smtplib.SMTP_SSL(settings.host, settings.port)
    else:
        smtp = smtplib.SMTP(settings.host, settings.port)
    with smtp:
        if settings.starttls and not settings.use_ssl:
            smtp.starttls()
        if settings.user:
            smtp.login(settings.user, settings.password or "")
        refused = smtp.send_message(message)
    if refused:
        raise DeliveryError(f"Recipients refused: {', '.join(refused)}")


async def send_certificate(settings: EmailSettings, recipient: str, attachment: Path) -> None:
    try:
        message = build_message(settings, recipient, attachment)
        await asyncio.to_thread(_send, settings, message)
    except ValueError as exc:
        # Header values with CR/LF or unparsable addresses.
        raise DeliveryError(f"Cannot address a message to {recipient!r}: {exc}") from exc
    except (smtplib.SMTPException, OSError) as exc:
        raise DeliveryError(f"SMTP delivery to {recipient} failed: {exc}") from exc
    log.debug("Sent %s to %s via %s:%s", attachment.name, recipient, settings.host, settings.port)


def make_deliverer(settings: EmailSettings):
    async def deliver(profile: Profile, path: Path) -> None:
        await send_certificate(settings, profile.email, path)

    return deliver
