"""
Email delivery for password-reset codes.

Only one message is ever sent by this service: the OTP email. Two senders
exist, selected by ``settings.EMAIL_BACKEND``:

- ``smtp``: real delivery over SMTP + STARTTLS
- ``console``: logs the code instead of sending it (local development)

Both raise ``EmailDeliveryError`` on failure so the caller can report it.
"""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import EmailDeliveryError
from app.logging import get_logger

logger = get_logger("auth.email")


class EmailSender(Protocol):
    async def send_otp(self, to: str, otp: str, name: str) -> None:
        ...


def render_otp_email(otp: str, name: str) -> str:
    return f"""
    <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>Password Reset</h2>
            <p>Hi <strong>{name}</strong>,</p>
            <p>You requested a password reset. Use the code below to reset your password.</p>
            <p style="font-size: 28px; letter-spacing: 6px;"><strong>{otp}</strong></p>
            <p>This code expires in {settings.OTP_EXPIRE_MINUTES} minutes.</p>
            <p>If you didn't request this, please ignore this email.</p>
            <hr>
            <p><small>{settings.APP_NAME} - Do not reply to this email</small></p>
        </body>
    </html>
    """


class SmtpEmailSender:
    """Sends the OTP through an SMTP relay (STARTTLS)."""

    def __init__(
        self,
        server: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        from_name: str,
        timeout: float = 10.0,
    ):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def _build_message(self, to: str, otp: str, name: str) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg["Subject"] = "Password Reset OTP"
        msg.attach(MIMEText(render_otp_email(otp, name), "html"))
        return msg

    def _send(self, to: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.from_email, to, msg.as_string())

    async def send_otp(self, to: str, otp: str, name: str) -> None:
        msg = self._build_message(to, otp, name)
        try:
            await run_in_threadpool(self._send, to, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send OTP email", exc_info=True, to=to, error=str(exc))
            raise EmailDeliveryError() from exc
        logger.info("OTP email sent", to=to)


class ConsoleEmailSender:
    """Logs the OTP instead of sending it (desenvolvimento)."""

    async def send_otp(self, to: str, otp: str, name: str) -> None:
        logger.info("=== EMAIL SIMULADO === Password Reset OTP", to=to, name=name, code=otp)


def get_email_sender() -> EmailSender:
    if settings.EMAIL_BACKEND == "smtp":
        if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
            logger.error("SMTP credentials not configured", exc_info=False)
            raise EmailDeliveryError()
        return SmtpEmailSender(
            server=settings.SMTP_SERVER,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            from_email=settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME,
            from_name=settings.SMTP_FROM_NAME,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )
    return ConsoleEmailSender()
