"""
Outbound email for the booking authentication service.

``EmailService`` renders and sends the verification, password-reset and
welcome emails over SMTP, logging them instead when SMTP is not configured.
``NotificationDispatcher`` runs sends on a small worker pool so the caller
never waits for them; a failed send is logged and goes no further.
"""
import logging
import smtplib
import ssl
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Optional

# Configure logger
logger = logging.getLogger(__name__)


def redact_email(email: str) -> str:
    """Redact an email address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    """SMTP sender for account emails."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "Lawyer Booking",
        frontend_url: str = "http://localhost:5173",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> "EmailService":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.EMAIL_FROM,
            from_name=settings.EMAIL_FROM_NAME,
            frontend_url=settings.FRONTEND_URL,
        )

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return bool(self.smtp_host and self.from_email)

    def send_email(self, to: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        """
        Send an email via SMTP.

        Raises:
            smtplib.SMTPException, OSError: If delivery fails.
        """
        if not self.is_configured:
            # Dev mode: log the email instead of sending
            logger.info(f"Email not sent (SMTP not configured): to={redact_email(to)} subject={subject!r}")
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        if self.smtp_use_tls:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, [to], msg.as_string())
        else:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, [to], msg.as_string())

        logger.info(f"Email sent: to={redact_email(to)} subject={subject!r}")

    # PUBLIC_INTERFACE
    def send_verification_email(self, to: str, name: str, token: str) -> None:
        """Send the email-verification link."""
        link = f"{self.frontend_url}/verify-email?token={token}"
        text = (
            f"Hi {name},\n\n"
            f"Please confirm your email address by opening the link below:\n{link}\n\n"
            "The link expires in 24 hours. If you did not create an account, ignore this email."
        )
        html = (
            f"<p>Hi {name},</p>"
            f"<p>Please confirm your email address:</p>"
            f'<p><a href="{link}">Verify email</a></p>'
            "<p>The link expires in 24 hours.</p>"
        )
        self.send_email(to, "Verify your email address", text, html)

    # PUBLIC_INTERFACE
    def send_password_reset_email(self, to: str, name: str, token: str) -> None:
        """Send the password-reset link."""
        link = f"{self.frontend_url}/reset-password?token={token}"
        text = (
            f"Hi {name},\n\n"
            f"We received a request to reset your password. Open the link below to choose a new one:\n{link}\n\n"
            "The link expires in 1 hour. If you did not ask for this, you can ignore this email."
        )
        html = (
            f"<p>Hi {name},</p>"
            "<p>We received a request to reset your password.</p>"
            f'<p><a href="{link}">Reset password</a></p>'
            "<p>The link expires in 1 hour.</p>"
        )
        self.send_email(to, "Reset your password", text, html)

    # PUBLIC_INTERFACE
    def send_welcome_email(self, to: str, name: str) -> None:
        """Send the welcome email after verification."""
        text = f"Hi {name},\n\nYour email is verified. Welcome aboard!"
        self.send_email(to, "Welcome!", text, f"<p>Hi {name},</p><p>Your email is verified. Welcome aboard!</p>")


class NotificationDispatcher:
    """
    Fire-and-forget runner for notification sends.

    Sends run on a bounded thread pool; their outcome is only ever logged.
    """

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    # PUBLIC_INTERFACE
    def dispatch(self, description: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        """
        Schedule ``func(*args, **kwargs)`` without waiting for it.

        Args:
            description: Short label for log lines, e.g. ``"verification email"``.

        Returns:
            The scheduled future, or None if the dispatcher is shut down.
        """
        try:
            future = self._executor.submit(func, *args, **kwargs)
        except RuntimeError:
            logger.error(f"Could not schedule {description}: dispatcher is shut down")
            return None

        def _log_outcome(f: Future) -> None:
            if f.cancelled():
                return
            error = f.exception()
            if error is not None:
                logger.error(f"Failed to send {description}", exc_info=(type(error), error, error.__traceback__))

        future.add_done_callback(_log_outcome)
        return future

    # PUBLIC_INTERFACE
    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work, optionally waiting for pending sends."""
        self._executor.shutdown(wait=wait)
