import smtplib
from enum import Enum
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Any, Dict, Optional
from core.config import settings
from utils.logger import get_logger

logger = get_logger(__name__)


class EmailKind(str, Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"
    WELCOME = "welcome"
    PASSWORD_CHANGED = "password_changed"


def _render(kind: EmailKind, data: Dict[str, Any]) -> tuple[str, str]:
    """Subject and HTML body for one notification."""
    name = data.get("name") or "there"

    if kind == EmailKind.VERIFICATION:
        link = f"{settings.APP_URL}/verify-email?token={data['token']}"
        return "Verify your email address", f"""
        <html>
        <body>
            <h2>Hi {name},</h2>
            <p>Confirm your email address to finish setting up your account:</p>
            <p><a href="{link}">Verify email</a></p>
            <p>This link expires in 24 hours.</p>
        </body>
        </html>
        """

    if kind == EmailKind.PASSWORD_RESET:
        link = f"{settings.APP_URL}/reset-password?token={data['token']}"
        return "Reset your password", f"""
        <html>
        <body>
            <h2>Password reset request</h2>
            <p>We received a request to reset your password.</p>
            <p><a href="{link}">Reset password</a></p>
            <p>This link expires in 1 hour. If you didn't ask for it, ignore this email.</p>
        </body>
        </html>
        """

    if kind == EmailKind.WELCOME:
        return "Welcome to the issue tracker", f"""
        <html>
        <body>
            <h2>Welcome, {name}!</h2>
            <p>Your account is ready. Sign in at <a href="{settings.APP_URL}">{settings.APP_URL}</a>.</p>
        </body>
        </html>
        """

    return "Your password was changed", f"""
        <html>
        <body>
            <h2>Hi {name},</h2>
            <p>Your password was just changed and every device has been signed out.</p>
            <p>If this wasn't you, reset your password immediately.</p>
        </body>
        </html>
        """


def send_email(kind: EmailKind, to_email: str, data: Optional[Dict[str, Any]] = None) -> bool:
    """
    Send one notification email.

    Runs as a background task, so failures are logged and reported through
    the return value instead of raised.

    Returns:
        True if the message was handed to the SMTP server (or skipped in tests)
    """
    data = data or {}
    subject, html = _render(kind, data)

    # Skip email sending in test environment
    if settings.ENV == "testing":
        logger.info(
            "[TEST MODE] Email skipped",
            extra={"recipient": to_email, "email_kind": kind.value}
        )
        return True

    logger.debug(
        "Attempting to send email",
        extra={"recipient": to_email, "email_kind": kind.value}
    )

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.MAIL_FROM
    message["To"] = to_email
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(settings.MAIL_SERVER, settings.MAIL_PORT) as server:
            server.starttls()
            server.login(settings.MAIL_USERNAME, settings.MAIL_PASSWORD)
            server.sendmail(settings.MAIL_FROM, to_email, message.as_string())

        logger.info(
            "Email sent successfully",
            extra={"recipient": to_email, "email_kind": kind.value}
        )
        return True

    except (smtplib.SMTPException, OSError) as e:
        logger.error(
            f"Failed to send email: {str(e)}",
            extra={
                "recipient": to_email,
                "email_kind": kind.value,
                "error_type": type(e).__name__
            },
            exc_info=True
        )
        return False
