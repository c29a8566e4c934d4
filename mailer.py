import logging
import smtplib
from email.message import EmailMessage

from config import APP_URL, EMAIL_FROM, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USE_TLS, SMTP_USER

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Plain-text email over SMTP. Returns False instead of raising."""
    if not SMTP_HOST:
        logger.warning("SMTP not configured, email to %s not sent: %s", to_email, subject)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"Campus Crush <{EMAIL_FROM}>"
    msg["To"] = to_email
    msg.set_content(body)
    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=15) as client:
            if SMTP_USE_TLS:
                client.starttls()
            if SMTP_USER:
                client.login(SMTP_USER, SMTP_PASSWORD)
            client.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s", to_email)
        return False


def send_verification_email(email: str, name: str, token: str) -> bool:
    link = f"{APP_URL}/api/auth/verify-email/{token}"
    body = (
        f"Hi {name},\n\n"
        "Welcome to Campus Crush! Confirm your college email by opening the link below:\n\n"
        f"{link}\n\n"
        "This link expires in 24 hours. If you did not sign up, ignore this email."
    )
    return send_email(email, "Verify your Campus Crush account", body)


def send_password_reset_email(email: str, name: str, token: str) -> bool:
    link = f"{APP_URL}/api/auth/reset-password/{token}"
    body = (
        f"Hi {name},\n\n"
        "We received a request to reset your password. Open the link below to choose a new one:\n\n"
        f"{link}\n\n"
        "This link expires in 1 hour. If you did not request a reset, ignore this email."
    )
    return send_email(email, "Reset your Campus Crush password", body)
