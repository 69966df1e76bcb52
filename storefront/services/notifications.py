"""Outbound email and SMS for account codes.

Email goes out over SMTP once SMTP_HOST is set. Without it, and for SMS, the
message is written to the log so a development setup can still read the code.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from storefront.core import config

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
    if not config.SMTP_HOST:
        logger.info("SMTP not configured, email to %s (%s): %s", to, subject, text)
        return True

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = config.EMAIL_FROM
    message["To"] = to
    message.attach(MIMEText(text, "plain"))
    if html:
        message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT) as server:
            server.starttls()
            if config.SMTP_USER:
                server.login(config.SMTP_USER, config.SMTP_PASSWORD)
            server.sendmail(config.EMAIL_FROM, to, message.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send email to %s: %s", to, e)
        return False
    logger.info("Email sent to %s: %s", to, subject)
    return True


def send_sms(number: str, text: str) -> bool:
    # no SMS gateway is wired in; the message only reaches the log
    logger.info("SMS to %s: %s", number, text)
    return True


def send_verification_email(email: str, code: str) -> bool:
    minutes = config.VERIFICATION_CODE_TTL_MINUTES
    text = f"Your verification code is {code}. It expires in {minutes} minutes."
    html = f"<p>Your verification code is <strong>{code}</strong>.</p><p>It expires in {minutes} minutes.</p>"
    return send_email(email, f"{config.APP_NAME}: verify your email", text, html)


def send_verification_sms(number: str, code: str) -> bool:
    return send_sms(number, f"Your {config.APP_NAME} verification code is {code}")


def send_password_reset_email(email: str, code: str) -> bool:
    minutes = config.RESET_CODE_TTL_MINUTES
    text = (f"A password reset was requested for your account. Your reset code is {code}. "
            f"It expires in {minutes} minutes. If you did not request this, ignore this email.")
    html = (f"<p>A password reset was requested for your account.</p>"
            f"<p>Your reset code is <strong>{code}</strong>. It expires in {minutes} minutes.</p>"
            f"<p>If you did not request this, ignore this email.</p>")
    return send_email(email, f"{config.APP_NAME}: password reset", text, html)
