import logging
import smtplib
from html import escape
from email.message import EmailMessage
from email.utils import formataddr

from flask import current_app

from security.errors import NotificationDispatchFailure

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, body: str, html: str = None):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    sender_name = current_app.config.get("SMTP_SENDER_NAME", "AutoClient")
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = formataddr((sender_name, from_email))
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        # port 465 is implicit TLS, everything else upgrades with STARTTLS
        if port == 465:
            server = smtplib.SMTP_SSL(host, port, timeout=10)
        else:
            server = smtplib.SMTP(host, port, timeout=10)
        with server:
            if use_tls and port != 465:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)


def send_otp_email(to_email: str, code: str, workshop_name: str) -> None:
    """
    Delivers a login code. Raises NotificationDispatchFailure on any
    transport or configuration error.
    """
    minutes = current_app.config.get("OTP_TTL_SECONDS", 600) // 60
    subject = f"Verification code - {workshop_name}"
    body = (
        f"Your verification code for {workshop_name} is: {code}\n\n"
        f"This code expires in {minutes} minutes."
    )
    safe_name = escape(workshop_name)
    html = (
        "<div style='font-family:Segoe UI,Arial,sans-serif;font-size:14px'>"
        "<h2>Verification code</h2>"
        f"<p>Your code for <b>{safe_name}</b> is: "
        f"<b style='font-size:18px; letter-spacing:2px'>{code}</b></p>"
        f"<p>This code expires in {minutes} minutes.</p>"
        "</div>"
    )

    ok, error = send_email(to_email, subject, body, html=html)
    if not ok:
        logger.warning("OTP email to workshop %r not sent: %s", workshop_name, error)
        raise NotificationDispatchFailure(error)
