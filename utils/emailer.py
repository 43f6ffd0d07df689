import smtplib
from email.message import EmailMessage

from flask import current_app


def send_email(to_emails, subject: str, body: str):
    """
    Sends a plain-text mail through the configured SMTP relay.
    Returns (ok, error); never raises.
    """
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if isinstance(to_emails, str):
        to_emails = [to_emails]
    recipients = [e for e in (to_emails or []) if e]

    if not host or not from_email:
        return False, "Email not configured"
    if not recipients:
        return False, "No recipients"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)
