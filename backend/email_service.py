import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
import os
from typing import Optional

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(os.getenv("SMTP_USER") and os.getenv("SMTP_PASSWORD"))


def send_email(
    to_email: Optional[str],
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    bcc: Optional[list[str]] = None,
) -> bool:
    smtp_host = os.getenv("SMTP_HOST", "smtp.gmail.com")
    smtp_port = int(os.getenv("SMTP_PORT", "465"))
    smtp_user = os.getenv("SMTP_USER")
    smtp_password = os.getenv("SMTP_PASSWORD")
    recipients = ([to_email] if to_email else []) + list(bcc or [])

    if not smtp_user or not smtp_password:
        logger.info("[EMAIL STUB] To: %s | Bcc: %d | Subject: %s", to_email, len(bcc or []), subject)
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = smtp_user
    msg["To"] = to_email or smtp_user
    if text_body:
        msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))

    try:
        if smtp_port == 465:
            with smtplib.SMTP_SSL(smtp_host, smtp_port) as server:
                server.login(smtp_user, smtp_password)
                server.sendmail(smtp_user, recipients or [smtp_user], msg.as_string())
        else:
            with smtplib.SMTP(smtp_host, smtp_port) as server:
                server.starttls()
                server.login(smtp_user, smtp_password)
                server.sendmail(smtp_user, recipients or [smtp_user], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("[EMAIL ERROR] Failed to send '%s' to %d recipients: %s", subject, len(recipients), e)
        raise
    return True


def send_newsletter(emails: list[str], subject: str, message: str) -> bool:
    # Recipients go in Bcc so subscribers never see each other.
    body = f"""
    <div style="font-family: sans-serif; color: #333;">
        <h2>{html.escape(subject)}</h2>
        <p>{html.escape(message).replace(chr(10), "<br>")}</p>
        <hr/>
        <small>Mock Interview Platform Updates</small>
    </div>
    """
    return send_email(None, subject, body, text_body=message, bcc=emails)
