"""SMTP email sender for registration OTP codes"""

import logging
import smtplib
from email.message import EmailMessage

from blink_backend.config import Settings
from blink_backend.domain.exceptions import EmailDeliveryError

OTP_SUBJECT = "Your Blink verification code"

OTP_TEXT = """Welcome to Blink!

Your verification code is: {code}

This code expires in {minutes} minutes. If you did not request it, you can ignore this email.
"""

OTP_HTML = """<div style="font-family: Arial, sans-serif; max-width: 480px; margin: 0 auto;">
  <h2>Welcome to Blink!</h2>
  <p>Your verification code is:</p>
  <p style="font-size: 32px; font-weight: bold; letter-spacing: 6px;">{code}</p>
  <p>This code expires in {minutes} minutes.</p>
</div>
"""


class EmailSender:
    """Sends transactional email through the configured SMTP server"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
        """
        Deliver one message.

        Port 465 uses implicit TLS; any other port upgrades with STARTTLS.

        Raises:
            EmailDeliveryError: On connection, authentication or send failure
        """
        msg = EmailMessage()
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        timeout = self.settings.http_timeout_seconds
        try:
            if self.settings.smtp_port == 465:
                with smtplib.SMTP_SSL(self.settings.smtp_host, self.settings.smtp_port, timeout=timeout) as server:
                    server.login(self.settings.smtp_user, self.settings.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=timeout) as server:
                    server.ehlo()
                    server.starttls()
                    server.ehlo()
                    server.login(self.settings.smtp_user, self.settings.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logging.error(f"Email delivery failed: {e}", extra={"subject": subject})
            raise EmailDeliveryError("Failed to send verification email.") from e

        logging.info("Email sent", extra={"subject": subject})

    def send_otp(self, to_email: str, code: str) -> None:
        minutes = self.settings.otp_validity_minutes
        self.send(
            to_email,
            OTP_SUBJECT,
            OTP_TEXT.format(code=code, minutes=minutes),
            OTP_HTML.format(code=code, minutes=minutes),
        )
