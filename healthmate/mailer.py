# healthmate/mailer.py
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from . import config

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(
        self,
        server: Optional[str],
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool = True,
        sender_name: str = "HealthMate",
        timeout: int = 10,
    ):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender_name = sender_name
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "Mailer":
        return cls(
            config.MAIL_SERVER,
            config.MAIL_PORT,
            config.MAIL_USERNAME,
            config.MAIL_PASSWORD,
            use_tls=config.MAIL_USE_TLS,
            sender_name=config.MAIL_FROM,
            timeout=config.MAIL_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return all([self.server, self.port, self.username, self.password])

    def send(self, recipient: str, subject: str, text: str, html: str) -> None:
        if not self.configured:
            logger.error("Email server is not configured. Cannot send email.")
            return

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f'"{self.sender_name}" <{self.username}>'
        message["To"] = recipient
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls(context=ssl.create_default_context())
            smtp.login(self.username, self.password)
            smtp.sendmail(self.username, recipient, message.as_string())
        logger.info(f"Sent '{subject}' email to {recipient}")

    def send_otp(self, recipient: str, code: str, expires_minutes: int) -> None:
        text = f"Your verification code is {code}. It expires in {expires_minutes} minutes."
        html = (
            f"<p>Your verification code is <b>{code}</b>.</p>"
            f"<p>This code expires in {expires_minutes} minutes.</p>"
        )
        self.send(recipient, "Your password reset code", text, html)
