"""SMTP email transport with template rendering"""

from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Optional
import logging
from pathlib import Path

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from notifyq.models import Notification, DeliveryChannel
from notifyq.core.config import settings
from notifyq.core.exceptions import TransportError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates" / "emails"

class EmailTransport:
    """Notification emails rendered from templates/emails/notification.html"""

    channel = DeliveryChannel.EMAIL

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME

        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml'])
        )

    def render(self, notification: Notification) -> str:
        template = self.env.get_template("notification.html")
        return template.render(
            title=notification.title,
            message=notification.message,
            action_url=notification.action_url,
            priority=notification.priority,
            app_name=self.from_name
        )

    def build_message(self, notification: Notification, to_email: str) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = notification.title
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to_email
        msg['Message-ID'] = make_msgid(domain=self.from_email.split('@')[-1])

        body = notification.message
        if notification.action_url:
            body += f"\n\n{notification.action_url}"
        msg.attach(MIMEText(body, 'plain', 'utf-8'))
        msg.attach(MIMEText(self.render(notification), 'html', 'utf-8'))
        return msg

    async def send(self, notification: Notification, recipient: str) -> Optional[str]:
        msg = self.build_message(notification, recipient)

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=self.use_tls
            )
        except aiosmtplib.SMTPException as e:
            logger.error(f"Failed to send email for notification {notification.id}: {str(e)}")
            raise TransportError(str(e)) from e

        logger.info(f"Email sent for notification {notification.id}")
        return msg['Message-ID']
