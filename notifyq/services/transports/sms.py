"""SMS transport with Twilio integration"""

from typing import Optional
import asyncio
import logging

import phonenumbers
from twilio.rest import Client
from twilio.base.exceptions import TwilioException

from notifyq.models import Notification, DeliveryChannel
from notifyq.core.config import settings
from notifyq.core.exceptions import TransportError
from notifyq.utils.helpers import mask_phone

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1600

class SMSTransport:
    """Text messages via Twilio"""

    channel = DeliveryChannel.SMS

    def __init__(self, client: Optional[Client] = None):
        self.client = client or Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        self.from_number = settings.TWILIO_PHONE_NUMBER
        self.messaging_service_sid = settings.TWILIO_MESSAGING_SERVICE_SID
        self.default_region = settings.SMS_DEFAULT_REGION

    def format_phone_number(self, phone: str) -> str:
        """Format phone number to E.164"""
        try:
            parsed = phonenumbers.parse(phone, self.default_region)
        except phonenumbers.NumberParseException as e:
            raise TransportError(f"Invalid phone number {mask_phone(phone)}: {e}") from e
        if not phonenumbers.is_valid_number(parsed):
            raise TransportError(f"Invalid phone number {mask_phone(phone)}")
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)

    def build_body(self, notification: Notification) -> str:
        body = f"{notification.title}\n\n{notification.message}"
        if notification.action_url:
            body += f"\n\n{notification.action_url}"
        if len(body) > MAX_SMS_LENGTH:
            body = body[:MAX_SMS_LENGTH - 3] + "..."
        return body

    async def send(self, notification: Notification, recipient: str) -> Optional[str]:
        to_number = self.format_phone_number(recipient)

        kwargs = {
            "body": self.build_body(notification),
            "to": to_number
        }
        # Use messaging service if available for better deliverability
        if self.messaging_service_sid:
            kwargs["messaging_service_sid"] = self.messaging_service_sid
        else:
            kwargs["from_"] = self.from_number

        # Twilio's client is blocking
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None,
                lambda: self.client.messages.create(**kwargs)
            )
        except TwilioException as e:
            logger.error(f"Twilio error sending SMS to {mask_phone(to_number)}: {str(e)}")
            raise TransportError(str(e)) from e

        logger.info(f"SMS sent to {mask_phone(to_number)}, SID: {result.sid}")
        return result.sid
