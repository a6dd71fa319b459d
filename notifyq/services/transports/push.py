"""Firebase push notification transport"""

from typing import Optional, Dict
import asyncio
import logging
from pathlib import Path

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError

from notifyq.models import Notification, DeliveryChannel
from notifyq.core.config import settings
from notifyq.core.exceptions import TransportError

logger = logging.getLogger(__name__)

# FCM priority per notification priority name
ANDROID_PRIORITY = {
    "urgent": "high",
    "high": "high",
    "normal": "normal",
    "low": "normal",
}

class PushTransport:
    """Push notifications to a device token via Firebase Cloud Messaging"""

    channel = DeliveryChannel.PUSH

    def __init__(self, credentials_path: Optional[str] = None, app: Optional[firebase_admin.App] = None):
        self.app = app
        self.initialized = app is not None
        if self.initialized:
            return

        cred_path = Path(credentials_path or settings.FIREBASE_CREDENTIALS_PATH or "")
        if not cred_path.is_file():
            logger.error(f"Firebase credentials not found at {cred_path}")
            return

        try:
            cred = credentials.Certificate(str(cred_path))
            self.app = firebase_admin.initialize_app(cred, name="notifyq")
            self.initialized = True
            logger.info("Firebase Admin SDK initialized successfully")
        except (ValueError, OSError) as e:
            logger.error(f"Failed to initialize Firebase: {str(e)}")

    def build_message(self, notification: Notification, token: str) -> messaging.Message:
        # FCM data values must be strings
        data: Dict[str, str] = {
            "notification_id": str(notification.id),
            "type": notification.type,
        }
        if notification.action_url:
            data["action_url"] = notification.action_url
        for key, value in (notification.data or {}).items():
            data.setdefault(str(key), str(value))

        return messaging.Message(
            notification=messaging.Notification(
                title=notification.title,
                body=notification.message
            ),
            data=data,
            token=token,
            android=messaging.AndroidConfig(
                priority=ANDROID_PRIORITY.get(notification.priority, "normal"),
                notification=messaging.AndroidNotification(sound="default")
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(sound="default", badge=1)
                )
            )
        )

    async def send(self, notification: Notification, recipient: str) -> Optional[str]:
        if not self.initialized:
            raise TransportError("Firebase not initialized")

        message = self.build_message(notification, recipient)
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: messaging.send(message, app=self.app)
            )
        except messaging.UnregisteredError as e:
            logger.warning(f"Push token for user {notification.user_id} is unregistered")
            raise TransportError(f"Device token unregistered: {e}") from e
        except FirebaseError as e:
            logger.error(f"Error sending push notification: {str(e)}")
            raise TransportError(str(e)) from e

        logger.info(f"Successfully sent push notification: {response}")
        return response
