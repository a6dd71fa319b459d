"""Transport and recipient directory interfaces"""

from typing import Optional, Dict, Protocol, runtime_checkable
import uuid

from notifyq.models import Notification, DeliveryChannel

@runtime_checkable
class Transport(Protocol):
    """Sends one notification over one external channel"""

    channel: DeliveryChannel

    async def send(self, notification: Notification, recipient: str) -> Optional[str]:
        """
        Send the notification

        Returns:
            Provider reference (message id, SID), if the provider returns one

        Raises:
            TransportError: Provider rejected the send
        """
        ...

@runtime_checkable
class RecipientDirectory(Protocol):
    """Resolves where a user receives a channel: device token, email address, phone"""

    async def resolve(self, user_id: uuid.UUID, channel: DeliveryChannel) -> Optional[str]:
        ...

class StaticRecipientDirectory:
    """In-memory directory, {user_id: {channel: address}}"""

    def __init__(self, addresses: Optional[Dict[uuid.UUID, Dict[str, str]]] = None):
        self.addresses = addresses or {}

    def add(self, user_id: uuid.UUID, channel: DeliveryChannel, address: str) -> None:
        self.addresses.setdefault(user_id, {})[DeliveryChannel(channel).value] = address

    async def resolve(self, user_id: uuid.UUID, channel: DeliveryChannel) -> Optional[str]:
        return self.addresses.get(user_id, {}).get(DeliveryChannel(channel).value)
