"""Channel provider clients and channel lifecycle management."""

from whatsdesk.services.channels.base import ChannelClient, ProviderInstance, SendResult
from whatsdesk.services.channels.manager import ChannelCreation, ChannelManager
from whatsdesk.services.channels.uazapi import UazapiClient

__all__ = [
    "ChannelClient",
    "ChannelCreation",
    "ChannelManager",
    "ProviderInstance",
    "SendResult",
    "UazapiClient",
]
