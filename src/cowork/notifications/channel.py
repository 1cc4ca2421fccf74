#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from abc import ABC, abstractmethod
from typing import NamedTuple

from cowork.aliases import ChannelId, MessageId


class MessageDelivery(NamedTuple):
    success: bool
    # id of the posted message, when the service returned one
    message_id: MessageId | None = None


class NotificationChannel(ABC):
    """Posts text messages to a chat service. Implementations report
    failures through their return values instead of raising."""

    @abstractmethod
    def send_message(self, channel_id: ChannelId, text: str) -> MessageDelivery: ...

    @abstractmethod
    def edit_message(
        self, channel_id: ChannelId, message_id: MessageId, text: str
    ) -> bool:
        """Replace the content of a message posted earlier."""
