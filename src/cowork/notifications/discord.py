#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from typing import Any

import requests

from cowork.aliases import ChannelId, MessageId
from cowork.constants import DEFAULT_REQUEST_TIMEOUT_SECONDS
from cowork.exceptions import UpstreamUnavailable
from cowork.http_utils import retry_transient, send_request
from cowork.notifications.channel import MessageDelivery, NotificationChannel

logger = logging.getLogger(__name__)

DISCORD_API_URL = "https://discord.com/api/v10"
# Discord rejects messages longer than this
MAX_MESSAGE_LENGTH = 2000


class DiscordChannel(NotificationChannel):
    """Sends and edits messages as a Discord bot.

    Parameters
    ----------
    bot_token
        Token of the bot, which must be allowed to post in the target channels.
    timeout
        Timeout, in seconds, applied to every request.
    """

    def __init__(
        self,
        bot_token: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        api_url: str = DISCORD_API_URL,
        session: requests.Session | None = None,
    ):
        if not bot_token:
            raise ValueError("A Discord bot token is required")
        self._api_url = api_url.rstrip("/")
        self._timeout = float(timeout)
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bot {bot_token}",
                "Content-Type": "application/json",
            }
        )

    @retry_transient
    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        return send_request(self._session, method, url, self._timeout, **kwargs)

    @staticmethod
    def _payload(text: str) -> dict[str, str]:
        if len(text) > MAX_MESSAGE_LENGTH:
            logger.warning(
                f"Truncating message of {len(text)} characters to {MAX_MESSAGE_LENGTH}"
            )
            text = text[:MAX_MESSAGE_LENGTH]
        return {"content": text}

    def send_message(self, channel_id: ChannelId, text: str) -> MessageDelivery:
        url = f"{self._api_url}/channels/{channel_id}/messages"
        try:
            response = self._send("POST", url, json=self._payload(text))
        except UpstreamUnavailable as e:
            logger.error(f"Failed to send message to channel {channel_id}: {e}")
            return MessageDelivery(success=False)
        if response.status_code == 404:
            logger.error(f"Channel {channel_id} not found")
            return MessageDelivery(success=False)
        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        return MessageDelivery(success=True, message_id=message_id)

    def edit_message(
        self, channel_id: ChannelId, message_id: MessageId, text: str
    ) -> bool:
        url = f"{self._api_url}/channels/{channel_id}/messages/{message_id}"
        try:
            response = self._send("PATCH", url, json=self._payload(text))
        except UpstreamUnavailable as e:
            logger.error(f"Failed to edit message {message_id}: {e}")
            return False
        if response.status_code == 404:
            logger.error(f"Message {message_id} not found in channel {channel_id}")
            return False
        return True
