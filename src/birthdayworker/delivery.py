"""Delivery channels that send a birthday greeting to one member."""

import asyncio
import logging
from typing import Optional, Protocol, Union

import httpx
from telegram import Bot
from telegram.error import BadRequest, Forbidden, TelegramError

from birthdayworker.config import DeliveryConfig
from birthdayworker.errors import PermanentDeliveryError, TransientDeliveryError
from birthdayworker.models import Member


# Status codes that are worth retrying even though they are 4xx
RETRYABLE_CLIENT_STATUSES = {408, 425, 429}


class DeliveryCall(Protocol):
    """A single, fallible delivery attempt.

    Returning normally means the greeting was delivered. Raising
    PermanentDeliveryError stops retries; any other exception is retried.
    """

    async def deliver(self, member: Member) -> None: ...


def format_greeting(member: Member) -> str:
    """Build the greeting text for a member.

    Args:
        member: The member whose birthday it is.

    Returns:
        Message text.
    """
    return f"🎂 Happy Birthday, {member.name}! 🎉"


class LogDelivery:
    """Writes the greeting to the log instead of sending it anywhere."""

    def __init__(
        self,
        latency_seconds: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.latency_seconds = latency_seconds
        self.logger = logger or logging.getLogger(__name__)

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def deliver(self, member: Member) -> None:
        self.logger.info(f"{format_greeting(member)} -> {member.contact}")
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)


class TelegramDelivery:
    """Sends greetings as Telegram messages; ``member.contact`` is the chat id."""

    def __init__(self, token: str, bot: Optional[Bot] = None) -> None:
        """Initialize the Telegram channel.

        Args:
            token: Telegram bot token.
            bot: Pre-built bot, mainly for tests.
        """
        if bot is None and not token:
            raise ValueError("Telegram bot token not configured")
        self.bot = bot or Bot(token=token)
        self._opened = False

    async def open(self) -> None:
        if not self._opened:
            await self.bot.initialize()
            self._opened = True

    async def close(self) -> None:
        if self._opened:
            await self.bot.shutdown()
            self._opened = False

    async def deliver(self, member: Member) -> None:
        """Send the greeting.

        Raises:
            PermanentDeliveryError: If Telegram rejects the chat or message.
            TransientDeliveryError: For network and other API errors.
        """
        try:
            await self.bot.send_message(
                chat_id=member.contact,
                text=format_greeting(member),
            )
        except (BadRequest, Forbidden) as e:
            raise PermanentDeliveryError(
                f"Telegram rejected chat {member.contact}: {e}"
            ) from e
        except TelegramError as e:
            raise TransientDeliveryError(f"Telegram error: {e}") from e


class WebhookDelivery:
    """POSTs greetings as JSON to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the webhook channel.

        Args:
            url: Endpoint receiving the greeting payloads.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        if not url:
            raise ValueError("Webhook URL not configured")
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_payload(self, member: Member) -> dict[str, object]:
        return {
            "member_id": member.id,
            "name": member.name,
            "contact": member.contact,
            "message": format_greeting(member),
        }

    async def deliver(self, member: Member) -> None:
        """POST the greeting.

        Raises:
            PermanentDeliveryError: On 4xx responses other than 408/425/429.
            TransientDeliveryError: On 5xx, retryable 4xx, and transport errors.
        """
        if self._client is None:
            await self.open()
        assert self._client is not None

        try:
            response = await self._client.post(
                self.url, json=self.build_payload(member)
            )
        except httpx.HTTPError as e:
            raise TransientDeliveryError(f"Webhook request failed: {e}") from e

        status = response.status_code
        if status < 400:
            return
        if 400 <= status < 500 and status not in RETRYABLE_CLIENT_STATUSES:
            raise PermanentDeliveryError(
                f"Webhook rejected member {member.id}: HTTP {status}"
            )
        raise TransientDeliveryError(f"Webhook returned HTTP {status}")


Channel = Union[LogDelivery, TelegramDelivery, WebhookDelivery]


def build_delivery(config: DeliveryConfig) -> Channel:
    """Create the delivery channel selected in the configuration.

    Args:
        config: Delivery configuration.

    Returns:
        The configured channel.

    Raises:
        ValueError: If the channel name is unknown or incomplete.
    """
    channel = config.channel.lower()
    if channel == "log":
        return LogDelivery()
    if channel == "telegram":
        return TelegramDelivery(token=config.telegram_token or "")
    if channel == "webhook":
        return WebhookDelivery(
            url=config.webhook_url or "", timeout=config.webhook_timeout
        )
    raise ValueError(f"Unknown delivery channel: {config.channel}")
