"""Push delivery service using the Expo push API."""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, List, Any

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

_EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[.+\]$")
_EXPO_UUID_RE = re.compile(
    r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE
)


@dataclass
class PushConfig:
    """Expo push API configuration."""
    url: str = "https://exp.host/--/api/v2/push/send"
    access_token: Optional[str] = None
    chunk_size: int = 100
    timeout: float = 30.0


@dataclass
class PushMessage:
    """A single Expo push message."""
    to: str
    title: str
    body: str
    data: dict = field(default_factory=dict)
    sound: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {"to": self.to, "title": self.title, "body": self.body, "data": self.data}
        if self.sound is not None:
            payload["sound"] = self.sound
        return payload


@dataclass
class PushTicket:
    """Delivery ticket returned by Expo for one message."""
    status: str
    id: Optional[str] = None
    message: Optional[str] = None
    details: Optional[dict] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "PushTicket":
        return cls(
            status=raw.get("status", "error"),
            id=raw.get("id"),
            message=raw.get("message"),
            details=raw.get("details"),
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {"status": self.status}
        if self.id is not None:
            result["id"] = self.id
        if self.message is not None:
            result["message"] = self.message
        if self.details is not None:
            result["details"] = self.details
        return result


@dataclass
class SendResult:
    """Aggregated outcome of a send across all chunks."""
    tickets: List[PushTicket] = field(default_factory=list)
    success_count: int = 0
    fail_count: int = 0


def is_valid_token(token: Any) -> bool:
    """Check a token against the Expo push token grammar. No I/O."""
    if not isinstance(token, str):
        return False
    return bool(_EXPO_TOKEN_RE.match(token) or _EXPO_UUID_RE.match(token))


def extract_ticket_id(ticket: Optional[PushTicket]) -> Optional[str]:
    """Return the ticket id only for tickets with status 'ok'."""
    if ticket is not None and ticket.status == "ok" and ticket.id:
        return ticket.id
    return None


def delivery_error(result: SendResult) -> Optional[str]:
    """Describe why a single-recipient send did not go out, or None if it did.

    Expo error tickets carry the reason in details.error (for example
    DeviceNotRegistered), which is appended to the message.
    """
    if result.fail_count:
        return "Push provider request failed"
    if not result.tickets:
        return "Push provider returned no ticket"

    ticket = result.tickets[0]
    if ticket.status == "ok":
        return None
    reason = (ticket.details or {}).get("error")
    message = ticket.message or "Push provider rejected the message"
    return f"{message} ({reason})" if reason else message


class PushSenderService:
    """Service for sending push notifications via the Expo push API."""

    def __init__(self, config: Optional[PushConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config or PushConfig()
        # Custom transport is used by tests to stand in for Expo
        self._transport = transport

    def configure(self, config: PushConfig):
        """Replace the Expo configuration."""
        self._config = config
        logger.info(f"Expo push configured (url={config.url}, chunk_size={config.chunk_size})")

    @property
    def config(self) -> PushConfig:
        return self._config

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self._config.access_token:
            headers["Authorization"] = f"Bearer {self._config.access_token}"
        return headers

    def chunk_messages(self, messages: List[PushMessage]) -> List[List[PushMessage]]:
        """Split messages into Expo-sized chunks."""
        size = max(1, self._config.chunk_size)
        return [messages[i:i + size] for i in range(0, len(messages), size)]

    async def _send_chunk(self, client: httpx.AsyncClient, chunk: List[PushMessage]) -> List[PushTicket]:
        """Submit one chunk. Raises on transport or provider failure."""
        response = await client.post(
            self._config.url,
            json=[message.to_payload() for message in chunk],
            headers=self._headers(),
        )
        response.raise_for_status()

        body = response.json()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list) or not all(isinstance(raw, dict) for raw in data):
            raise ValueError(f"Unexpected Expo response body: {response.text[:200]}")
        return [PushTicket.from_dict(raw) for raw in data]

    async def send(self, messages: List[PushMessage]) -> SendResult:
        """Send messages in chunks.

        A failing chunk counts all of its messages as failed and the remaining
        chunks are still sent. An accepted chunk counts all of its messages as
        successful, even when individual tickets report an error.

        Args:
            messages: Messages to deliver

        Returns:
            SendResult with tickets from accepted chunks and the counts
        """
        result = SendResult()
        if not messages:
            return result

        async with httpx.AsyncClient(timeout=self._config.timeout, transport=self._transport) as client:
            for index, chunk in enumerate(self.chunk_messages(messages)):
                try:
                    tickets = await self._send_chunk(client, chunk)
                except (httpx.HTTPError, ValueError) as e:
                    result.fail_count += len(chunk)
                    logger.error(f"Expo send failed for chunk {index} ({len(chunk)} messages): {e}")
                    continue

                result.tickets.extend(tickets)
                result.success_count += len(chunk)

        logger.info(
            f"Push messages sent: {result.success_count} success, {result.fail_count} failed"
        )
        return result

    async def send_one(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
    ) -> SendResult:
        """Send a single notification to one token."""
        return await self.send([PushMessage(to=token, title=title, body=body, data=data or {})])


def _config_from_settings() -> PushConfig:
    return PushConfig(
        url=settings.expo_push_url,
        access_token=settings.expo_access_token,
        chunk_size=settings.push_chunk_size,
        timeout=settings.push_timeout_seconds,
    )


# Global instance
push_sender_service = PushSenderService(_config_from_settings())


def get_push_sender() -> PushSenderService:
    """Dependency returning the shared push sender."""
    return push_sender_service
