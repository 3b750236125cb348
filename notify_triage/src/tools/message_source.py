import base64
import re
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Iterable

from notify_triage.src.data_models import InboundMessage
from notify_triage.src.logger import logger

# --- Abstract Base Class ---

class BaseMessageSource(ABC):
    """
    Abstract base class for pulling inbound messages from a provider.

    `channel` is the policy scope key under which the user's filters for this
    source are stored ("gmail", "imap", "telegram", ...).
    """

    channel: str = ""

    @abstractmethod
    def connect(self) -> Any:
        """Connect to the provider and return a service object."""
        pass

    @abstractmethod
    def fetch_raw_messages(self, service: Any, max_count: int) -> List[Dict[str, Any]]:
        """Fetch a list of raw, unprocessed messages."""
        pass

    @abstractmethod
    def parse_message(self, raw_message: Dict[str, Any]) -> Optional[InboundMessage]:
        """Parse a raw message into a normalized InboundMessage."""
        pass

    def get_messages(self, max_count: int = 10) -> List[InboundMessage]:
        """High-level method to connect, fetch, and parse messages."""
        logger.info(f"Starting {self.channel} fetch process for max {max_count} messages.")
        service = self.connect()
        if not service:
            return []
        raw_messages = self.fetch_raw_messages(service, max_count)
        parsed_messages = [self.parse_message(message) for message in raw_messages if message]
        # Filter out any None results from parsing failures
        valid_messages = [message for message in parsed_messages if message]
        logger.info(f"Successfully fetched and parsed {len(valid_messages)} {self.channel} messages.")
        return valid_messages


# --- Gmail Implementation ---

def _decode_part_data(data: str) -> str:
    return base64.urlsafe_b64decode(data.encode("ASCII")).decode("utf-8", errors="replace")


def _find_plain_text(payload: Dict[str, Any]) -> str:
    """Depth-first search for the first text/plain part of a Gmail message payload."""
    if payload.get("mimeType") == "text/plain" and payload.get("body", {}).get("data"):
        return _decode_part_data(payload["body"]["data"])
    for part in payload.get("parts", []) or []:
        text = _find_plain_text(part)
        if text:
            return text
    return ""


class GmailMessageSource(BaseMessageSource):
    """
    Pulls unread inbox messages through an already authorized Gmail API service
    (the object returned by googleapiclient's `build("gmail", "v1", ...)`).
    """

    channel = "gmail"

    def __init__(self, service: Any, query: str = "is:unread"):
        self.service = service
        self.query = query

    def connect(self) -> Optional[Any]:
        return self.service

    def fetch_raw_messages(self, service: Any, max_count: int = 10) -> List[Dict[str, Any]]:
        try:
            results = service.users().messages().list(userId="me", labelIds=["INBOX"], q=self.query, maxResults=max_count).execute()
            messages = results.get("messages", [])

            message_details = []
            if not messages:
                logger.info("No unread messages found.")
            else:
                for message in messages:
                    msg = service.users().messages().get(userId="me", id=message["id"]).execute()
                    message_details.append(msg)
            return message_details
        except Exception as error:
            logger.error(f"An error occurred fetching emails: {error}")
            return []

    def parse_message(self, raw_message: Dict[str, Any]) -> Optional[InboundMessage]:
        """Parses the Gmail API message resource."""
        try:
            payload = raw_message["payload"]
            headers = payload.get("headers", [])
            subject = next((h["value"] for h in headers if h["name"].lower() == "subject"), "")
            sender = next((h["value"] for h in headers if h["name"].lower() == "from"), "")

            body = _find_plain_text(payload) or raw_message.get("snippet", "")

            # Clean up sender format
            match = re.search(r'<(.+?)>', sender)
            if match:
                sender = match.group(1)

            # internalDate is epoch milliseconds as a string
            internal_date = raw_message.get("internalDate")
            timestamp = int(internal_date) // 1000 if internal_date else None

            return InboundMessage(
                id=raw_message["id"],
                sender=sender.strip(),
                subject=subject.strip() or None,
                body=body.strip(),
                timestamp=timestamp,
                chat_name=None,
            )
        except Exception as e:
            logger.error(f"Error parsing email with ID {raw_message.get('id', 'N/A')}: {e}")
            return None


# --- Bridged Chat Implementation ---

BRIDGE_ROOM_SUFFIXES = (" (WA)", " (Telegram)")


class BridgedChatSource(BaseMessageSource):
    """
    Normalizes chat events relayed through a Matrix bridge (Telegram, WhatsApp, ...).

    Events are dicts shaped like Matrix room message events:
    `event_id`, `sender` (e.g. "@telegram_12345:example.org"), `room_name`,
    `content.body` and `origin_server_ts` (epoch milliseconds).
    """

    def __init__(self, channel: str, events: Iterable[Dict[str, Any]]):
        self.channel = channel
        self.events = events

    def connect(self) -> Optional[Any]:
        return self.events

    def fetch_raw_messages(self, service: Any, max_count: int = 10) -> List[Dict[str, Any]]:
        pending = list(service or [])
        return pending[:max_count]

    def _sender_name(self, matrix_user_id: str) -> str:
        localpart = matrix_user_id.lstrip("@").split(":", 1)[0]
        prefix = f"{self.channel}_"
        return localpart[len(prefix):] if localpart.startswith(prefix) else localpart

    @staticmethod
    def _room_name(raw_room_name: str) -> str:
        for suffix in BRIDGE_ROOM_SUFFIXES:
            if raw_room_name.endswith(suffix):
                return raw_room_name[:-len(suffix)].strip()
        return raw_room_name.strip()

    def parse_message(self, raw_message: Dict[str, Any]) -> Optional[InboundMessage]:
        try:
            content = raw_message.get("content") or {}
            body = content.get("body") or ""
            if content.get("msgtype", "m.text") != "m.text" or not body:
                logger.debug(f"Skipping non-text {self.channel} event {raw_message.get('event_id')}")
                return None

            origin_server_ts = raw_message.get("origin_server_ts")
            return InboundMessage(
                id=raw_message["event_id"],
                sender=self._sender_name(raw_message.get("sender", "")),
                subject=None,
                body=body.strip(),
                timestamp=int(origin_server_ts) // 1000 if origin_server_ts else None,
                chat_name=self._room_name(raw_message.get("room_name", "")) or None,
            )
        except Exception as e:
            logger.error(f"Error parsing {self.channel} event {raw_message.get('event_id', 'N/A')}: {e}")
            return None
