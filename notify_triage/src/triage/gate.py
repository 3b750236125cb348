import time
from typing import Optional

from notify_triage.src.data_models import InboundMessage


def effective_timestamp(message: InboundMessage, now: Optional[int] = None) -> int:
    """The message's own timestamp, or the current time when it carries none."""
    timestamp = message.get('timestamp')
    if timestamp is None:
        return int(now if now is not None else time.time())
    return int(timestamp)


def passes_activation_gate(message_timestamp: int, last_activated: int) -> bool:
    # Messages at or before the watermark predate the filter being (re-)enabled
    return message_timestamp > last_activated
