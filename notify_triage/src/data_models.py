from typing import TypedDict, Optional, NamedTuple
from pydantic import BaseModel, ConfigDict, Field

from notify_triage.src.config import config


class InboundMessage(TypedDict, total=False):
    """A normalized inbound message (email or chat) as handed over by a message source."""
    id: str
    sender: str
    subject: Optional[str]
    body: str
    # Epoch seconds; absent or None means "now"
    timestamp: Optional[int]
    # Room / chat name for chat channels, None for email
    chat_name: Optional[str]


class WaitingCheck(TypedDict, total=False):
    """A phrase the user is explicitly waiting for."""
    id: int
    content: str
    remove_when_found: bool


class PrioritySender(TypedDict):
    sender: str


class Keyword(TypedDict):
    keyword: str


class FilterPolicy(BaseModel):
    """Per-user, per-channel switches and parameters for the triage pipeline."""
    model_config = ConfigDict(frozen=True)

    keywords_active: bool = True
    priority_senders_active: bool = True
    waiting_checks_active: bool = True
    general_active: bool = True
    threshold: int = Field(default_factory=lambda: config.default_importance_threshold, ge=0, le=10)
    last_activated: int = 0
    general_checks_prompt: str = ""

    @property
    def any_active(self) -> bool:
        return (self.keywords_active or self.priority_senders_active
                or self.waiting_checks_active or self.general_active)


class Verdict(BaseModel):
    """The notify decision for a single message. Only notifying verdicts are ever returned."""
    model_config = ConfigDict(frozen=True)

    should_notify: bool = True
    reason: str
    score: float = Field(ge=0, le=10)
    matched_waiting_check: Optional[int] = None
    message_timestamp: int


class TriageDecision(NamedTuple):
    """A (message, verdict) pair the caller should turn into a notification."""
    message: InboundMessage
    verdict: Verdict


class EvaluationRecord(BaseModel):
    """Outcome of one successful AI evaluation, notify or not, for caller-side judgment logs."""
    message_id: Optional[str]
    message_timestamp: int
    processed_at: int
    should_notify: bool
    score: float
    reason: str
