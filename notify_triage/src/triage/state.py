from typing import TypedDict, List, Optional, Callable, Any

from notify_triage.src.data_models import InboundMessage, Verdict, TriageDecision, EvaluationRecord
from notify_triage.src.triage.policy import ResolvedPolicy


class TriageState(TypedDict):
    """
    The central state for one triage call. It's passed between nodes in the graph,
    accumulating decisions as the messages of the batch are processed one by one.
    """
    # --- Call Inputs ---
    user_id: str
    # Policy scope key of the message source, e.g. "imap" or "telegram"
    channel: str
    last_activated: int
    importance_threshold: Optional[int]

    # --- Batch Processing State ---
    # The pulled batch, in the order it is processed
    inbox: List[InboundMessage]
    # The index of the next message to process
    current_message_index: int
    # Filled in by the resolve_policy node
    resolved_policy: Optional[ResolvedPolicy]

    # --- Per-Message Processing State (cleared for each new message) ---
    current_message: Optional[InboundMessage]
    message_timestamp: Optional[int]
    verdict: Optional[Verdict]

    # --- Output ---
    decisions: List[TriageDecision]
    # Built on first use by the ai_evaluate node
    evaluator: Optional[Any]

    # --- Collaborators ---
    llm: Any
    on_judgment: Optional[Callable[[EvaluationRecord], None]]
