from functools import partial
from typing import Callable, List, Optional

from langgraph.graph import StateGraph, END

from notify_triage.src.config import config
from notify_triage.src.data_models import InboundMessage, TriageDecision, EvaluationRecord
from notify_triage.src.logger import logger
from notify_triage.src.repository import BaseFilterRepository
from notify_triage.src.tools.message_source import BaseMessageSource
from notify_triage.src.triage.gate import passes_activation_gate
from notify_triage.src.triage.nodes import (
    resolve_policy_node,
    check_for_messages_node,
    select_next_message_node,
    activation_gate_node,
    fast_path_node,
    ai_evaluate_node,
    record_decision_node,
)
from notify_triage.src.triage.state import TriageState

# Upper bound of graph steps spent on a single message
STEPS_PER_MESSAGE = 6


# Conditional Edge Functions
def has_messages_to_process(state: TriageState) -> str:
    """
    Ends the run once the batch is exhausted, or immediately when every category is inactive.
    """
    logger.info("---COND: CHECKING FOR MORE MESSAGES---")
    resolved = state.get('resolved_policy')
    if resolved is None or not resolved.policy.any_active:
        logger.info("All filter categories are inactive. Ending workflow.")
        return "end"
    current_index = state.get('current_message_index', 0)
    inbox_size = len(state.get('inbox', []))
    if current_index < inbox_size:
        return "continue"
    logger.info(f"Batch finished after {inbox_size} messages with {len(state.get('decisions', []))} decisions.")
    return "end"


def route_after_gate(state: TriageState) -> str:
    logger.info("---COND: CHECKING ACTIVATION WATERMARK---")
    last_activated = state['resolved_policy'].policy.last_activated
    if passes_activation_gate(state['message_timestamp'], last_activated):
        return "pass"
    logger.info(
        f"Message {state['current_message'].get('id')} at {state['message_timestamp']} "
        f"is not newer than activation watermark {last_activated}, skipping"
    )
    return "skip"


def route_after_fast_path(state: TriageState) -> str:
    """
    Routes a fast-path match straight to the output, otherwise to the LLM when general analysis is on.
    """
    logger.info("---COND: ROUTING AFTER FAST PATH---")
    if state.get('verdict') is not None:
        return "matched"
    if state['resolved_policy'].policy.general_active:
        logger.info("No fast checks matched, falling back to LLM evaluation.")
        return "evaluate"
    logger.info("No fast checks matched and general importance check is disabled, skipping.")
    return "skip"


def build_triage_graph(repository: BaseFilterRepository = None):
    """
    Builds and compiles the LangGraph workflow for one triage call.
    """
    workflow = StateGraph(TriageState)
    # instantiate nodes with partial dependencies
    resolve_policy_node_runnable = partial(resolve_policy_node, repository=repository)
    # Add nodes
    workflow.add_node("resolve_policy", resolve_policy_node_runnable)
    workflow.add_node("check_for_messages", check_for_messages_node)
    workflow.add_node("select_next_message", select_next_message_node)
    workflow.add_node("activation_gate", activation_gate_node)
    workflow.add_node("fast_path", fast_path_node)
    workflow.add_node("ai_evaluate", ai_evaluate_node)
    workflow.add_node("record_decision", record_decision_node)
    # Set the entry point
    workflow.set_entry_point("resolve_policy")
    # Core Graph Edges
    workflow.add_edge("resolve_policy", "check_for_messages")
    workflow.add_conditional_edges(
        "check_for_messages",
        has_messages_to_process,
        {
            "continue": "select_next_message",
            "end": END
        }
    )
    workflow.add_edge("select_next_message", "activation_gate")
    workflow.add_conditional_edges(
        "activation_gate",
        route_after_gate,
        {
            "pass": "fast_path",
            "skip": "check_for_messages"
        }
    )
    workflow.add_conditional_edges(
        "fast_path",
        route_after_fast_path,
        {
            "matched": "record_decision",
            "evaluate": "ai_evaluate",
            "skip": "check_for_messages"
        }
    )
    workflow.add_edge("ai_evaluate", "record_decision")
    # After processing a message, loop back to check for the next one
    workflow.add_edge("record_decision", "check_for_messages")
    # Compile the graph
    triage_graph = workflow.compile()
    logger.info("Triage workflow graph compiled successfully!")
    return triage_graph


def triage_messages(
        user_id: str,
        channel: str,
        messages: List[InboundMessage],
        repository: BaseFilterRepository,
        last_activated: int,
        importance_threshold: Optional[int] = None,
        llm=None,
        on_judgment: Optional[Callable[[EvaluationRecord], None]] = None
) -> List[TriageDecision]:
    """
    Decides which messages of a pulled batch the user should be notified about.

    Args:
        user_id: Owner of the filter policy.
        channel: Policy scope key ("imap", "telegram", ...).
        messages: The batch, already normalized.
        repository: Source of the filter policy and rule lists.
        last_activated: Messages at or before this epoch-seconds watermark are ignored.
        importance_threshold: 0-10 threshold for the AI tier; None falls back to the stored or default one.
        llm: Chat model for the AI tier; built by LLMFactory on first use when omitted.
        on_judgment: Optional callback receiving every successful AI evaluation.

    Returns:
        The (message, verdict) pairs to notify about, in message order.

    Raises:
        ConfigurationUnavailableError: If the general-checks prompt cannot be loaded.
    """
    triage_graph = build_triage_graph(repository=repository)
    initial_state: TriageState = {
        "user_id": user_id,
        "channel": channel,
        "last_activated": last_activated,
        "importance_threshold": importance_threshold,
        "inbox": list(messages),
        "current_message_index": 0,
        "resolved_policy": None,
        "current_message": None,
        "message_timestamp": None,
        "verdict": None,
        "decisions": [],
        "evaluator": None,
        "llm": llm,
        "on_judgment": on_judgment,
    }
    recursion_limit = STEPS_PER_MESSAGE * len(initial_state['inbox']) + 10
    final_state = triage_graph.invoke(initial_state, config={"recursion_limit": recursion_limit})
    decisions = final_state.get('decisions', [])
    logger.info(f"Triage for user {user_id} on {channel}: {len(decisions)} of {len(initial_state['inbox'])} messages to notify")
    return decisions


def triage_source(
        user_id: str,
        source: BaseMessageSource,
        repository: BaseFilterRepository,
        last_activated: int,
        importance_threshold: Optional[int] = None,
        llm=None,
        on_judgment: Optional[Callable[[EvaluationRecord], None]] = None
) -> List[TriageDecision]:
    """Pulls a batch from a message source and triages it under the source's channel."""
    messages = source.get_messages(max_count=config.max_messages_per_batch)
    return triage_messages(
        user_id,
        source.channel,
        messages,
        repository,
        last_activated,
        importance_threshold=importance_threshold,
        llm=llm,
        on_judgment=on_judgment,
    )
