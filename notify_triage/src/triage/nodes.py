from notify_triage.src.llm_factory import LLMFactory
from notify_triage.src.logger import logger
from notify_triage.src.repository import BaseFilterRepository
from notify_triage.src.triage.aggregator import record_decision
from notify_triage.src.triage.evaluator import AIEvaluator
from notify_triage.src.triage.gate import effective_timestamp
from notify_triage.src.triage.matchers import run_fast_path
from notify_triage.src.triage.policy import resolve_policy
from notify_triage.src.triage.state import TriageState


# Node Functions
def resolve_policy_node(state: TriageState, repository: BaseFilterRepository = None) -> dict:
    """Loads the user's filter policy. Raises ConfigurationUnavailableError before any message is processed."""
    logger.info("---NODE: RESOLVING FILTER POLICY---")
    resolved = resolve_policy(
        repository,
        state['user_id'],
        state['channel'],
        state.get('last_activated', 0),
        state.get('importance_threshold'),
    )
    return {"resolved_policy": resolved}


def check_for_messages_node(state: TriageState) -> TriageState:
    """Dummy node to serve as the entry point for the message processing loop."""
    return state


def select_next_message_node(state: TriageState) -> dict:
    """Selects the next message from the inbox and clears the per-message fields."""
    logger.info("---NODE: SELECTING NEXT MESSAGE---")
    current_index = state.get('current_message_index', 0)
    inbox = state.get('inbox', [])
    current_message = inbox[current_index]
    logger.info(f"Selected message {current_index + 1}/{len(inbox)}: {current_message.get('id')}")
    return {
        "current_message": current_message,
        "current_message_index": current_index + 1,
        "message_timestamp": None,
        "verdict": None,
    }


def activation_gate_node(state: TriageState) -> dict:
    """Stamps the current message with its effective timestamp."""
    logger.info("---NODE: ACTIVATION GATE---")
    return {"message_timestamp": effective_timestamp(state['current_message'])}


def fast_path_node(state: TriageState) -> dict:
    """Runs the deterministic tiers against the current message."""
    logger.info("---NODE: FAST PATH MATCHING---")
    verdict = run_fast_path(state['current_message'], state['resolved_policy'], state['message_timestamp'])
    return {"verdict": verdict}


def ai_evaluate_node(state: TriageState) -> dict:
    """Falls back to the LLM for a message no fast-path tier matched."""
    logger.info("---NODE: AI EVALUATION---")
    evaluator = state.get('evaluator')
    if evaluator is None:
        llm = state.get('llm') or LLMFactory.get_instance()
        evaluator = AIEvaluator(llm, state['resolved_policy'], state['channel'], on_judgment=state.get('on_judgment'))
    verdict = evaluator.evaluate(state['current_message'], state['message_timestamp'])
    return {"verdict": verdict, "evaluator": evaluator}


def record_decision_node(state: TriageState) -> dict:
    """Adds the current message to the output when it produced a notifying verdict."""
    logger.info("---NODE: RECORDING DECISION---")
    decisions = record_decision(state.get('decisions', []), state['current_message'], state.get('verdict'))
    return {"decisions": decisions, "current_message": None, "verdict": None}
