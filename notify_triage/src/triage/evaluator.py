"""
LLM fallback judgment for messages the fast path did not match.

The model is forced to answer through the `evaluate_message` tool so its verdict
always arrives as structured arguments. Any failure for a message (API error,
timeout, missing tool call, unparsable arguments) is logged and yields no verdict;
it never stops the rest of the batch.
"""
import time
from typing import Callable, List, Optional

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from notify_triage.src.config import config
from notify_triage.src.data_models import InboundMessage, Verdict, EvaluationRecord
from notify_triage.src.logger import logger
from notify_triage.src.prompts.prompt_manager import prompt_manager
from notify_triage.src.triage.policy import ResolvedPolicy

TOOL_NAME = "evaluate_message"

EMAIL_CHANNELS = {"imap", "gmail", "outlook", "email"}


class EvaluateMessage(BaseModel):
    """Evaluate message importance and determine if notification is needed"""
    model_config = ConfigDict(title=TOOL_NAME)

    should_notify: bool = Field(description="Whether the user should be notified about this message")
    reason: str = Field(description="Explanation for why the user should or should not be notified")
    score: float = Field(ge=0, le=10, allow_inf_nan=False, description="Importance score from 0 to 10")
    matched_waiting_check: Optional[int] = Field(
        description="The ID of the waiting check that was matched, if any. "
                    "Must be the exact ID from the waiting checks list, otherwise null."
    )


DEFAULT_REASON = "No reason provided"
DEFAULT_SCORE = 0.0


class ToolVerdict(EvaluateMessage):
    """
    Lenient reading of `evaluate_message` arguments.

    Missing fields are filled in and out-of-range scores clamped by `to_verdict`;
    NaN or infinite scores are rejected.
    """
    should_notify: bool = False
    reason: Optional[str] = None
    score: Optional[float] = Field(default=None, allow_inf_nan=False)
    matched_waiting_check: Optional[int] = None

    def to_verdict(self, message_timestamp: int, known_waiting_check_ids: set) -> Verdict:
        score = DEFAULT_SCORE if self.score is None else min(max(self.score, 0.0), 10.0)
        matched = self.matched_waiting_check
        if matched is not None and matched not in known_waiting_check_ids:
            logger.warning(f"LLM referenced unknown waiting check id {matched}, ignoring it")
            matched = None
        return Verdict(
            should_notify=self.should_notify,
            reason=self.reason or DEFAULT_REASON,
            score=score,
            matched_waiting_check=matched,
            message_timestamp=message_timestamp,
        )


def _format_waiting_checks(resolved: ResolvedPolicy) -> str:
    formatted = [f"{{id: {check.get('id', -1)}, content: '{check.get('content', '')}'}}"
                 for check in resolved.waiting_checks]
    return ", ".join(formatted) or "none"


def format_message_content(message: InboundMessage, max_body_chars: Optional[int] = None) -> str:
    """Renders the per-message block shown to the model."""
    max_body_chars = max_body_chars or config.max_body_chars
    body = message.get('body') or "No content"
    if len(body) > max_body_chars:
        body = body[:max_body_chars] + "...[truncated]"
    lines = [f"From: {message.get('sender') or 'Unknown'}"]
    if message.get('chat_name'):
        lines.append(f"Chat: {message['chat_name']}")
    lines.append(f"Subject: {message.get('subject') or 'No subject'}")
    lines.append(f"Body: {body}")
    return "\n".join(lines)


class AIEvaluator:
    """Evaluates single messages against the user's general-importance criteria with a tool-bound LLM."""

    def __init__(
            self,
            llm,
            resolved: ResolvedPolicy,
            channel: str,
            on_judgment: Optional[Callable[[EvaluationRecord], None]] = None
    ):
        self.llm_with_tools = llm.bind_tools([EvaluateMessage], tool_choice=TOOL_NAME)
        self.resolved = resolved
        self.channel = channel
        self.on_judgment = on_judgment
        self.known_waiting_check_ids = {check.get('id') for check in resolved.waiting_checks}
        self.chat_prompt_template = prompt_manager.get_triage_chat_prompt()
        self.prompt_variables = self._build_prompt_variables()

    def _build_prompt_variables(self) -> dict:
        policy = self.resolved.policy
        return {
            "message_kind": "email" if self.channel in EMAIL_CHANNELS else f"{self.channel.capitalize()} message",
            "waiting_checks": _format_waiting_checks(self.resolved),
            "priority_senders": ", ".join(ps.get('sender', '') for ps in self.resolved.priority_senders) or "none",
            "keywords": ", ".join(k.get('keyword', '') for k in self.resolved.keywords) or "none",
            "general_checks_prompt": policy.general_checks_prompt,
            "importance_threshold": policy.threshold,
        }

    def build_messages(self, message: InboundMessage) -> List[BaseMessage]:
        return self.chat_prompt_template.format_messages(
            message_content=format_message_content(message),
            **self.prompt_variables
        )

    def _parse_response(self, response, message_id) -> Optional[ToolVerdict]:
        tool_calls = [tc for tc in (getattr(response, 'tool_calls', None) or []) if tc.get('name') == TOOL_NAME]
        if not tool_calls:
            invalid_calls = getattr(response, 'invalid_tool_calls', None) or []
            if invalid_calls:
                for invalid in invalid_calls:
                    logger.error(f"Failed to parse tool call arguments for message {message_id}: {invalid.get('error')}")
                    logger.error(f"Raw arguments that failed to parse: {invalid.get('args')}")
            else:
                logger.error(f"No tool calls in LLM response for message {message_id}")
            return None

        arguments = tool_calls[0].get('args') or {}
        try:
            return ToolVerdict.model_validate(arguments)
        except ValidationError as e:
            logger.error(f"Invalid tool call arguments for message {message_id}: {e}")
            logger.error(f"Raw arguments that failed to parse: {arguments}")
            return None

    def _record_judgment(self, message: InboundMessage, verdict: Verdict) -> None:
        if self.on_judgment is None:
            return
        record = EvaluationRecord(
            message_id=message.get('id'),
            message_timestamp=verdict.message_timestamp,
            processed_at=int(time.time()),
            should_notify=verdict.should_notify,
            score=verdict.score,
            reason=verdict.reason,
        )
        try:
            self.on_judgment(record)
        except Exception as e:
            logger.error(f"Failed to record judgment for message {message.get('id')}: {e}")

    def evaluate(self, message: InboundMessage, message_timestamp: int) -> Optional[Verdict]:
        """
        Asks the LLM whether the message deserves a notification.

        Returns:
            A notifying Verdict, or None when the model declines or the evaluation failed.
        """
        message_id = message.get('id')
        try:
            response = self.llm_with_tools.invoke(self.build_messages(message))
        except Exception as e:
            logger.error(f"Failed to get LLM response for message {message_id}: {e}")
            return None

        tool_verdict = self._parse_response(response, message_id)
        if tool_verdict is None:
            return None

        verdict = tool_verdict.to_verdict(message_timestamp, self.known_waiting_check_ids)
        self._record_judgment(message, verdict)
        if not verdict.should_notify:
            logger.info(f"Message {message_id} not marked as important (score {verdict.score}), skipping")
            return None
        logger.info(f"Message {message_id} marked as important (score {verdict.score}): {verdict.reason}")
        return verdict
