"""
Deterministic fast-path tiers, evaluated before any LLM call.

Tiers run in a fixed order (waiting checks, priority senders, keywords) and the first
rule that matches produces the single verdict for the message. All matching is a
case-insensitive substring test.
"""
from typing import Callable, List, Optional, Tuple

from notify_triage.src.data_models import InboundMessage, Verdict
from notify_triage.src.logger import logger
from notify_triage.src.triage.policy import ResolvedPolicy

FAST_PATH_SCORE = 10

Matcher = Callable[[InboundMessage, ResolvedPolicy, int], Optional[Verdict]]


def _text_fields(message: InboundMessage) -> Tuple[str, str]:
    return (message.get('body') or '').lower(), (message.get('subject') or '').lower()


def _sender_fields(message: InboundMessage) -> Tuple[str, ...]:
    # Chat messages can also match on the room they were posted in
    fields = [(message.get('sender') or '').lower()]
    if message.get('chat_name'):
        fields.append(message['chat_name'].lower())
    return tuple(fields)


def match_waiting_checks(message: InboundMessage, resolved: ResolvedPolicy, message_timestamp: int) -> Optional[Verdict]:
    if not resolved.policy.waiting_checks_active:
        return None
    body, subject = _text_fields(message)
    for check in resolved.waiting_checks:
        needle = (check.get('content') or '').lower()
        if needle and (needle in body or needle in subject):
            logger.info(f"Fast check: waiting check {check.get('id')} matched message {message.get('id')}: '{check['content']}'")
            return Verdict(
                should_notify=True,
                reason=f"Matched waiting check: {check['content']}",
                score=FAST_PATH_SCORE,
                matched_waiting_check=check.get('id'),
                message_timestamp=message_timestamp,
            )
    return None


def match_priority_senders(message: InboundMessage, resolved: ResolvedPolicy, message_timestamp: int) -> Optional[Verdict]:
    if not resolved.policy.priority_senders_active:
        return None
    senders = _sender_fields(message)
    for priority_sender in resolved.priority_senders:
        needle = (priority_sender.get('sender') or '').lower()
        if needle and any(needle in field for field in senders):
            logger.info(f"Fast check: priority sender matched message {message.get('id')}: '{priority_sender['sender']}'")
            return Verdict(
                should_notify=True,
                reason=f"Message from priority sender: {priority_sender['sender']}",
                score=FAST_PATH_SCORE,
                matched_waiting_check=None,
                message_timestamp=message_timestamp,
            )
    return None


def match_keywords(message: InboundMessage, resolved: ResolvedPolicy, message_timestamp: int) -> Optional[Verdict]:
    if not resolved.policy.keywords_active:
        return None
    body, subject = _text_fields(message)
    for keyword in resolved.keywords:
        needle = (keyword.get('keyword') or '').lower()
        if needle and (needle in body or needle in subject):
            logger.info(f"Fast check: keyword matched message {message.get('id')}: '{keyword['keyword']}'")
            return Verdict(
                should_notify=True,
                reason=f"Matched keyword: {keyword['keyword']}",
                score=FAST_PATH_SCORE,
                matched_waiting_check=None,
                message_timestamp=message_timestamp,
            )
    return None


FAST_PATH_MATCHERS: List[Matcher] = [
    match_waiting_checks,
    match_priority_senders,
    match_keywords,
]


def run_fast_path(message: InboundMessage, resolved: ResolvedPolicy, message_timestamp: int) -> Optional[Verdict]:
    """Returns the verdict of the first matching tier, or None when no tier matches."""
    for matcher in FAST_PATH_MATCHERS:
        verdict = matcher(message, resolved, message_timestamp)
        if verdict is not None:
            return verdict
    return None
