from typing import List, Optional

from notify_triage.src.data_models import InboundMessage, Verdict, TriageDecision, WaitingCheck


def record_decision(decisions: List[TriageDecision], message: InboundMessage, verdict: Optional[Verdict]) -> List[TriageDecision]:
    """Appends the (message, verdict) pair when the message should be notified about."""
    if verdict is None or not verdict.should_notify:
        return decisions
    return decisions + [TriageDecision(message, verdict)]


def consumed_waiting_checks(decisions: List[TriageDecision], waiting_checks: List[WaitingCheck]) -> List[WaitingCheck]:
    """
    Waiting checks matched by this batch that are flagged `remove_when_found`.

    The engine itself never deletes them; callers use this list to retire one-shot checks.
    """
    matched_ids = {d.verdict.matched_waiting_check for d in decisions if d.verdict.matched_waiting_check is not None}
    return [check for check in waiting_checks
            if check.get('id') in matched_ids and check.get('remove_when_found', True)]
