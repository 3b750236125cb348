import unittest
from unittest.mock import patch

from notify_triage.src.data_models import FilterPolicy, InboundMessage, WaitingCheck, PrioritySender, Keyword
from notify_triage.src.triage.gate import effective_timestamp, passes_activation_gate
from notify_triage.src.triage.matchers import (
    match_waiting_checks,
    match_priority_senders,
    match_keywords,
    run_fast_path,
)
from notify_triage.src.triage.policy import ResolvedPolicy


def make_resolved(**policy_fields) -> ResolvedPolicy:
    return ResolvedPolicy(
        policy=FilterPolicy(**policy_fields),
        waiting_checks=[WaitingCheck(id=7, content="Invoice Overdue", remove_when_found=True),
                        WaitingCheck(id=8, content="tracking number", remove_when_found=False)],
        priority_senders=[PrioritySender(sender="@bank.com"), PrioritySender(sender="mom")],
        keywords=[Keyword(keyword="URGENT"), Keyword(keyword="deadline")],
    )


class TestActivationGate(unittest.TestCase):

    def test_message_timestamp_is_used_when_present(self):
        self.assertEqual(effective_timestamp(InboundMessage(id="1", timestamp=2000), now=5000), 2000)

    def test_missing_timestamp_becomes_now(self):
        self.assertEqual(effective_timestamp(InboundMessage(id="1"), now=5000), 5000)
        self.assertEqual(effective_timestamp(InboundMessage(id="1", timestamp=None), now=5000), 5000)

    @patch('notify_triage.src.triage.gate.time.time', return_value=1234.9)
    def test_missing_timestamp_uses_clock(self, mock_time):
        self.assertEqual(effective_timestamp(InboundMessage(id="1")), 1234)

    def test_watermark_is_exclusive(self):
        self.assertFalse(passes_activation_gate(1000, 1000))
        self.assertFalse(passes_activation_gate(999, 1000))
        self.assertTrue(passes_activation_gate(1001, 1000))


class TestFastPathMatchers(unittest.TestCase):

    def test_waiting_check_matches_body_case_insensitively(self):
        message = InboundMessage(id="m1", sender="billing@shop.com", subject=None, body="Your invoice overdue notice")

        verdict = match_waiting_checks(message, make_resolved(), 2000)

        self.assertTrue(verdict.should_notify)
        self.assertEqual(verdict.score, 10)
        self.assertEqual(verdict.matched_waiting_check, 7)
        self.assertEqual(verdict.reason, "Matched waiting check: Invoice Overdue")
        self.assertEqual(verdict.message_timestamp, 2000)

    def test_waiting_check_matches_subject(self):
        message = InboundMessage(id="m1", sender="x@y.com", subject="Your TRACKING NUMBER", body="")

        self.assertEqual(match_waiting_checks(message, make_resolved(), 1).matched_waiting_check, 8)

    def test_waiting_checks_respect_active_flag(self):
        message = InboundMessage(id="m1", sender="x@y.com", body="invoice overdue")

        self.assertIsNone(match_waiting_checks(message, make_resolved(waiting_checks_active=False), 1))

    def test_priority_sender_matches_address_substring(self):
        message = InboundMessage(id="m1", sender="alerts@Bank.com", body="hello")

        verdict = match_priority_senders(message, make_resolved(), 1)

        self.assertEqual(verdict.reason, "Message from priority sender: @bank.com")
        self.assertIsNone(verdict.matched_waiting_check)
        self.assertEqual(verdict.score, 10)

    def test_priority_sender_matches_chat_room_name(self):
        message = InboundMessage(id="m1", sender="12345", body="hi", chat_name="Mom")

        self.assertIsNotNone(match_priority_senders(message, make_resolved(), 1))

    def test_priority_sender_is_not_matched_against_body(self):
        message = InboundMessage(id="m1", sender="friend@x.com", body="ask mom")

        self.assertIsNone(match_priority_senders(message, make_resolved(), 1))

    def test_keyword_matches(self):
        message = InboundMessage(id="m1", sender="x@y.com", subject="urgent: server down", body="")

        verdict = match_keywords(message, make_resolved(), 1)

        self.assertEqual(verdict.reason, "Matched keyword: URGENT")

    def test_empty_rules_never_match(self):
        resolved = make_resolved()._replace(keywords=[Keyword(keyword="")])
        message = InboundMessage(id="m1", sender="x@y.com", body="anything")

        self.assertIsNone(match_keywords(message, resolved, 1))


class TestRunFastPath(unittest.TestCase):

    def test_waiting_check_outranks_sender_and_keyword(self):
        message = InboundMessage(id="m1", sender="alerts@bank.com", subject="URGENT", body="invoice overdue")

        verdict = run_fast_path(message, make_resolved(), 1)

        self.assertEqual(verdict.matched_waiting_check, 7)

    def test_sender_outranks_keyword(self):
        message = InboundMessage(id="m1", sender="alerts@bank.com", subject="URGENT", body="")

        self.assertTrue(run_fast_path(message, make_resolved(), 1).reason.startswith("Message from priority sender"))

    def test_several_matching_senders_yield_the_first_only(self):
        resolved = make_resolved()._replace(priority_senders=[PrioritySender(sender="bank"), PrioritySender(sender="@bank.com")])
        message = InboundMessage(id="m1", sender="alerts@bank.com", body="")

        verdict = run_fast_path(message, resolved, 1)

        self.assertEqual(verdict.reason, "Message from priority sender: bank")

    def test_no_match_returns_none(self):
        message = InboundMessage(id="m1", sender="news@shop.com", subject="Weekly deals", body="50% off")

        self.assertIsNone(run_fast_path(message, make_resolved(), 1))

    def test_inactive_tiers_are_skipped(self):
        resolved = make_resolved(waiting_checks_active=False, priority_senders_active=False)
        message = InboundMessage(id="m1", sender="alerts@bank.com", subject="deadline", body="invoice overdue")

        self.assertEqual(run_fast_path(message, resolved, 1).reason, "Matched keyword: deadline")


if __name__ == '__main__':
    unittest.main()
