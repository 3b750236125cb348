import unittest
from unittest.mock import MagicMock

from langchain_core.messages import AIMessage, SystemMessage, HumanMessage
from langchain_core.utils.function_calling import convert_to_openai_tool

from notify_triage.src.data_models import FilterPolicy, InboundMessage, WaitingCheck, PrioritySender, Keyword
from notify_triage.src.triage.evaluator import (
    AIEvaluator,
    EvaluateMessage,
    TOOL_NAME,
    format_message_content,
)
from notify_triage.src.triage.policy import ResolvedPolicy


def tool_response(**args) -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": TOOL_NAME, "args": args, "id": "call_1", "type": "tool_call"}])


def make_llm(*responses) -> MagicMock:
    llm = MagicMock()
    llm.bind_tools.return_value.invoke.side_effect = list(responses)
    return llm


RESOLVED = ResolvedPolicy(
    policy=FilterPolicy(threshold=6, general_checks_prompt="Anything from the kids' school."),
    waiting_checks=[WaitingCheck(id=7, content="invoice overdue", remove_when_found=True)],
    priority_senders=[PrioritySender(sender="boss@corp.com")],
    keywords=[Keyword(keyword="urgent")],
)

MESSAGE = InboundMessage(id="m1", sender="office@school.org", subject="Trip tomorrow", body="Bring a packed lunch.", timestamp=2000)


class TestAIEvaluator(unittest.TestCase):

    def test_tool_is_bound_and_forced(self):
        llm = make_llm()

        AIEvaluator(llm, RESOLVED, "imap")

        llm.bind_tools.assert_called_once_with([EvaluateMessage], tool_choice=TOOL_NAME)
        function = convert_to_openai_tool(EvaluateMessage)["function"]
        self.assertEqual(function["name"], TOOL_NAME)
        parameters = function["parameters"]
        self.assertEqual(
            sorted(parameters["required"]),
            ["matched_waiting_check", "reason", "score", "should_notify"]
        )
        self.assertEqual(parameters["properties"]["score"]["maximum"], 10)

    def test_prompt_embeds_policy_context(self):
        evaluator = AIEvaluator(make_llm(), RESOLVED, "imap")

        system, human = evaluator.build_messages(MESSAGE)

        self.assertIsInstance(system, SystemMessage)
        self.assertIsInstance(human, HumanMessage)
        self.assertIn("{id: 7, content: 'invoice overdue'}", system.content)
        self.assertIn("boss@corp.com", system.content)
        self.assertIn("urgent", system.content)
        self.assertIn("Anything from the kids' school.", system.content)
        self.assertIn("threshold (6)", system.content)
        self.assertIn("intelligent email filter", system.content)
        self.assertIn("From: office@school.org\nSubject: Trip tomorrow\nBody: Bring a packed lunch.", human.content)

    def test_chat_channel_prompt_names_the_channel(self):
        evaluator = AIEvaluator(make_llm(), RESOLVED, "telegram")

        system, _ = evaluator.build_messages(MESSAGE)

        self.assertIn("intelligent Telegram message filter", system.content)

    def test_notifying_verdict_keeps_reason_verbatim(self):
        llm = make_llm(tool_response(should_notify=True, reason="School trip needs a packed lunch", score=8, matched_waiting_check=None))
        evaluator = AIEvaluator(llm, RESOLVED, "imap")

        verdict = evaluator.evaluate(MESSAGE, 2000)

        self.assertTrue(verdict.should_notify)
        self.assertEqual(verdict.reason, "School trip needs a packed lunch")
        self.assertEqual(verdict.score, 8)
        self.assertEqual(verdict.message_timestamp, 2000)

    def test_declined_message_yields_no_verdict(self):
        llm = make_llm(tool_response(should_notify=False, reason="Routine", score=2, matched_waiting_check=None))

        self.assertIsNone(AIEvaluator(llm, RESOLVED, "imap").evaluate(MESSAGE, 2000))

    def test_missing_fields_are_defaulted_and_score_clamped(self):
        llm = make_llm(tool_response(should_notify=True), tool_response(should_notify=True, reason="Huge", score=42))
        evaluator = AIEvaluator(llm, RESOLVED, "imap")

        defaulted = evaluator.evaluate(MESSAGE, 2000)
        clamped = evaluator.evaluate(MESSAGE, 2000)

        self.assertEqual(defaulted.reason, "No reason provided")
        self.assertEqual(defaulted.score, 0)
        self.assertIsNone(defaulted.matched_waiting_check)
        self.assertEqual(clamped.score, 10)

    def test_known_waiting_check_id_is_kept_and_unknown_dropped(self):
        llm = make_llm(
            tool_response(should_notify=True, reason="Paraphrased invoice reminder", score=9, matched_waiting_check=7),
            tool_response(should_notify=True, reason="Hallucinated id", score=9, matched_waiting_check=99),
        )
        evaluator = AIEvaluator(llm, RESOLVED, "imap")

        self.assertEqual(evaluator.evaluate(MESSAGE, 2000).matched_waiting_check, 7)
        self.assertIsNone(evaluator.evaluate(MESSAGE, 2000).matched_waiting_check)

    def test_api_failure_yields_no_verdict(self):
        llm = make_llm(TimeoutError("Request timed out"))

        with self.assertLogs("notify_triage", level="ERROR") as logs:
            self.assertIsNone(AIEvaluator(llm, RESOLVED, "imap").evaluate(MESSAGE, 2000))
        self.assertIn("Request timed out", logs.output[0])

    def test_response_without_tool_call_yields_no_verdict(self):
        llm = make_llm(AIMessage(content="I think this is important."))

        with self.assertLogs("notify_triage", level="ERROR") as logs:
            self.assertIsNone(AIEvaluator(llm, RESOLVED, "imap").evaluate(MESSAGE, 2000))
        self.assertIn("No tool calls", logs.output[0])

    def test_unparsable_arguments_log_raw_payload(self):
        broken = AIMessage(content="", invalid_tool_calls=[
            {"name": TOOL_NAME, "args": '{"should_notify": tru', "id": "call_1", "error": "Malformed JSON", "type": "invalid_tool_call"}
        ])
        llm = make_llm(broken)

        with self.assertLogs("notify_triage", level="ERROR") as logs:
            self.assertIsNone(AIEvaluator(llm, RESOLVED, "imap").evaluate(MESSAGE, 2000))
        self.assertTrue(any('{"should_notify": tru' in line for line in logs.output))

    def test_invalid_argument_types_yield_no_verdict(self):
        llm = make_llm(tool_response(should_notify="perhaps", reason="?", score="high"))

        with self.assertLogs("notify_triage", level="ERROR"):
            self.assertIsNone(AIEvaluator(llm, RESOLVED, "imap").evaluate(MESSAGE, 2000))

    def test_nan_score_yields_no_verdict(self):
        llm = make_llm(tool_response(should_notify=True, reason="?", score=float("nan"), matched_waiting_check=None))

        with self.assertLogs("notify_triage", level="ERROR") as logs:
            self.assertIsNone(AIEvaluator(llm, RESOLVED, "imap").evaluate(MESSAGE, 2000))
        self.assertIn("Invalid tool call arguments", logs.output[0])

    def test_judgment_callback_receives_every_successful_evaluation(self):
        records = []
        llm = make_llm(
            tool_response(should_notify=False, reason="Routine", score=3, matched_waiting_check=None),
            TimeoutError("timed out"),
        )
        evaluator = AIEvaluator(llm, RESOLVED, "imap", on_judgment=records.append)

        evaluator.evaluate(MESSAGE, 2000)
        evaluator.evaluate(MESSAGE, 2000)

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].message_id, "m1")
        self.assertFalse(records[0].should_notify)
        self.assertEqual(records[0].score, 3)
        self.assertEqual(records[0].message_timestamp, 2000)


class TestFormatMessageContent(unittest.TestCase):

    def test_placeholders_for_missing_fields(self):
        content = format_message_content(InboundMessage(id="m1"))

        self.assertEqual(content, "From: Unknown\nSubject: No subject\nBody: No content")

    def test_chat_name_and_truncation(self):
        content = format_message_content(
            InboundMessage(id="m1", sender="alice", body="x" * 50, chat_name="Family"), max_body_chars=10
        )

        self.assertIn("Chat: Family", content)
        self.assertIn("Body: " + "x" * 10 + "...[truncated]", content)


if __name__ == '__main__':
    unittest.main()
