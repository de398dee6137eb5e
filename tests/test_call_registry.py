import unittest

from call_agent.models.call_registry import CallRegistry
from call_agent.models.calls import (
    CallCredentials,
    CallRecord,
    CallStatus,
    OutboundTask,
    TaskType,
)


class TestCallRegistry(unittest.TestCase):

    def setUp(self):
        self.registry = CallRegistry()
        self.record = CallRecord(
            call_id="CA123",
            destination="+15551234567",
            task=OutboundTask(type=TaskType.SURVEY, prompt="Ask 3 questions"),
        )

    def test_put_and_get(self):
        self.registry.put(self.record)
        self.assertIs(self.registry.get("CA123"), self.record)
        self.assertIn("CA123", self.registry)
        self.assertEqual(len(self.registry), 1)

    def test_new_record_is_initiated(self):
        self.assertEqual(self.record.status, CallStatus.INITIATED)

    def test_set_status(self):
        self.registry.put(self.record)
        self.registry.set_status("CA123", CallStatus.IN_PROGRESS)
        self.assertEqual(self.registry.get("CA123").status, CallStatus.IN_PROGRESS)

    def test_set_status_unknown_call_is_noop(self):
        self.registry.set_status("missing", CallStatus.COMPLETED)
        self.assertNotIn("missing", self.registry)

    def test_remove(self):
        self.registry.put(self.record)
        self.registry.remove("CA123")
        self.assertIsNone(self.registry.get("CA123"))
        self.registry.remove("CA123")

    def test_list_summary_never_includes_credentials(self):
        self.record.credentials = CallCredentials(
            openai_api_key="sk-secret", twilio_account_sid="ACx", twilio_auth_token="secret"
        )
        self.registry.put(self.record)

        summaries = [record.summary() for record in self.registry.list()]
        self.assertEqual(len(summaries), 1)
        summary = summaries[0]
        self.assertEqual(summary["callId"], "CA123")
        self.assertEqual(summary["status"], "initiated")
        self.assertEqual(summary["task"]["type"], "survey")
        self.assertNotIn("credentials", summary)
        self.assertNotIn("secret", str(summary))


if __name__ == "__main__":
    unittest.main()
