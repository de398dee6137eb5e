import unittest

from call_agent.models.conversation import ConversationStore
from call_agent.models.openai_schemas import MessageRole


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestConversationStore(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = ConversationStore(clock=self.clock)
        self.call_id = "CA123"

    def test_append_keeps_arrival_order(self):
        self.store.append(self.call_id, MessageRole.ASSISTANT, "Hello, this is a survey.")
        self.store.append(self.call_id, MessageRole.USER, "Sure.")
        self.store.append(self.call_id, MessageRole.ASSISTANT, "First question.")

        history = self.store.get(self.call_id)
        self.assertEqual(
            [m.role for m in history.messages],
            [MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT],
        )
        self.assertEqual(history.messages[1].text, "Sure.")

    def test_append_updates_timestamp(self):
        self.store.append(self.call_id, MessageRole.USER, "Hi")
        self.clock.now = 105.0
        history = self.store.append(self.call_id, MessageRole.ASSISTANT, "Hello")
        self.assertEqual(history.last_updated_at, 105.0)

    def test_mark_stream_started_records_activity_without_messages(self):
        history = self.store.mark_stream_started(self.call_id)
        self.assertEqual(history.messages, [])
        self.assertEqual(history.last_updated_at, 100.0)
        self.assertEqual(history.stream_started_at, 100.0)
        self.assertFalse(self.store.has_messages(self.call_id))

        self.clock.now = 110.0
        self.store.mark_stream_started(self.call_id)
        self.assertEqual(self.store.get(self.call_id).stream_started_at, 110.0)

    def test_messages_do_not_move_stream_start(self):
        self.store.mark_stream_started(self.call_id)
        self.clock.now = 105.0
        history = self.store.append(self.call_id, MessageRole.USER, "Hello?")
        self.assertEqual(history.last_updated_at, 105.0)
        self.assertEqual(history.stream_started_at, 100.0)

    def test_get_nonexistent_history(self):
        self.assertIsNone(self.store.get("nonexistent-id"))
        self.assertNotIn("nonexistent-id", self.store)

    def test_discard(self):
        self.store.append(self.call_id, MessageRole.USER, "Hi")
        self.store.discard(self.call_id)
        self.assertNotIn(self.call_id, self.store)
        # Discarding again is harmless
        self.store.discard(self.call_id)

    def test_render(self):
        self.store.append(self.call_id, MessageRole.ASSISTANT, "How can I help?")
        self.store.append(self.call_id, MessageRole.USER, "Billing please.")
        self.assertEqual(
            self.store.get(self.call_id).render(),
            "Assistant: How can I help?\nCaller: Billing please.",
        )


if __name__ == "__main__":
    unittest.main()
