import unittest

from call_agent.config.settings import ConfigurationError, Settings

FULL_ENV = {
    "OPENAI_API_KEY": "sk-test",
    "TWILIO_ACCOUNT_SID": "ACtest",
    "TWILIO_AUTH_TOKEN": "token",
    "TWILIO_PHONE_NUMBER": "+15550000000",
    "PUBLIC_DOMAIN": "example.ngrok.app",
}


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        settings = Settings.from_env({})
        self.assertEqual(settings.port, 5050)
        self.assertEqual(settings.host, "0.0.0.0")
        self.assertEqual(settings.realtime_model, "gpt-realtime")
        self.assertEqual(settings.reconnect_window_seconds, 5.0)
        self.assertEqual(settings.inactivity_threshold_seconds, 3.0)
        self.assertEqual(settings.end_call_delay_seconds, 2.0)
        self.assertEqual(settings.end_call_fallback_seconds, 10.0)
        self.assertEqual(settings.dtmf_pause_seconds, 1)

    def test_overrides(self):
        env = dict(FULL_ENV, TWILIO_SERVER_PORT="8080", RECONNECT_WINDOW_SECONDS="7.5")
        settings = Settings.from_env(env)
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.reconnect_window_seconds, 7.5)

    def test_validate_required_names_every_missing_variable(self):
        settings = Settings.from_env({"OPENAI_API_KEY": "sk-test"})
        with self.assertRaises(ConfigurationError) as ctx:
            settings.validate_required()
        message = str(ctx.exception)
        for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER", "PUBLIC_DOMAIN"):
            self.assertIn(name, message)
        self.assertNotIn("OPENAI_API_KEY", message)

    def test_validate_required_passes(self):
        settings = Settings.from_env(FULL_ENV)
        self.assertIs(settings.validate_required(), settings)

    def test_urls_for_public_domain(self):
        settings = Settings.from_env(FULL_ENV)
        self.assertEqual(settings.media_stream_url, "wss://example.ngrok.app/twilio/media-stream")
        self.assertEqual(settings.incoming_call_url, "https://example.ngrok.app/twilio/incoming-call")

    def test_urls_for_localhost(self):
        settings = Settings.from_env(dict(FULL_ENV, PUBLIC_DOMAIN="localhost:5050"))
        self.assertEqual(settings.media_stream_url, "ws://localhost:5050/twilio/media-stream")
        self.assertEqual(settings.incoming_call_url, "http://localhost:5050/twilio/incoming-call")


if __name__ == "__main__":
    unittest.main()
