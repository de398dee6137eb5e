import logging
import unittest
from logging.handlers import RotatingFileHandler

from call_agent.config.logging_config import configure_logging


class TestLoggingConfig(unittest.TestCase):
    def test_configure_logging(self):
        logger = configure_logging("INFO")
        self.assertIsInstance(logger, logging.Logger)
        self.assertEqual(logger.name, "call_agent")
        self.assertEqual(logger.level, logging.INFO)
        self.assertFalse(logger.propagate)

        # Console handler first, then the rotating file handler
        self.assertGreaterEqual(len(logger.handlers), 1)
        handler = logger.handlers[0]
        self.assertIsInstance(handler, logging.StreamHandler)
        self.assertEqual(handler.formatter._fmt, "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def test_reconfigure_does_not_duplicate_handlers(self):
        configure_logging("INFO")
        logger = configure_logging("DEBUG")
        self.assertEqual(logger.level, logging.DEBUG)
        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        self.assertLessEqual(len(file_handlers), 1)


if __name__ == "__main__":
    unittest.main()
