import logging
import tempfile
import unittest
from pathlib import Path

from utils.logger import setup_logger, stop_listeners


class TestLogger(unittest.TestCase):
    def test_handlers_not_stacked(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_file = str(Path(tmp) / "logs" / "test.log")
            a = setup_logger("TestLoggerStack", log_file=log_file, level="DEBUG")
            b = setup_logger("TestLoggerStack", log_file=log_file, level="DEBUG")
            self.assertIs(a, b)
            self.assertEqual(len(a.handlers), 1)
            self.assertFalse(a.propagate)
            self.assertEqual(a.level, logging.DEBUG)

            a.info("hello from the queue")
            stop_listeners()
            self.assertIn("hello from the queue", Path(log_file).read_text(encoding="utf-8"))
            a.handlers.clear()


if __name__ == "__main__":
    unittest.main()
