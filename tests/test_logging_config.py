"""Tests for logging configuration."""

import json
import logging
import sys
import threading
import unittest

from container_attest.logging_config import (
    TEXT_FORMAT,
    JsonFormatter,
    configure_from_env,
    configure_logging,
    logger,
    set_log_level,
)


def _record(level=logging.WARNING, msg="digest %s", args=("missing",), exc_info=None):
    return logging.LogRecord("container_attest", level, __file__, 1, msg, args, exc_info)


class TestLogging(unittest.TestCase):
    def tearDown(self):
        configure_from_env()
        set_log_level("INFO")

    def test_package_logger(self):
        self.assertEqual(logger.name, "container_attest")
        self.assertTrue(logger.handlers)

    def test_set_log_level(self):
        set_log_level("debug")

        self.assertEqual(logger.level, logging.DEBUG)
        self.assertTrue(all(handler.level == logging.DEBUG for handler in logger.handlers))

    def test_reconfigure_does_not_stack_handlers(self):
        handlers = list(logger.handlers)

        configure_logging("WARNING", "json")

        self.assertEqual(logger.handlers, handlers)
        self.assertEqual(logger.level, logging.WARNING)
        self.assertTrue(all(isinstance(handler.formatter, JsonFormatter) for handler in logger.handlers))

        configure_logging("INFO", "text")

        self.assertTrue(all(handler.formatter._fmt == TEXT_FORMAT for handler in logger.handlers))

    def test_text_lines_name_the_thread(self):
        configure_logging("INFO", "text")
        records = []
        worker = threading.Thread(target=lambda: records.append(_record()), name="attest_1")
        worker.start()
        worker.join()

        line = logger.handlers[0].formatter.format(records[0])

        self.assertIn("WARNING attest_1 - digest missing", line)


class TestJsonFormatter(unittest.TestCase):
    def test_fields(self):
        entry = json.loads(JsonFormatter().format(_record()))

        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(entry["logger"], "container_attest")
        self.assertEqual(entry["message"], "digest missing")
        self.assertEqual(entry["thread"], threading.current_thread().name)
        self.assertTrue(entry["timestamp"].endswith("+00:00"))
        self.assertNotIn("exception", entry)

    def test_thread_of_a_job(self):
        records = []
        worker = threading.Thread(target=lambda: records.append(_record()), name="attest_0")
        worker.start()
        worker.join()

        entry = json.loads(JsonFormatter().format(records[0]))

        self.assertEqual(entry["thread"], "attest_0")

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()

        entry = json.loads(JsonFormatter().format(_record(logging.ERROR, "failed", (), exc_info)))

        self.assertIn("RuntimeError: boom", entry["exception"])


if __name__ == "__main__":
    unittest.main()
