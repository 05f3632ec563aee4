"""
Tests for logging configuration.
"""

import logging

from spanflow.logger import configure_logging, get_logger


class TestLogger:
    def test_child_logger_names(self):
        assert get_logger("spanflow.core.flow").name == "spanflow.core.flow"
        assert get_logger("external").name == "spanflow.external"
        assert get_logger().name == "spanflow"

    def test_configure_logging_file(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        root = configure_logging(level=logging.WARNING, log_file=log_file)
        try:
            get_logger("spanflow.test").debug("detail message")
            for handler in root.handlers:
                handler.flush()
            assert "detail message" in log_file.read_text()
        finally:
            for handler in list(root.handlers):
                if not isinstance(handler, logging.NullHandler):
                    root.removeHandler(handler)
                    handler.close()

    def test_reconfigure_replaces_handlers(self):
        root = configure_logging()
        configure_logging()
        try:
            streams = [h for h in root.handlers if type(h) is logging.StreamHandler]
            assert len(streams) == 1
        finally:
            for handler in list(root.handlers):
                if not isinstance(handler, logging.NullHandler):
                    root.removeHandler(handler)
                    handler.close()
