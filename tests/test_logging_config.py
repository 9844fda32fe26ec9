import json
import logging

from shortener.logging_config import LOGGER_NAME, JsonFormatter, get_logger, setup_logging


class TestLogging:
    """Test application logger setup"""

    def teardown_method(self):
        logging.getLogger(LOGGER_NAME).handlers.clear()

    def test_setup_returns_application_logger(self):
        """Test setup configures the shared logger once"""
        logger = setup_logging(level="debug")

        assert logger is get_logger()
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

        setup_logging(level="INFO")
        assert len(logger.handlers) == 1

    def test_file_handler(self, tmp_path):
        """Test records also go to the log file"""
        log_file = tmp_path / "app.log"
        logger = setup_logging(level="INFO", log_file=str(log_file))

        logger.getChild("storage").info("hello from storage")
        for handler in logger.handlers:
            handler.flush()

        assert "hello from storage" in log_file.read_text()
        assert "shortener.storage" in log_file.read_text()

    def test_json_format(self):
        """Test JSON lines carry the expected keys"""
        record = logging.LogRecord("shortener.queue", logging.WARNING, __file__, 1, "queue %s full", ("q",), None)

        payload = json.loads(JsonFormatter().format(record))

        assert payload["severity"] == "WARNING"
        assert payload["logger"] == "shortener.queue"
        assert payload["message"] == "queue q full"
        assert "timestamp" in payload
