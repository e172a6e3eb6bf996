import json
import logging

from randomcut.logger import _JsonFormatter, get_logger


def test_loggers_live_under_package_root():
    logger = get_logger("randomcut.rcf.forest")
    assert logger.name == "randomcut.rcf.forest"
    assert get_logger("summarize").name == "randomcut.summarize"
    assert get_logger() is logging.getLogger("randomcut")


def test_root_is_configured_once():
    root = get_logger()
    handlers = list(root.handlers)
    get_logger("rcf.batch")
    assert root.handlers == handlers
    assert len(handlers) == 1
    assert root.propagate is False


def test_json_formatter():
    record = logging.LogRecord("randomcut.rcf", logging.WARNING, __file__, 1, "capped to %d", (3,), None)
    payload = json.loads(_JsonFormatter().format(record))
    assert payload["level"] == "WARNING"
    assert payload["name"] == "randomcut.rcf"
    assert payload["msg"] == "capped to 3"
