import json
import logging
import sys

from verified_media.services.logging import JsonFormatter


def test_json_formatter_includes_component_and_extra():
    logger = logging.getLogger("verified_media.workflows.selection_engine")
    record = logger.makeRecord(
        logger.name, logging.INFO, __file__, 10, "Accepted %s", ("Wikipedia",), None,
        extra={"selection_id": "abc123"},
    )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Accepted Wikipedia"
    assert payload["level"] == "INFO"
    assert payload["component"] == "selection_engine"
    assert payload["selection_id"] == "abc123"


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.getLogger("x").makeRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]
