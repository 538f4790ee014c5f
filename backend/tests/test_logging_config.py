"""
test_logging_config.py — JSON log formatting.
"""

import json
import logging

from app.services.engine_errors import DepthExceededError
from app.services.logging_config import ContextTextFormatter, JSONFormatter


def _record(msg="hello", **extra):
    record = logging.LogRecord("quoter-bom", logging.WARNING, __file__, 10, msg, None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_line_has_core_fields():
    entry = json.loads(JSONFormatter().format(_record()))
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "quoter-bom"
    assert entry["message"] == "hello"


def test_known_extras_copied_unknown_dropped():
    entry = json.loads(JSONFormatter().format(_record(order_id="O1", secret="x")))
    assert entry["order_id"] == "O1"
    assert "secret" not in entry


def test_text_line_appends_context():
    line = ContextTextFormatter().format(_record(order_id="O1", http_status=404))
    assert "[quoter-bom] WARNING: hello" in line
    assert line.endswith("| order_id=O1 http_status=404")


def test_text_line_without_context_is_plain():
    assert "|" not in ContextTextFormatter().format(_record())


def test_error_payload_is_serialisable():
    err = DepthExceededError("too deep", product_id="P21", depth=21, path=("P0", "P1"))
    payload = err.to_dict()
    assert json.loads(json.dumps(payload))["context"]["path"] == ["P0", "P1"]
    assert payload["fatal"] is False
