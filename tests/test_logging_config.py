"""
Tests for structured log formatting.
"""

import json
import logging

from app.logging_config import JSONFormatter


def make_record(**extra):
    record = logging.LogRecord(
        name="app.services.reconciliation",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="Rejected PayHere notification with invalid signature",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    payload = json.loads(JSONFormatter().format(make_record()))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "app.services.reconciliation"
    assert payload["message"].startswith("Rejected PayHere")


def test_json_formatter_merges_context():
    record = make_record(context={"security_event": "payhere_signature_invalid", "order_id": "DON1"})

    payload = json.loads(JSONFormatter().format(record))

    assert payload["security_event"] == "payhere_signature_invalid"
    assert payload["order_id"] == "DON1"
