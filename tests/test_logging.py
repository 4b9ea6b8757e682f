import json
import logging

from shared.core.logging_config import (
    SecurityFilter, StructuredFormatter, actor_id_var, correlation_id_var, request_id_var,
    set_request_context,
)


def make_record(message, **extra):
    record = logging.LogRecord("ordertrack.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_security_filter_redacts_values():
    record = make_record("login phone=9000000002 password=hunter22 token: abc.def.ghi")
    assert SecurityFilter().filter(record) is True
    message = record.getMessage()
    assert "hunter22" not in message
    assert "abc.def.ghi" not in message
    assert "phone=9000000002" in message


def test_structured_formatter_includes_request_context():
    request_token = request_id_var.set(None)
    actor_token = actor_id_var.set(None)
    correlation_token = correlation_id_var.set(None)
    try:
        set_request_context(request_id="req-1", actor_id="U-owner001")
        line = StructuredFormatter().format(
            make_record("order created", extra_fields={"order_id": "O-12345678"})
        )
    finally:
        request_id_var.reset(request_token)
        actor_id_var.reset(actor_token)
        correlation_id_var.reset(correlation_token)

    payload = json.loads(line)
    assert payload["message"] == "order created"
    assert payload["trace"] == {"request_id": "req-1", "actor_id": "U-owner001"}
    assert payload["custom"] == {"order_id": "O-12345678"}
